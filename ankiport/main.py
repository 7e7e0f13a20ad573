import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ankiport.api import anki_router, health_router
from ankiport.api.anki import ImportFailureResponse
from ankiport.config import settings
from ankiport.db.database import init_db
from ankiport.models.failure import KnownError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("ankiport"),
    lifespan=lifespan,
)

app.include_router(anki_router)
app.include_router(health_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.cors_origin],
    allow_credentials=False,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    """Render every known failure with the import result contract."""
    body = ImportFailureResponse.from_error(exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(by_alias=True, mode="json", exclude_none=True),
    )

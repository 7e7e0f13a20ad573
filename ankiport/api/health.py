"""
Liveness and readiness endpoints.

An instance is ready to accept uploads once the import tables answer a
query and both Supabase credentials it depends on are set: the service
role key for media uploads and the anon key for token verification.
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ankiport.config import settings
from ankiport.db.database import get_session
from ankiport.models.db import AnkiImportDB

router = APIRouter(tags=["health"])

ConfigState = Literal["configured", "missing"]


class HealthResponse(BaseModel):
    """Service status; dependency fields are only filled by /ready."""

    status: Literal["healthy", "ready", "not ready"]
    database: Literal["connected", "unavailable"] | None = None
    storage: ConfigState | None = None
    auth: ConfigState | None = None


def _config_state(*values: str) -> ConfigState:
    return "configured" if all(values) else "missing"


@router.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(
    response: Response,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> HealthResponse:
    """
    Readiness check.

    Returns 503 when the import tables cannot be queried or a Supabase
    credential is missing.
    """
    try:
        await session.execute(select(AnkiImportDB.id).limit(1))
        database = "connected"
    except (SQLAlchemyError, OSError):
        database = "unavailable"

    storage = _config_state(settings.supabase_url, settings.supabase_service_role_key)
    auth = _config_state(settings.supabase_url, settings.supabase_anon_key)

    ok = database == "connected" and storage == "configured" and auth == "configured"
    if not ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(
        status="ready" if ok else "not ready",
        database=database,
        storage=storage,
        auth=auth,
    )

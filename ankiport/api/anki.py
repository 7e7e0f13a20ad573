"""
Anki import API endpoints.

Provides .apkg upload and progress polling.
"""

from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ankiport.api.auth import get_current_user_id
from ankiport.db import get_import_record, get_session, get_session_factory
from ankiport.models.failure import ImportErrorCode, KnownError
from ankiport.services.anki_import import AnkiImporter
from ankiport.services.storage import MediaStorage, SupabaseStorage, storage_from_settings

router = APIRouter(prefix="/anki", tags=["anki"])


class ImportSuccessResponse(BaseModel):
    """Result of a successful import."""

    model_config = ConfigDict(populate_by_name=True)

    success: Literal[True] = True
    imported: int = Field(..., description="Number of cards committed")
    decks: int = Field(..., description="Number of deck paths resolved")
    import_id: int | None = Field(default=None, alias="importId")
    warnings: list[str] | None = Field(
        default=None,
        description="Non-fatal problems (failed cards, missing images)",
    )


class ImportFailureResponse(BaseModel):
    """Result of a failed import."""

    model_config = ConfigDict(populate_by_name=True)

    success: Literal[False] = False
    error: str = Field(..., description="User-appropriate explanation")
    code: ImportErrorCode = Field(..., description="Stable machine-readable failure code")
    import_id: int | None = Field(default=None, alias="importId")
    details: str | None = Field(default=None, description="Technical detail")

    @classmethod
    def from_error(cls, exc: KnownError) -> "ImportFailureResponse":
        return cls(error=exc.message, code=exc.code, import_id=exc.import_id, details=exc.detail)


class ImportProgressResponse(BaseModel):
    """Progress record of one import."""

    import_id: int
    filename: str
    status: str
    total_cards: int
    imported_cards: int
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


async def get_storage() -> AsyncGenerator[SupabaseStorage, None]:
    """Dependency that provides the media store for one request."""
    storage = storage_from_settings()
    try:
        yield storage
    finally:
        await storage.aclose()


@router.post(
    "/import",
    response_model=ImportSuccessResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ImportFailureResponse},
        401: {"model": ImportFailureResponse},
        500: {"model": ImportFailureResponse},
        503: {"model": ImportFailureResponse},
    },
)
async def import_apkg(
    owner_id: Annotated[str, Depends(get_current_user_id)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    storage: Annotated[MediaStorage, Depends(get_storage)],
    file: Annotated[UploadFile | None, File(description="Anki .apkg export")] = None,
) -> ImportSuccessResponse:
    """
    Import an Anki .apkg package.

    Creates the deck hierarchy, migrates images and inserts every card with
    its scheduling state. Progress can be polled with the returned importId.

    Fails as a whole (400) when more than 10% of the cards could not be
    imported, even though some batches were committed.
    """
    data = await file.read() if file is not None else None
    filename = file.filename if file is not None else None

    importer = AnkiImporter(session_factory, storage)
    outcome = await importer.run(owner_id, data, filename)

    return ImportSuccessResponse(
        imported=outcome.imported,
        decks=outcome.decks,
        import_id=outcome.import_id,
        warnings=outcome.warnings or None,
    )


@router.get("/imports/{import_id}", response_model=ImportProgressResponse)
async def get_import_progress(
    import_id: int,
    owner_id: Annotated[str, Depends(get_current_user_id)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ImportProgressResponse:
    """Poll the progress of one of the caller's imports."""
    record = await get_import_record(session, import_id, owner_id=owner_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Import {import_id} not found",
        )

    return ImportProgressResponse(
        import_id=record.id,
        filename=record.filename,
        status=record.status,
        total_cards=record.total_cards,
        imported_cards=record.imported_cards,
        error_message=record.error_message,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )

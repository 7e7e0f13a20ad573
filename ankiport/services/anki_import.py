"""
Anki .apkg import pipeline.

Flow for one import:
    validate upload -> progress record -> open archive -> open collection
    -> validate creation timestamp -> migrate media -> resolve decks
    -> normalize + rewrite each card -> insert in batches -> failure-rate check

Structural problems abort before any card is persisted. Per-card problems
drop the card and are counted. Batches are committed independently, so a
failure-rate breach can follow committed batches; the import is then still
reported as failed.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ankiport.config import (
    CARD_BATCH_SIZE,
    DEFAULT_ANKI_DECK_ID,
    MAX_FAILURE_RATE,
    MEDIA_UPLOAD_CONCURRENCY,
)
from ankiport.db.operations import create_import_record, insert_cards, update_import_record
from ankiport.models.anki import CollectionMeta
from ankiport.models.card import DestinationCard, ImportStats
from ankiport.models.failure import (
    FailureRateExceededError,
    KnownError,
    UnexpectedImportError,
)
from ankiport.parsers.apkg import ApkgArchive, open_archive, validate_upload
from ankiport.parsers.collection_db import AnkiCollection, open_collection
from ankiport.services.content import prepare_note_content
from ankiport.services.deck_hierarchy import DeckHierarchyResolver
from ankiport.services.media import migrate_media
from ankiport.services.scheduling import (
    collection_creation_datetime,
    derive_ease,
    non_negative_count,
    normalize_card,
    validate_destination_card,
)
from ankiport.services.storage import MediaStorage

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


@dataclass
class ImportOutcome:
    """Successful import result."""

    import_id: int | None
    imported: int
    decks: int
    stats: ImportStats
    warnings: list[str] = field(default_factory=list)


class ProgressTracker:
    """
    Best-effort writer for the import progress record.

    Every write uses its own short transaction. Failures are logged and
    never propagate. Writes are serialized so a late per-batch update can
    never overwrite a terminal status.
    """

    def __init__(self, session_factory: SessionFactory, import_id: int | None):
        self._session_factory = session_factory
        self.import_id = import_id
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    async def start(
        cls, session_factory: SessionFactory, owner_id: str, filename: str
    ) -> "ProgressTracker":
        """Create the pending progress record; continue without one on failure."""
        import_id: int | None = None
        try:
            async with session_factory() as session, session.begin():
                record = await create_import_record(session, owner_id, filename)
                import_id = record.id
            logger.info("Created progress record %s", import_id)
        except SQLAlchemyError as e:
            logger.warning("Failed to create progress record: %s", e)
        return cls(session_factory, import_id)

    async def update(self, **fields: Any) -> None:
        """Write fields to the progress record and wait for the write."""
        if self.import_id is None:
            return
        async with self._lock:
            try:
                async with self._session_factory() as session, session.begin():
                    await update_import_record(session, self.import_id, **fields)
            except (SQLAlchemyError, OSError) as e:
                logger.warning("Failed to update progress for import %s: %s", self.import_id, e)

    def schedule(self, **fields: Any) -> None:
        """Write fields to the progress record without waiting."""
        if self.import_id is None:
            return
        task = asyncio.create_task(self.update(**fields))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for scheduled writes still in flight."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


class AnkiImporter:
    """Runs .apkg imports against a database and a media store."""

    def __init__(
        self,
        session_factory: SessionFactory,
        storage: MediaStorage,
        *,
        batch_size: int = CARD_BATCH_SIZE,
        max_failure_rate: float = MAX_FAILURE_RATE,
        media_concurrency: int = MEDIA_UPLOAD_CONCURRENCY,
        clock: Callable[[], datetime] | None = None,
    ):
        self._session_factory = session_factory
        self._storage = storage
        self._batch_size = batch_size
        self._max_failure_rate = max_failure_rate
        self._media_concurrency = media_concurrency
        self._clock = clock or (lambda: datetime.now(UTC))

    async def run(self, owner_id: str, data: bytes | None, filename: str | None) -> ImportOutcome:
        """
        Import one .apkg for an owner.

        Raises:
            KnownError: For any fatal failure; `import_id` is set when a
                progress record exists
        """
        filename, data = validate_upload(filename, data)

        started = time.monotonic()
        logger.info("Anki import started for owner %s: %s", owner_id, filename)
        progress = await ProgressTracker.start(self._session_factory, owner_id, filename)

        try:
            outcome = await self._import(owner_id, data, progress, started)
        except KnownError as e:
            e.import_id = progress.import_id
            logger.error("Anki import failed [%s]: %s (%s)", e.code.value, e.message, e.detail)
            await self._mark_error(progress, e.message)
            raise
        except Exception as e:
            logger.exception("Anki import crashed")
            error = UnexpectedImportError(e)
            error.import_id = progress.import_id
            await self._mark_error(progress, error.message)
            raise error from e

        await progress.drain()
        await progress.update(status="done", imported_cards=outcome.imported)
        return outcome

    async def _mark_error(self, progress: ProgressTracker, message: str) -> None:
        await progress.drain()
        await progress.update(status="error", error_message=message)

    async def _import(
        self, owner_id: str, data: bytes, progress: ProgressTracker, started: float
    ) -> ImportOutcome:
        await progress.update(status="running")

        # Zip checks, extraction and SQLite reads block; keep them off the event loop
        archive = await asyncio.to_thread(open_archive, data)
        try:
            with ExitStack() as stack:
                collection = await asyncio.to_thread(stack.enter_context, open_collection(archive))
                return await self._import_collection(
                    owner_id, archive, collection, progress, started
                )
        finally:
            archive.close()

    async def _import_collection(
        self,
        owner_id: str,
        archive: ApkgArchive,
        collection: AnkiCollection,
        progress: ProgressTracker,
        started: float,
    ) -> ImportOutcome:
        meta = await asyncio.to_thread(collection.read_meta)
        creation = collection_creation_datetime(meta.creation_timestamp)
        logger.info("Collection created: %s", creation.isoformat())

        stats = ImportStats(total_cards=await asyncio.to_thread(collection.card_count))
        await progress.update(total_cards=stats.total_cards)

        url_map, assets = await migrate_media(
            archive,
            archive.media_map(),
            self._storage,
            owner_id,
            concurrency=self._media_concurrency,
        )
        stats.media_total = len(assets)
        stats.media_uploaded = sum(1 for asset in assets if asset.public_url)

        deck_map, resolver = await self._resolve_decks(owner_id, meta)
        stats.decks_created = resolver.created_count

        now = self._clock()
        rows = await asyncio.to_thread(
            self._build_rows, owner_id, collection, deck_map, url_map, creation, now, stats
        )
        await self._insert_batches(rows, stats, progress)

        logger.info(
            "Import summary: %s, duration_ms=%d",
            stats.summary(),
            int((time.monotonic() - started) * 1000),
        )

        if stats.failure_rate > self._max_failure_rate:
            raise FailureRateExceededError(
                failed=stats.failed_inserts,
                processed=stats.processed,
                imported=stats.imported,
            )

        warnings: list[str] = []
        if stats.failed_inserts:
            logger.warning("%d cards failed to import", stats.failed_inserts)
            warnings.append(f"{stats.failed_inserts} cards failed to import")
        if stats.media_uploaded < stats.media_total:
            missing = stats.media_total - stats.media_uploaded
            warnings.append(f"{missing} of {stats.media_total} images could not be uploaded")
        stats.warnings = warnings

        return ImportOutcome(
            import_id=progress.import_id,
            imported=stats.imported,
            decks=resolver.path_count,
            stats=stats,
            warnings=warnings,
        )

    async def _resolve_decks(
        self, owner_id: str, meta: CollectionMeta
    ) -> tuple[dict[int, int], DeckHierarchyResolver]:
        async with self._session_factory() as session, session.begin():
            resolver = DeckHierarchyResolver(session, owner_id)
            deck_map = await resolver.resolve_all(meta)
        return deck_map, resolver

    def _build_rows(
        self,
        owner_id: str,
        collection: AnkiCollection,
        deck_map: dict[int, int],
        url_map: dict[str, str],
        creation: datetime,
        now: datetime,
        stats: ImportStats,
    ) -> list[dict[str, Any]]:
        notes = {note.id: note for note in collection.notes()}
        rows: list[dict[str, Any]] = []

        for card in collection.cards():
            note = notes.get(card.note_id)
            if note is None:
                stats.skipped_no_note += 1
                continue

            if card.deck_id == DEFAULT_ANKI_DECK_ID:
                stats.skipped_default_deck += 1
                continue

            deck_id = deck_map.get(card.deck_id)
            if deck_id is None:
                stats.skipped_no_deck += 1
                continue

            front, back = prepare_note_content(note, url_map)
            if not front.strip() or not back.strip():
                stats.skipped_empty_fields += 1
                continue

            schedule = normalize_card(card, creation, now)
            destination = DestinationCard(
                owner_id=owner_id,
                deck_id=deck_id,
                front=front,
                back=back,
                state=schedule.state,
                due_at=schedule.due_at,
                interval_days=schedule.interval_days,
                ease=derive_ease(card.factor),
                reps=non_negative_count(card.reps),
                lapses=non_negative_count(card.lapses),
                suspended=schedule.suspended,
            )

            error = validate_destination_card(destination)
            if error:
                logger.warning("Card %s failed validation: %s", card.id, error)
                stats.failed_inserts += 1
                continue

            rows.append(destination.to_row())

        logger.info("Prepared %d card rows", len(rows))
        return rows

    async def _insert_batches(
        self, rows: list[dict[str, Any]], stats: ImportStats, progress: ProgressTracker
    ) -> None:
        for start in range(0, len(rows), self._batch_size):
            batch = rows[start : start + self._batch_size]
            try:
                async with self._session_factory() as session, session.begin():
                    await insert_cards(session, batch)
            except SQLAlchemyError as e:
                stats.failed_inserts += len(batch)
                logger.error(
                    "Batch insert failed: index=%d, size=%d, error=%s", start, len(batch), e
                )
            else:
                stats.imported += len(batch)

            progress.schedule(imported_cards=stats.imported)

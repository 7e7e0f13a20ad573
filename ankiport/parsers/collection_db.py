"""
Adapter for the SQLite collection embedded in an .apkg.

The collection entry is extracted to a uniquely named temporary file so
concurrent imports never collide, opened read-only, and removed on every
exit path.
"""

import json
import logging
import os
import sqlite3
import tempfile
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ankiport.models.anki import CollectionMeta, SourceCard, SourceNote
from ankiport.models.failure import ImportErrorCode, StructuralImportError
from ankiport.parsers.apkg import ApkgArchive

logger = logging.getLogger(__name__)

COLLECTION_TABLE = "col"

REQUIRED_TABLES = (COLLECTION_TABLE, "notes", "cards")

NOTES_QUERY = "SELECT id, mid, flds, tags FROM notes"

CARDS_QUERY = """
    SELECT id, nid, did, type, queue, ivl, factor, reps, lapses, due
    FROM cards
"""


class AnkiCollection:
    """An open, read-only Anki collection database."""

    def __init__(self, connection: sqlite3.Connection):
        self._conn = connection

    def table_names(self) -> list[str]:
        rows = self._conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        return [row[0] for row in rows]

    def read_meta(self) -> CollectionMeta:
        """
        Read deck definitions and creation time from the `col` row.

        Raises:
            StructuralImportError: METADATA_UNREADABLE if the row is missing
                or the decks JSON cannot be parsed
        """
        try:
            row = self._conn.execute(f"SELECT decks, crt FROM {COLLECTION_TABLE}").fetchone()
        except sqlite3.Error as e:
            raise _metadata_unreadable(str(e)) from e

        if row is None:
            raise _metadata_unreadable("Collection table is empty")

        decks_raw, crt = row
        try:
            decks = json.loads(decks_raw) if decks_raw else {}
        except (TypeError, json.JSONDecodeError) as e:
            raise _metadata_unreadable(f"Invalid decks JSON: {e}") from e

        if not isinstance(decks, dict):
            raise _metadata_unreadable("Decks JSON is not an object")

        return CollectionMeta(decks=decks, creation_timestamp=crt)

    def notes(self) -> Iterator[SourceNote]:
        """Stream every note row."""
        for note_id, model_id, flds, tags in self._conn.execute(NOTES_QUERY):
            yield SourceNote(id=note_id, model_id=model_id, fields=flds or "", tags=tags or "")

    def cards(self) -> Iterator[SourceCard]:
        """Stream every card row."""
        for row in self._conn.execute(CARDS_QUERY):
            card_id, nid, did, card_type, queue, ivl, factor, reps, lapses, due = row
            yield SourceCard(
                id=card_id,
                note_id=nid,
                deck_id=did,
                type=card_type,
                queue=queue,
                ivl=ivl,
                factor=factor,
                reps=reps,
                lapses=lapses,
                due=due,
            )

    def card_count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) FROM cards").fetchone()
        return int(row[0]) if row else 0


def _metadata_unreadable(detail: str) -> StructuralImportError:
    return StructuralImportError(
        ImportErrorCode.METADATA_UNREADABLE,
        "Unable to read Anki collection data. The file may be corrupted.",
        detail=detail,
    )


def _temp_collection_path() -> Path:
    return Path(tempfile.gettempdir()) / f"anki-{uuid.uuid4()}.anki2"


def _remove_quietly(path: Path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to clean up temp file %s: %s", path, e)


@contextmanager
def open_collection(archive: ApkgArchive) -> Iterator[AnkiCollection]:
    """
    Extract and open the archive's collection database.

    Usage:
        with open_collection(archive) as collection:
            meta = collection.read_meta()
            for card in collection.cards():
                ...

    Raises:
        StructuralImportError: NO_COLLECTION_FOUND, UNSUPPORTED_FORMAT
    """
    entry = archive.collection_entry()
    temp_path = _temp_collection_path()
    connection: sqlite3.Connection | None = None

    try:
        temp_path.write_bytes(archive.read(entry))

        try:
            connection = sqlite3.connect(
                f"{temp_path.as_uri()}?mode=ro", uri=True, check_same_thread=False
            )
            # A single badly encoded field must not abort the whole read
            connection.text_factory = lambda raw: raw.decode("utf-8", "replace")
            collection = AnkiCollection(connection)
            tables = collection.table_names()
        except sqlite3.DatabaseError as e:
            raise StructuralImportError(
                ImportErrorCode.UNSUPPORTED_FORMAT,
                "This Anki file format is not supported. "
                "Please ensure you're using Anki 2.0 or later.",
                detail=f"Collection is not a readable SQLite database: {e}",
            ) from e

        logger.info("Tables in database: %s", tables)
        missing = [name for name in REQUIRED_TABLES if name not in tables]
        if missing:
            raise StructuralImportError(
                ImportErrorCode.UNSUPPORTED_FORMAT,
                "This Anki file format is not supported. "
                "Please ensure you're using Anki 2.0 or later.",
                detail=f"Found tables: {', '.join(tables)}",
            )

        yield collection
    finally:
        if connection is not None:
            connection.close()
        _remove_quietly(temp_path)

import io
import json
import sqlite3
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ankiport.models.db import Base
from ankiport.services.storage import StorageError

# 2021-01-01T00:00:00Z
COLLECTION_CRT = 1_609_459_200

DEFAULT_DECKS = {
    "1": {"id": 1, "name": "Default"},
    "100": {"id": 100, "name": "Spanish::Verbs"},
}

CARD_DEFAULTS: dict[str, Any] = {
    "type": 0,
    "queue": 0,
    "ivl": 0,
    "factor": 2500,
    "reps": 0,
    "lapses": 0,
    "due": 1,
}

COLLECTION_SCHEMA = """
    CREATE TABLE col (id INTEGER PRIMARY KEY, crt INTEGER, decks TEXT);
    CREATE TABLE notes (id INTEGER PRIMARY KEY, mid INTEGER, flds TEXT, tags TEXT);
    CREATE TABLE cards (
        id INTEGER PRIMARY KEY, nid INTEGER, did INTEGER, type INTEGER, queue INTEGER,
        ivl INTEGER, factor INTEGER, reps INTEGER, lapses INTEGER, due INTEGER
    );
"""


def _write_collection(
    path: Path,
    decks: dict[str, Any],
    notes: list[dict[str, Any]],
    cards: list[dict[str, Any]],
    crt: Any,
) -> bytes:
    conn = sqlite3.connect(path)
    try:
        conn.executescript(COLLECTION_SCHEMA)
        conn.execute("INSERT INTO col (id, crt, decks) VALUES (1, ?, ?)", (crt, json.dumps(decks)))
        conn.executemany(
            "INSERT INTO notes (id, mid, flds, tags) VALUES (?, ?, ?, ?)",
            [(n["id"], n.get("mid", 1), n["flds"], n.get("tags", "")) for n in notes],
        )
        conn.executemany(
            "INSERT INTO cards (id, nid, did, type, queue, ivl, factor, reps, lapses, due) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    c["id"],
                    c["nid"],
                    c["did"],
                    *(c.get(key, default) for key, default in CARD_DEFAULTS.items()),
                )
                for c in cards
            ],
        )
        conn.commit()
    finally:
        conn.close()
    return path.read_bytes()


@pytest.fixture
def make_collection(tmp_path: Path) -> Callable[..., bytes]:
    """Factory building raw Anki collection database bytes."""
    counter = iter(range(1_000_000))

    def factory(
        decks: dict[str, Any] | None = None,
        notes: list[dict[str, Any]] | None = None,
        cards: list[dict[str, Any]] | None = None,
        crt: Any = COLLECTION_CRT,
    ) -> bytes:
        path = tmp_path / f"collection-{next(counter)}.anki2"
        return _write_collection(
            path,
            DEFAULT_DECKS if decks is None else decks,
            notes or [],
            cards or [],
            crt,
        )

    return factory


@pytest.fixture
def make_apkg(make_collection: Callable[..., bytes]) -> Callable[..., bytes]:
    """
    Factory building .apkg bytes.

    Cards are dicts with at least id, nid and did; other columns default
    to a new card. `files` adds extra archive entries (media).
    """

    def factory(
        decks: dict[str, Any] | None = None,
        notes: list[dict[str, Any]] | None = None,
        cards: list[dict[str, Any]] | None = None,
        crt: Any = COLLECTION_CRT,
        media: dict[str, str] | None = None,
        files: dict[str, bytes] | None = None,
        collection_name: str = "collection.anki2",
    ) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(collection_name, make_collection(decks, notes, cards, crt))
            zf.writestr("media", json.dumps(media or {}))
            for name, data in (files or {}).items():
                zf.writestr(name, data)
        return buffer.getvalue()

    return factory


@pytest.fixture
def sample_apkg(make_apkg: Callable[..., bytes]) -> bytes:
    """Two cards in a nested deck, one with an image, one in the default deck."""
    return make_apkg(
        notes=[
            {"id": 10, "flds": 'hablar<img src="1.jpg">\x1fto speak'},
            {"id": 11, "flds": "comer\x1fto eat &amp; drink"},
            {"id": 12, "flds": "default\x1fdeck"},
        ],
        cards=[
            {"id": 1000, "nid": 10, "did": 100, "type": 2, "queue": 2, "ivl": 10, "due": 30},
            {"id": 1001, "nid": 11, "did": 100},
            {"id": 1002, "nid": 12, "did": 1},
        ],
        media={"1.jpg": "diagram.png"},
        files={"1.jpg": b"\x89PNG fake image"},
    )


class FakeStorage:
    """In-memory media store recording uploads."""

    base_url = "https://storage.test/public"

    def __init__(self) -> None:
        self.uploads: dict[str, tuple[bytes, str]] = {}
        self.fail_paths: set[str] = set()

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if path in self.fail_paths:
            raise StorageError(f"Failed to upload {path}")
        self.uploads[path] = (data, content_type)
        return f"{self.base_url}/{path}"

    async def aclose(self) -> None:
        pass


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
async def async_engine(tmp_path: Path):
    """
    Create a file-backed SQLite engine for testing.

    Imports write from several sessions at once, so each session needs its
    own connection to the same database.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session

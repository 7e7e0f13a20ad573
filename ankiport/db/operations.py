"""
Database CRUD operations.

Provides async functions for decks, cards and import progress records.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from ankiport.models.db import AnkiImportDB, CardDB, DeckDB

IMPORT_STATUSES = ("pending", "running", "done", "error")

IMPORTED_DECK_MODE = "classic"

# --- Deck Operations ---


async def find_deck(
    session: AsyncSession, owner_id: str, name: str, parent_deck_id: int | None
) -> DeckDB | None:
    """
    Find a deck by owner, name and parent.

    A `parent_deck_id` of None matches top-level decks only.
    """
    parent_clause = (
        DeckDB.parent_deck_id.is_(None)
        if parent_deck_id is None
        else DeckDB.parent_deck_id == parent_deck_id
    )
    result = await session.execute(
        select(DeckDB)
        .where(DeckDB.owner_id == owner_id, DeckDB.name == name, parent_clause)
        .order_by(DeckDB.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_deck(
    session: AsyncSession,
    owner_id: str,
    name: str,
    parent_deck_id: int | None,
    mode: str = IMPORTED_DECK_MODE,
) -> DeckDB:
    """Create a deck and flush to obtain its id."""
    deck = DeckDB(owner_id=owner_id, name=name, parent_deck_id=parent_deck_id, mode=mode)
    session.add(deck)
    await session.flush()
    return deck


async def get_or_create_deck(
    session: AsyncSession, owner_id: str, name: str, parent_deck_id: int | None
) -> tuple[DeckDB, bool]:
    """
    Get existing deck or create new one.

    Returns:
        Tuple of (deck, created) where created is True if new.
    """
    deck = await find_deck(session, owner_id, name, parent_deck_id)
    if deck:
        return deck, False

    deck = await create_deck(session, owner_id, name, parent_deck_id)
    return deck, True


# --- Card Operations ---


async def insert_cards(session: AsyncSession, rows: Sequence[dict[str, Any]]) -> int:
    """
    Insert a batch of cards in one statement.

    Returns the number of rows submitted. The caller owns the transaction.
    """
    if not rows:
        return 0
    await session.execute(insert(CardDB), list(rows))
    return len(rows)


# --- Import Progress Operations ---


async def create_import_record(
    session: AsyncSession, owner_id: str, filename: str
) -> AnkiImportDB:
    """Create a pending progress record for a new import."""
    record = AnkiImportDB(
        owner_id=owner_id,
        filename=filename,
        status="pending",
        total_cards=0,
        imported_cards=0,
    )
    session.add(record)
    await session.flush()
    return record


async def get_import_record(
    session: AsyncSession, import_id: int, owner_id: str | None = None
) -> AnkiImportDB | None:
    """
    Get a progress record by id.

    When `owner_id` is given, records of other owners are not returned.
    """
    query = select(AnkiImportDB).where(AnkiImportDB.id == import_id)
    if owner_id is not None:
        query = query.where(AnkiImportDB.owner_id == owner_id)
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def update_import_record(
    session: AsyncSession, import_id: int, **fields: Any
) -> AnkiImportDB | None:
    """
    Update fields of a progress record.

    Returns None if the record does not exist.

    Raises:
        ValueError: If `status` is not a known import status
    """
    status = fields.get("status")
    if status is not None and status not in IMPORT_STATUSES:
        msg = f"Unknown import status '{status}', expected one of {IMPORT_STATUSES}"
        raise ValueError(msg)

    record = await get_import_record(session, import_id)
    if record is None:
        return None

    for key, value in fields.items():
        setattr(record, key, value)
    record.updated_at = datetime.now(UTC)
    await session.flush()
    return record

"""Tests for database CRUD operations."""

from datetime import UTC, datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ankiport.db.operations import (
    create_deck,
    create_import_record,
    find_deck,
    get_import_record,
    get_or_create_deck,
    insert_cards,
    update_import_record,
)
from ankiport.models.db import CardDB


async def card_count(session: AsyncSession, owner_id: str) -> int:
    result = await session.execute(
        select(func.count()).select_from(CardDB).where(CardDB.owner_id == owner_id)
    )
    return result.scalar_one()


def card_row(deck_id: int, owner_id: str = "user-1", **overrides) -> dict:
    row = {
        "owner_id": owner_id,
        "deck_id": deck_id,
        "front": "front",
        "back": "back",
        "state": "new",
        "due_at": datetime(2024, 1, 1, tzinfo=UTC),
        "interval_days": 0,
        "ease": 2.5,
        "reps": 0,
        "lapses": 0,
        "learning_step_index": 0,
        "suspended": False,
    }
    row.update(overrides)
    return row


class TestDeckOperations:
    async def test_create_deck(self, session: AsyncSession) -> None:
        """Can create a top-level deck."""
        deck = await create_deck(session, "user-1", "Spanish", None)

        assert deck.id is not None
        assert deck.parent_deck_id is None
        assert deck.mode == "classic"

    async def test_find_top_level_only(self, session: AsyncSession) -> None:
        """A None parent matches top-level decks only."""
        parent = await create_deck(session, "user-1", "Spanish", None)
        await create_deck(session, "user-1", "Verbs", parent.id)

        assert await find_deck(session, "user-1", "Verbs", None) is None
        found = await find_deck(session, "user-1", "Verbs", parent.id)
        assert found is not None
        assert found.parent_deck_id == parent.id

    async def test_get_or_create_existing(self, session: AsyncSession) -> None:
        """Returns existing deck without creating a new one."""
        existing = await create_deck(session, "user-1", "Spanish", None)

        deck, created = await get_or_create_deck(session, "user-1", "Spanish", None)

        assert created is False
        assert deck.id == existing.id

    async def test_get_or_create_new(self, session: AsyncSession) -> None:
        """Creates a deck if none exists."""
        deck, created = await get_or_create_deck(session, "user-1", "French", None)

        assert created is True
        assert deck.name == "French"


class TestCardOperations:
    async def test_insert_cards(self, session: AsyncSession) -> None:
        """A batch of rows is inserted in one call."""
        deck = await create_deck(session, "user-1", "Spanish", None)

        inserted = await insert_cards(session, [card_row(deck.id), card_row(deck.id)])
        await session.commit()

        assert inserted == 2
        assert await card_count(session, "user-1") == 2
        assert await card_count(session, "user-2") == 0

    async def test_insert_empty_batch(self, session: AsyncSession) -> None:
        """An empty batch is a no-op."""
        assert await insert_cards(session, []) == 0


class TestImportRecordOperations:
    async def test_create_pending(self, session: AsyncSession) -> None:
        """New records start pending with zero counters."""
        record = await create_import_record(session, "user-1", "deck.apkg")

        assert record.id is not None
        assert record.status == "pending"
        assert record.total_cards == 0
        assert record.imported_cards == 0

    async def test_owner_scoped_lookup(self, session: AsyncSession) -> None:
        """Records of other owners are hidden when an owner is given."""
        record = await create_import_record(session, "user-1", "deck.apkg")
        await session.commit()

        assert await get_import_record(session, record.id, owner_id="user-1") is not None
        assert await get_import_record(session, record.id, owner_id="user-2") is None
        assert await get_import_record(session, record.id) is not None

    async def test_update_fields(self, session: AsyncSession) -> None:
        """Status and counters are updated."""
        record = await create_import_record(session, "user-1", "deck.apkg")

        updated = await update_import_record(
            session, record.id, status="done", total_cards=10, imported_cards=9
        )

        assert updated is not None
        assert (updated.status, updated.total_cards, updated.imported_cards) == ("done", 10, 9)

    async def test_update_missing_record(self, session: AsyncSession) -> None:
        """Updating a missing record returns None."""
        assert await update_import_record(session, 999, status="running") is None

    async def test_update_rejects_unknown_status(self, session: AsyncSession) -> None:
        """Unknown statuses are rejected."""
        record = await create_import_record(session, "user-1", "deck.apkg")

        with pytest.raises(ValueError, match="Unknown import status"):
            await update_import_record(session, record.id, status="finished")

"""Tests for import data models."""

from datetime import UTC, datetime

import pytest

from ankiport.models.anki import CollectionMeta, SourceNote
from ankiport.models.card import CardState, DestinationCard, ImportStats
from ankiport.models.failure import (
    ConfigurationError,
    FailureRateExceededError,
    ImportErrorCode,
    UnexpectedImportError,
)


class TestSourceNote:
    def test_split_fields(self) -> None:
        """Fields are separated by the unit separator."""
        note = SourceNote(id=1, model_id=1, fields="a\x1fb\x1fc", tags=" verb  spanish ")

        assert note.split_fields() == ["a", "b", "c"]


class TestCollectionMeta:
    def test_deck_names_skip_invalid(self) -> None:
        """Decks without a usable id or name are ignored."""
        meta = CollectionMeta(
            decks={
                "1": {"name": "Default"},
                "abc": {"name": "Broken id"},
                "5": {"desc": "no name"},
                "6": "not a dict",
            }
        )

        assert meta.deck_names() == {1: "Default"}


class TestDestinationCard:
    def test_to_row(self) -> None:
        """Rows carry the enum value and a reset learning step."""
        due = datetime(2024, 1, 1, tzinfo=UTC)
        card = DestinationCard(
            owner_id="u",
            deck_id=3,
            front="f",
            back="b",
            state=CardState.SUSPENDED,
            due_at=due,
            interval_days=4,
            ease=2.1,
            reps=7,
            lapses=2,
            suspended=True,
        )

        row = card.to_row()

        assert row["state"] == "suspended"
        assert row["learning_step_index"] == 0
        assert row["due_at"] == due


class TestImportStats:
    def test_failure_rate_excludes_default_deck(self) -> None:
        """Default-deck cards are not part of the denominator."""
        stats = ImportStats(total_cards=120, skipped_default_deck=20, failed_inserts=10)

        assert stats.processed == 100
        assert stats.failure_rate == pytest.approx(0.10)

    def test_failure_rate_without_cards(self) -> None:
        """An empty collection has a zero failure rate."""
        stats = ImportStats(total_cards=5, skipped_default_deck=5)

        assert stats.failure_rate == 0.0


class TestFailures:
    def test_failure_rate_message(self) -> None:
        """The message reports counts and percentage."""
        error = FailureRateExceededError(failed=150, processed=1000, imported=850)

        assert error.code == ImportErrorCode.FAILURE_RATE_EXCEEDED
        assert "150 out of 1000" in error.message
        assert "(15.0%)" in error.message
        assert error.detail == "850 cards were committed before the check"

    def test_configuration_error(self) -> None:
        """Configuration errors are service unavailable."""
        error = ConfigurationError("missing key")

        assert error.status_code == 503
        assert error.code == ImportErrorCode.CONFIGURATION_ERROR

    def test_unexpected_error_hides_message(self) -> None:
        """Only the exception type is exposed."""
        error = UnexpectedImportError(ValueError("secret internals"))

        assert error.detail == "ValueError"
        assert "secret" not in error.message

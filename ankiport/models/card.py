from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CardState(str, Enum):
    """Scheduling state of an imported card."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    SUSPENDED = "suspended"


@dataclass(frozen=True)
class ScheduleResult:
    """Normalized scheduling fields for one card."""

    state: CardState
    due_at: datetime
    interval_days: int
    suspended: bool


@dataclass
class DestinationCard:
    """
    A card ready to be persisted.

    `suspended` mirrors `state == CardState.SUSPENDED`; both are stored
    because the study side filters on the boolean.
    """

    owner_id: str
    deck_id: int
    front: str
    back: str
    state: CardState
    due_at: datetime
    interval_days: int
    ease: float
    reps: int
    lapses: int
    suspended: bool

    def to_row(self) -> dict[str, Any]:
        """Insert mapping for the cards table."""
        return {
            "owner_id": self.owner_id,
            "deck_id": self.deck_id,
            "front": self.front,
            "back": self.back,
            "state": self.state.value,
            "due_at": self.due_at,
            "interval_days": self.interval_days,
            "ease": self.ease,
            "reps": self.reps,
            "lapses": self.lapses,
            "learning_step_index": 0,
            "suspended": self.suspended,
        }


@dataclass
class MediaAsset:
    """An image inside the archive scheduled for upload."""

    entry_name: str
    original_filename: str
    content_type: str
    public_url: str | None = None


@dataclass
class ImportStats:
    """Per-import counters."""

    total_cards: int = 0
    imported: int = 0
    skipped_no_note: int = 0
    skipped_no_deck: int = 0
    skipped_default_deck: int = 0
    skipped_empty_fields: int = 0
    failed_inserts: int = 0
    decks_created: int = 0
    media_uploaded: int = 0
    media_total: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        """Cards considered for import (default-deck cards excluded)."""
        return self.total_cards - self.skipped_default_deck

    @property
    def failure_rate(self) -> float:
        """Share of processed cards that failed validation or insertion."""
        if self.processed <= 0:
            return 0.0
        return self.failed_inserts / self.processed

    def summary(self) -> dict[str, int]:
        """Counters for logging."""
        return {
            "total": self.total_cards,
            "imported": self.imported,
            "skipped_no_note": self.skipped_no_note,
            "skipped_no_deck": self.skipped_no_deck,
            "skipped_default_deck": self.skipped_default_deck,
            "skipped_empty_fields": self.skipped_empty_fields,
            "failed_inserts": self.failed_inserts,
            "decks_created": self.decks_created,
            "media_uploaded": self.media_uploaded,
        }

"""
Raw rows read from an Anki collection database.

Values are kept exactly as SQLite returned them. Anki databases in the wild
contain NULLs, floats and occasionally text in numeric columns, so nothing
here is trusted until it has gone through the scheduling normalizer.
"""

from dataclasses import dataclass, field
from typing import Any

# Anki separates note fields with the ASCII unit separator
FIELD_SEPARATOR = "\x1f"


@dataclass(frozen=True)
class SourceCard:
    """
    One row of the Anki `cards` table.

    Attributes:
        id: Anki card id
        note_id: Owning note (`nid`)
        deck_id: Source deck (`did`)
        type: 0=new, 1=learning, 2=review, 3=relearning
        queue: 0=new, 1=learning, 2=review, 3=day learning,
            -1=suspended, -2/-3=buried
        ivl: Negative = seconds (intraday learning), positive = days
        factor: Ease in permille (2500 = 2.5)
        reps: Review count
        lapses: Lapse count
        due: Sort rank, epoch seconds or day offset depending on queue
    """

    id: int
    note_id: int
    deck_id: int
    type: Any
    queue: Any
    ivl: Any
    factor: Any
    reps: Any
    lapses: Any
    due: Any


@dataclass(frozen=True)
class SourceNote:
    """One row of the Anki `notes` table."""

    id: int
    model_id: int
    fields: str
    tags: str = ""

    def split_fields(self) -> list[str]:
        """Split the raw field string on the Anki field separator."""
        return (self.fields or "").split(FIELD_SEPARATOR)


@dataclass(frozen=True)
class CollectionMeta:
    """
    Collection-level metadata from the single `col` row.

    `creation_timestamp` is the raw `crt` value (seconds since epoch). It is
    the zero point for every day-offset due date and must be validated
    before use.
    """

    decks: dict[str, dict[str, Any]] = field(default_factory=dict)
    creation_timestamp: Any = None

    def deck_names(self) -> dict[int, str]:
        """Map source deck id to full "::"-joined deck name."""
        names: dict[int, str] = {}
        for deck_id, deck in self.decks.items():
            name = deck.get("name") if isinstance(deck, dict) else None
            if not isinstance(name, str):
                continue
            try:
                names[int(deck_id)] = name
            except (TypeError, ValueError):
                continue
        return names

"""
Scheduling state normalization for imported Anki cards.

Anki's `due` column is polysemous: its meaning depends on the card's queue.

    queue  0  new            due = sort rank, not a date
    queue  1  learning       due = epoch seconds
    queue  2  review         due = days since collection creation
    queue  3  day learning   due = days since collection creation
    queue -1  suspended      due = days since collection creation
    queue -2  buried (sched) due = days since collection creation
    queue -3  buried (user)  due = days since collection creation

Buried cards are a transient scheduling hold, not a user suspension: their
state is recovered from the card `type`. Only queue -1 maps to suspended.

`now` is always passed in by the caller and captured once per import.
"""

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from ankiport.models.anki import SourceCard
from ankiport.models.card import CardState, DestinationCard, ScheduleResult
from ankiport.models.failure import ImportErrorCode, StructuralImportError

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

# Epoch seconds for the year 3000; anything above is treated as corrupt
MAX_TIMESTAMP = 32_503_680_000

# Intraday learning due values below this (~2001-09-09) are not timestamps
LEARNING_TIMESTAMP_FLOOR = 1_000_000_000

DEFAULT_EASE = 2.5
MIN_EASE = 1.3
MAX_EASE = 5.0

# 100 years; anything longer is a corrupt interval
MAX_INTERVAL_DAYS = 36_500

# Upper bound of the 32-bit integer columns reps and lapses are stored in
MAX_COUNT = 2**31 - 1

QUEUE_NEW = 0
QUEUE_LEARNING = 1
QUEUE_REVIEW = 2
QUEUE_DAY_LEARNING = 3
QUEUE_SUSPENDED = -1
QUEUE_SCHED_BURIED = -2
QUEUE_USER_BURIED = -3

TYPE_NEW = 0
TYPE_LEARNING = 1
TYPE_REVIEW = 2
TYPE_RELEARNING = 3

VALID_STATES = frozenset(CardState)


# --- Numeric validation ---


def _to_number(value: Any) -> float | None:
    """Coerce a raw SQLite value to a finite number, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def _to_int(value: Any) -> int | None:
    """Coerce a raw value to an int if it is an integral number."""
    num = _to_number(value)
    if num is None or not num.is_integer():
        return None
    return int(num)


def validate_timestamp(value: Any, field_name: str) -> float | None:
    """
    Validate a raw timestamp or day offset.

    Returns the numeric value, or None if it is missing, NaN, negative or
    implausibly large. Intervals, where negative values are meaningful, do
    not go through this check.
    """
    num = _to_number(value)
    if num is None:
        logger.debug("%s is not a number: %r", field_name, value)
        return None
    if num < 0:
        logger.debug("%s is negative: %s", field_name, num)
        return None
    if num > MAX_TIMESTAMP:
        logger.debug("%s is unreasonably large: %s", field_name, num)
        return None
    return num


def timestamp_to_datetime(value: Any, field_name: str) -> datetime | None:
    """Convert Anki epoch seconds to an aware UTC datetime, or None."""
    seconds = validate_timestamp(value, field_name)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        logger.debug("%s produced an invalid datetime: %r", field_name, value)
        return None


def day_offset_to_datetime(day: Any, creation: datetime, field_name: str) -> datetime | None:
    """
    Convert a day number since collection creation to a datetime.

    Returns None if the offset is invalid or the result lies beyond the
    plausible range.
    """
    days = validate_timestamp(day, field_name)
    if days is None:
        return None
    try:
        result = creation + timedelta(seconds=days * SECONDS_PER_DAY)
    except OverflowError:
        logger.debug("%s overflows: day=%r, base=%s", field_name, day, creation.isoformat())
        return None
    if result.timestamp() > MAX_TIMESTAMP:
        logger.debug("%s lies beyond year 3000: day=%r", field_name, day)
        return None
    return result


def collection_creation_datetime(crt: Any) -> datetime:
    """
    Validate the collection creation timestamp.

    Every day-offset due date is computed from this instant, so an invalid
    value fails the whole import instead of silently using `now`.

    Raises:
        StructuralImportError: INVALID_CREATION_TIMESTAMP
    """
    creation = timestamp_to_datetime(crt, "collection.crt")
    if creation is None:
        raise StructuralImportError(
            ImportErrorCode.INVALID_CREATION_TIMESTAMP,
            "The Anki file appears to be corrupted (invalid collection timestamp). "
            "Please try exporting it again from Anki.",
            detail=f"Invalid collection creation timestamp: {crt!r}",
        )
    return creation


# --- State ---


def state_from_type(card_type: Any) -> CardState:
    """Underlying state of a buried card, recovered from its type."""
    value = _to_int(card_type)
    if value == TYPE_NEW:
        return CardState.NEW
    if value in (TYPE_LEARNING, TYPE_RELEARNING):
        return CardState.LEARNING
    return CardState.REVIEW


def card_state(queue: Any, card_type: Any) -> CardState:
    """
    Map an Anki queue (and type, for buried cards) to a card state.

    Only queue -1 is a user suspension. Buried queues (-2/-3) keep the
    card's underlying state.
    """
    value = _to_int(queue)
    if value == QUEUE_SUSPENDED:
        return CardState.SUSPENDED
    if value is not None and value < 0:
        return state_from_type(card_type)
    if value == QUEUE_NEW:
        return CardState.NEW
    if value in (QUEUE_LEARNING, QUEUE_DAY_LEARNING):
        return CardState.LEARNING
    if value == QUEUE_REVIEW:
        return CardState.REVIEW
    return CardState.NEW


def interval_days(ivl: Any, queue: Any, card_type: Any) -> int:
    """
    Day-based interval of a card.

    Negative `ivl` on learning cards counts seconds and contributes nothing.
    """
    queue_value = _to_int(queue)
    if queue_value in (QUEUE_NEW, QUEUE_LEARNING) or _to_int(card_type) == TYPE_NEW:
        return 0
    value = _to_number(ivl)
    if value is None or value < 0:
        return 0
    return int(value)


# --- Due dates (dispatch by queue) ---

DueRule = Callable[[SourceCard, datetime, datetime], datetime]


def _due_new(card: SourceCard, creation: datetime, now: datetime) -> datetime:
    # `due` is a sort rank for new cards
    return now


def _due_intraday_learning(card: SourceCard, creation: datetime, now: datetime) -> datetime:
    seconds = _to_number(card.due)
    if seconds is not None and seconds > LEARNING_TIMESTAMP_FLOOR:
        due_at = timestamp_to_datetime(seconds, "due (learning)")
        if due_at is not None:
            return due_at
    logger.warning("Learning card %s with invalid due timestamp: %r, using now", card.id, card.due)
    return now


def _day_offset_rule(label: str) -> DueRule:
    def rule(card: SourceCard, creation: datetime, now: datetime) -> datetime:
        due_at = day_offset_to_datetime(card.due, creation, f"due ({label})")
        if due_at is not None:
            return due_at
        logger.warning("%s card %s with invalid due day: %r, using now", label, card.id, card.due)
        return now

    return rule


_due_day_learning = _day_offset_rule("day learning")
_due_review = _day_offset_rule("review")
_due_held = _day_offset_rule("suspended/buried")

DUE_RULES: dict[int, DueRule] = {
    QUEUE_NEW: _due_new,
    QUEUE_LEARNING: _due_intraday_learning,
    QUEUE_REVIEW: _due_review,
    QUEUE_DAY_LEARNING: _due_day_learning,
    QUEUE_SUSPENDED: _due_held,
    QUEUE_SCHED_BURIED: _due_held,
    QUEUE_USER_BURIED: _due_held,
}


def normalize_due(card: SourceCard, creation: datetime, now: datetime) -> datetime:
    """
    Compute an absolute due instant for a card.

    Never raises: anything that cannot be interpreted falls back to `now`
    with a warning.
    """
    queue = _to_int(card.queue)
    rule = DUE_RULES.get(queue) if queue is not None else None
    if rule is None and queue is not None and queue < 0:
        rule = _due_held
    if rule is None:
        logger.warning("Unknown queue state %r for card %s, using now", card.queue, card.id)
        return now
    return rule(card, creation, now)


def normalize_card(card: SourceCard, creation: datetime, now: datetime) -> ScheduleResult:
    """Normalize the scheduling fields of one source card."""
    state = card_state(card.queue, card.type)
    return ScheduleResult(
        state=state,
        due_at=normalize_due(card, creation, now),
        interval_days=interval_days(card.ivl, card.queue, card.type),
        suspended=state is CardState.SUSPENDED,
    )


# --- Ease and counters ---


def derive_ease(factor: Any) -> float:
    """Ease from Anki's permille factor, clamped to [1.3, 5.0]."""
    value = _to_number(factor)
    if value is None or value <= 0:
        return DEFAULT_EASE
    return min(max(value / 1000, MIN_EASE), MAX_EASE)


def non_negative_count(value: Any) -> int:
    """Reps/lapses as a non-negative int, defaulting to 0."""
    num = _to_number(value)
    if num is None or num < 0:
        return 0
    return int(num)


# --- Final validation ---


def _text_problem(text: str) -> str | None:
    """Why `text` cannot be stored as a database string, or None."""
    if "\x00" in text:
        return "contains a NUL character"
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return "is not valid UTF-8"
    return None


def validate_destination_card(card: DestinationCard) -> str | None:
    """
    Validate a card right before it is queued for insertion.

    Returns an error message, or None if the card is valid.
    """
    if not card.front or not card.front.strip():
        return "Front content is empty"
    if not card.back or not card.back.strip():
        return "Back content is empty"
    for side, text in (("Front", card.front), ("Back", card.back)):
        problem = _text_problem(text)
        if problem:
            return f"{side} content {problem}"
    if card.state not in VALID_STATES:
        return f"Invalid state: {card.state}"
    if card.suspended != (card.state == CardState.SUSPENDED):
        return f"Suspended flag {card.suspended} disagrees with state {card.state}"
    if not isinstance(card.due_at, datetime) or card.due_at.tzinfo is None:
        return f"Invalid due date: {card.due_at!r}"
    interval = card.interval_days
    if not isinstance(interval, int) or not 0 <= interval <= MAX_INTERVAL_DAYS:
        return f"Invalid interval: {card.interval_days!r}"
    ease = _to_number(card.ease)
    if ease is None or not MIN_EASE <= ease <= MAX_EASE:
        return f"Invalid ease: {card.ease!r}"
    if not isinstance(card.reps, int) or not 0 <= card.reps <= MAX_COUNT:
        return f"Invalid reps: {card.reps!r}"
    if not isinstance(card.lapses, int) or not 0 <= card.lapses <= MAX_COUNT:
        return f"Invalid lapses: {card.lapses!r}"
    return None

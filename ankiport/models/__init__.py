from ankiport.models.anki import FIELD_SEPARATOR, CollectionMeta, SourceCard, SourceNote
from ankiport.models.card import (
    CardState,
    DestinationCard,
    ImportStats,
    MediaAsset,
    ScheduleResult,
)
from ankiport.models.failure import (
    ConfigurationError,
    FailureRateExceededError,
    ImportErrorCode,
    KnownError,
    StructuralImportError,
    UnexpectedImportError,
)

__all__ = [
    "FIELD_SEPARATOR",
    "CardState",
    "CollectionMeta",
    "ConfigurationError",
    "DestinationCard",
    "FailureRateExceededError",
    "ImportErrorCode",
    "ImportStats",
    "KnownError",
    "MediaAsset",
    "ScheduleResult",
    "SourceCard",
    "SourceNote",
    "StructuralImportError",
    "UnexpectedImportError",
]

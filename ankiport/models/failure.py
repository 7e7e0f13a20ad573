"""
Import failure classification.

Every fatal outcome of an import carries a stable machine-readable code and
a user-facing message. Per-record and infrastructure problems never raise;
they are aggregated into counters and surfaced as warnings instead.

Taxonomy:
- Structural: archive unreadable, collection table absent, creation
  timestamp invalid. Always fatal, raised before any card is persisted.
- Aggregate: failure-rate circuit breaker. Raised after all batches have
  attempted to commit.
- Request: missing file, wrong extension, unauthenticated caller,
  misconfigured environment.
"""

from enum import Enum


class ImportErrorCode(str, Enum):
    """Stable codes for fatal import failures."""

    # Request validation
    NO_FILE = "NO_FILE"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"

    # Structural
    ARCHIVE_INVALID = "ARCHIVE_INVALID"
    NO_COLLECTION_FOUND = "NO_COLLECTION_FOUND"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    METADATA_UNREADABLE = "METADATA_UNREADABLE"
    INVALID_CREATION_TIMESTAMP = "INVALID_CREATION_TIMESTAMP"

    # Aggregate
    FAILURE_RATE_EXCEEDED = "FAILURE_RATE_EXCEEDED"

    # Environment
    UNAUTHORIZED = "UNAUTHORIZED"
    AUTH_SERVICE_ERROR = "AUTH_SERVICE_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Unknown
    INTERNAL_ERROR = "INTERNAL_ERROR"


class KnownError(Exception):
    """
    Base class for failures where the system knows exactly what went wrong.

    `message` is shown to the user; `detail` is technical context for
    diagnostics (entry names, table names, raw values).
    """

    def __init__(
        self,
        code: ImportErrorCode,
        message: str,
        detail: str | None = None,
        status_code: int = 400,
    ):
        self.code = code
        self.message = message
        self.detail = detail
        self.status_code = status_code
        self.import_id: int | None = None
        super().__init__(message)


class StructuralImportError(KnownError):
    """
    The archive or its embedded collection cannot be imported at all.

    Raised before any card is persisted.
    """

    def __init__(self, code: ImportErrorCode, message: str, detail: str | None = None):
        super().__init__(code=code, message=message, detail=detail, status_code=400)


class FailureRateExceededError(KnownError):
    """
    Too many individual cards failed validation or insertion.

    Some batches may already be committed. The operation as a whole is
    still reported as failed because its result cannot be trusted.
    """

    def __init__(self, failed: int, processed: int, imported: int):
        self.failed = failed
        self.processed = processed
        self.imported = imported
        rate = failed / processed if processed else 0.0
        message = (
            f"Import failed: {failed} out of {processed} cards failed validation "
            f"or insertion ({rate * 100:.1f}%). This indicates a serious problem "
            "with the .apkg file."
        )
        super().__init__(
            code=ImportErrorCode.FAILURE_RATE_EXCEEDED,
            message=message,
            detail=f"{imported} cards were committed before the check",
            status_code=400,
        )


class ConfigurationError(KnownError):
    """Required environment configuration is missing."""

    def __init__(self, detail: str):
        super().__init__(
            code=ImportErrorCode.CONFIGURATION_ERROR,
            message="Server is not configured properly. Please contact support.",
            detail=detail,
            status_code=503,
        )


class UnexpectedImportError(KnownError):
    """An import crashed for a reason the system does not know."""

    def __init__(self, exception: Exception):
        super().__init__(
            code=ImportErrorCode.INTERNAL_ERROR,
            message="Import failed",
            detail=type(exception).__name__,
            status_code=500,
        )

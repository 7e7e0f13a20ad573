from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "ankiport"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/ankiport"

    # Object storage and token verification (Supabase-compatible endpoints)
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_anon_key: str = ""
    media_bucket: str = "card-media"

    cors_origin: str = "*"


settings = Settings()


# =============================================================================
# IMPORT LIMITS
# =============================================================================

# Cards are inserted in fixed-size batches, each in its own transaction
CARD_BATCH_SIZE = 200

# Number of concurrent media upload workers
MEDIA_UPLOAD_CONCURRENCY = 5

# Above this share of failed cards the whole import is reported as failed,
# even though earlier batches have already been committed
MAX_FAILURE_RATE = 0.10

# Anki's built-in "Default" deck; never imported
DEFAULT_ANKI_DECK_ID = 1

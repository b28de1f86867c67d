from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the HabiCapital document dashboard.

    All settings can be configured via environment variables or .env file.
    Every field has a default so the API can boot against a local SQLite mirror.
    """

    # Read from .env and ignore unknown vars
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Mirror database
    # When DATABASE_URL is set the mirror lives in Postgres (Supabase),
    # otherwise a local SQLite file is used.
    database_url: str | None = Field(
        default=None,
        alias="DATABASE_URL",
        description="Postgres connection string for the relational mirror",
    )
    mirror_sqlite_path: str = Field(
        default="data/mirror.db",
        alias="MIRROR_SQLITE_PATH",
    )

    # Drive side
    drive_backend: str = Field(
        default="apps_script",
        alias="DRIVE_BACKEND",
        description="'apps_script' (remote script URL) or 'google_api' (in-process Drive/Sheets API)",
    )
    app_script_url: str | None = Field(
        default=None,
        alias="APP_SCRIPT_URL",
    )
    app_script_timeout_seconds: float = Field(
        default=120.0,
        alias="APP_SCRIPT_TIMEOUT_SECONDS",
    )

    # Google API settings (service account, used by the google_api backend)
    google_credentials_path: str | None = Field(
        default=None,
        alias="GOOGLE_CREDENTIALS_PATH",
    )
    google_drive_root_folder_id: str | None = Field(
        default=None,
        alias="GOOGLE_DRIVE_ROOT_FOLDER_ID",
        description="Drive folder holding one subfolder per client",
    )
    clients_sheet_id: str | None = Field(
        default=None,
        alias="CLIENTS_SHEET_ID",
    )
    clients_sheet_name: str = Field(
        default="Creditos",
        alias="CLIENTS_SHEET_NAME",
    )
    subfolder_fallback_to_parent: bool = Field(
        default=False,
        alias="SUBFOLDER_FALLBACK_TO_PARENT",
        description="Resolve a missing document subfolder to the client folder itself",
    )

    # Uploads
    relay_webhook_url: str | None = Field(
        default=None,
        alias="RELAY_WEBHOOK_URL",
        description="Zapier catch hook that stores small uploads in Drive",
    )
    relay_max_file_mb: float = Field(default=10.0, alias="RELAY_MAX_FILE_MB")
    upload_max_file_mb: float = Field(default=150.0, alias="UPLOAD_MAX_FILE_MB")

    # Cache and sync
    cache_ttl_seconds: float = Field(default=300.0, alias="CACHE_TTL_SECONDS")
    sync_stale_after_minutes: int = Field(
        default=60,
        alias="SYNC_STALE_AFTER_MINUTES",
        description="Dashboard reports the mirror as stale after this many minutes without a sync",
    )
    display_timezone: str = Field(default="America/Bogota", alias="DISPLAY_TIMEZONE")

    # API Security
    api_key: str | None = Field(
        default=None,
        alias="API_KEY",
        description="API key for authenticating full sync",
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        alias="CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins",
    )
    rate_limit_sync: str = Field(
        default="5/minute",
        alias="RATE_LIMIT_SYNC",
        description="Rate limit for sync endpoints (e.g., 5/minute)",
    )
    rate_limit_upload: str = Field(
        default="20/minute",
        alias="RATE_LIMIT_UPLOAD",
    )

    # Observability
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    @property
    def relay_max_bytes(self) -> int:
        return int(self.relay_max_file_mb * 1024 * 1024)

    @property
    def upload_max_bytes(self) -> int:
        return int(self.upload_max_file_mb * 1024 * 1024)


settings = Settings()

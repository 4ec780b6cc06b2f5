from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# aigc_gateway/settings.py -> aigc_gateway -> project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # Read from OS env and optional .env file in project root.
    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Environment / mode
    environment: str = Field(
        "development",
        alias="APP_ENV",
        description="Deployment environment, e.g. development / production",
    )
    api_docs_override: bool | None = Field(
        default=None,
        alias="ENABLE_API_DOCS",
        description=(
            "Force the FastAPI docs routes (/docs, /redoc, /openapi.json) on or off; "
            "by default they are disabled when APP_ENV=production"
        ),
    )
    cors_allow_origins: str = Field(
        "*",
        alias="CORS_ALLOW_ORIGINS",
        description="Allowed CORS origins, comma separated; * allows every origin",
    )

    # Upstream job provider. UPSTREAM_GATEWAY_BASE is the legacy variable name.
    upstream_base: str = Field(
        "https://api.kie.ai",
        validation_alias=AliasChoices(
            "KIE_API_BASE", "UPSTREAM_GATEWAY_BASE", "upstream_base"
        ),
        description="Base URL of the upstream job API, without trailing slash",
    )

    # HTTP timeouts
    fetch_timeout_seconds: float = Field(
        120.0,
        alias="FETCH_TIMEOUT_SECONDS",
        description="Timeout applied to every single upstream HTTP call",
        gt=0,
    )
    health_check_timeout_seconds: float = Field(
        5.0,
        alias="HEALTH_CHECK_TIMEOUT_SECONDS",
        description="Timeout for the optional upstream reachability probe in /health",
        gt=0,
    )

    # Synchronous wait over asynchronous upstream jobs
    sync_wait_budget_seconds: float = Field(
        180.0,
        alias="IMAGE_SYNC_MAX_WAIT_SECONDS",
        description="Overall wall-clock budget for surfaces that wait for a job to finish",
        ge=0,
    )
    sync_poll_interval_seconds: float = Field(
        2.0,
        alias="IMAGE_SYNC_POLL_SECONDS",
        description="Delay between two record polls while waiting for a job",
        ge=0,
    )
    poll_cache_ttl_seconds: float = Field(
        0.0,
        alias="POLL_CACHE_TTL_SECONDS",
        description=(
            "Reuse a job record fetched less than N seconds ago for the same credential "
            "and job id; 0 disables the cache and every poll hits upstream"
        ),
        ge=0,
    )

    # Uploads
    max_upload_bytes: int = Field(
        20 * 1024 * 1024,
        alias="MAX_UPLOAD_BYTES",
        description="Largest binary payload accepted for media ingestion",
        ge=1,
    )

    # Usage ledger
    usage_ledger_capacity: int = Field(
        2000,
        alias="USAGE_LEDGER_CAPACITY",
        description="Most recent usage entries kept per credential hash",
        ge=1,
    )

    # Application log level for our aigc_gateway logger.
    log_level: str = Field(
        "INFO",
        alias="LOG_LEVEL",
        description="Application log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_timezone: str | None = Field(
        default=None,
        alias="LOG_TIMEZONE",
        description="Timezone name for log timestamps, e.g. 'Asia/Shanghai'. Defaults to system local time.",
    )
    log_dir: str = Field(
        "logs",
        alias="LOG_DIR",
        description="Log directory; relative paths are resolved against the project root",
    )
    log_backup_days: int = Field(
        7,
        alias="LOG_BACKUP_DAYS",
        description="Keep the most recent N daily log folders; 0 disables cleanup",
        ge=0,
    )

    @field_validator("upstream_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def enable_api_docs(self) -> bool:
        """
        Docs routes are on outside production unless ENABLE_API_DOCS says otherwise.
        """
        if self.api_docs_override is not None:
            return self.api_docs_override
        return self.environment.lower() != "production"

    @property
    def cors_origins(self) -> list[str]:
        if self.cors_allow_origins.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


settings = Settings()  # Reads from environment if available


def get_settings() -> Settings:
    """
    FastAPI dependency returning the process-wide settings.

    Tests override this to shrink poll intervals and wait budgets.
    """
    return settings


__all__ = ["Settings", "settings", "get_settings"]

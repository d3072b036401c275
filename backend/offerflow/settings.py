from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Runtime
    environment: str = Field(default="development", validation_alias="NODE_ENV")
    port: int = Field(default=8080, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    # "json" (default) or "console" for local development.
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # CORS / Frontend
    frontend_base_url: str = Field(
        default="http://localhost:3000", validation_alias="FRONTEND_BASE_URL"
    )
    frontend_urls: str | None = Field(default=None, validation_alias="FRONTEND_URLS")

    # AWS / data
    aws_region: str = Field(default="us-east-1", validation_alias="AWS_REGION")
    ddb_table_name: str | None = Field(default=None, validation_alias="DDB_TABLE_NAME")
    # Points boto3 at DynamoDB Local / LocalStack when set.
    ddb_endpoint_url: str | None = Field(default=None, validation_alias="DDB_ENDPOINT_URL")
    ddb_max_attempts: int = Field(default=10, validation_alias="DDB_MAX_ATTEMPTS")
    ddb_connect_timeout_seconds: float = Field(default=2.0, validation_alias="DDB_CONNECT_TIMEOUT_SECONDS")
    ddb_read_timeout_seconds: float = Field(default=10.0, validation_alias="DDB_READ_TIMEOUT_SECONDS")

    # Opaque pagination tokens are encrypted with a key derived from this secret.
    pagination_token_key: str | None = Field(default=None, validation_alias="PAGINATION_TOKEN_KEY")

    # Workflow
    default_currency: str = Field(default="USD", validation_alias="DEFAULT_CURRENCY")
    # 0 reads every assignment from the table. Caching is per process, so a TTL lets
    # other processes miss a new assignment for up to that long.
    advisor_cache_ttl_seconds: int = Field(default=0, validation_alias="ADVISOR_CACHE_TTL_SECONDS")
    advisor_cache_max_entries: int = Field(default=2048, validation_alias="ADVISOR_CACHE_MAX_ENTRIES")

    # Notifications (outbox worker)
    notifications_enabled: bool = Field(default=True, validation_alias="NOTIFICATIONS_ENABLED")
    notification_webhook_url: str | None = Field(
        default=None, validation_alias="NOTIFICATION_WEBHOOK_URL"
    )
    notification_timeout_seconds: float = Field(
        default=10.0, validation_alias="NOTIFICATION_TIMEOUT_SECONDS"
    )
    outbox_max_attempts: int = Field(default=8, validation_alias="OUTBOX_MAX_ATTEMPTS")

    @property
    def normalized_environment(self) -> str:
        env = (self.environment or "").strip().lower()
        if env in ("prod", "production"):
            return "production"
        if env in ("stage", "staging"):
            return "staging"
        if env in ("test", "testing"):
            return "test"
        return env or "development"

    @property
    def is_production(self) -> bool:
        return self.normalized_environment == "production"

    @property
    def is_development(self) -> bool:
        return self.normalized_environment == "development"

    def require_in_production(self) -> None:
        if not self.is_production:
            return
        missing: list[str] = []
        if not (self.ddb_table_name or "").strip():
            missing.append("DDB_TABLE_NAME")
        if not (self.pagination_token_key or "").strip():
            missing.append("PAGINATION_TOKEN_KEY")
        if missing:
            raise RuntimeError(f"Missing required production settings: {', '.join(missing)}")

    def allowed_origins(self) -> list[str]:
        out = [str(self.frontend_base_url or "").strip()]
        for raw in str(self.frontend_urls or "").split(","):
            v = raw.strip()
            if v and v not in out:
                out.append(v)
        return [o for o in out if o]

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        Settings snapshot for the startup log line. Secrets are reported as
        configured/unconfigured only.
        """

        def _has(v: object) -> bool:
            return bool(str(v or "").strip())

        return {
            "environment": self.normalized_environment,
            "aws_region": self.aws_region,
            "ddb_table_name": self.ddb_table_name,
            "ddb_endpoint_url": self.ddb_endpoint_url,
            "pagination_token_key_configured": _has(self.pagination_token_key),
            "default_currency": self.default_currency,
            "advisor_cache_ttl_seconds": int(self.advisor_cache_ttl_seconds),
            "notifications_enabled": bool(self.notifications_enabled),
            "notification_webhook_configured": _has(self.notification_webhook_url),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()
    s.require_in_production()
    return s


# Backwards-compatible module-level singleton.
settings = get_settings()

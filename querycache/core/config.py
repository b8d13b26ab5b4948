"""Query cache configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Required fields (DB_HOST, DB_USERNAME, DB_NAME, and
REDIS_SERVER while Redis is enabled) are validated at load time, and every
problem is reported in one ConfigurationException.
"""

from functools import lru_cache

from pydantic import SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from querycache.core.constants import DEFAULT_CACHE_TTL
from querycache.domain.exceptions import ConfigurationException
from querycache.domain.value_objects import CacheFeatures


class Settings(BaseSettings):
    """Settings loaded from environment and .env.

    Names match the environment variables case-insensitively
    (db_host <- DB_HOST).
    """

    # App
    app_name: str = "querycache"
    app_version: str = "1.0.0"
    debug: bool = False

    # Backing store (MySQL)
    db_host: str = ""
    db_port: int = 3306
    db_username: str = ""
    db_password: SecretStr = SecretStr("")
    db_name: str = ""
    db_connection_limit: int = 10
    db_queue_limit: int = 0
    db_connect_timeout: int = 10000  # milliseconds
    db_pool_recycle: int = 3600
    db_echo: bool = False

    # Cache store (Redis)
    redis_enabled: bool = True
    redis_server: str = ""
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: SecretStr | None = None
    # Key namespace; keys become "{redis_vhost}:{key}" when set
    redis_vhost: str | None = None
    redis_wait_timeout: float = 5.0
    redis_reconnect_base_delay: float = 0.1
    redis_reconnect_max_delay: float = 3.0
    redis_reconnect_jitter: float = 0.1
    redis_health_check_interval: float = 30.0
    cache_default_ttl: int = DEFAULT_CACHE_TTL

    # Automatic features
    core_auto_features: bool = False
    core_auto_invalidation: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_required(self) -> "Settings":
        """Collect every missing or invalid setting into one error."""
        errors: list[str] = []
        if not self.db_host:
            errors.append("DB_HOST is required (e.g. DB_HOST=localhost)")
        if not self.db_username:
            errors.append("DB_USERNAME is required (e.g. DB_USERNAME=root)")
        if not self.db_name:
            errors.append("DB_NAME is required (e.g. DB_NAME=my_database)")
        if self.db_connection_limit <= 0:
            errors.append("DB_CONNECTION_LIMIT must be greater than 0")
        if self.redis_enabled and not self.redis_server:
            errors.append(
                "REDIS_SERVER is required when Redis is enabled "
                "(e.g. REDIS_SERVER=localhost). Set REDIS_ENABLED=false to disable Redis."
            )
        if self.cache_default_ttl <= 0:
            errors.append("CACHE_DEFAULT_TTL must be greater than 0")
        if errors:
            raise ValueError("; ".join(errors))
        return self

    @property
    def database_url(self) -> URL:
        """SQLAlchemy URL for the asyncio MySQL driver."""
        return URL.create(
            "mysql+aiomysql",
            username=self.db_username,
            password=self.db_password.get_secret_value() or None,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )

    @property
    def cache_features(self) -> CacheFeatures:
        """Initial feature switches; QueryCache.configure() can replace them."""
        return CacheFeatures(
            auto_key_enabled=self.core_auto_features,
            auto_invalidation_enabled=self.core_auto_invalidation,
        )


def _validation_messages(exc: ValidationError) -> list[str]:
    """Flatten pydantic errors into one message per problem."""
    messages: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        text = str(error.get("msg", "")).removeprefix("Value error, ")
        if location:
            messages.append(f"{location.upper()}: {text}")
        else:
            messages.extend(part.strip() for part in text.split(";") if part.strip())
    return messages


@lru_cache
def get_settings() -> Settings:
    """Return cached settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Raises:
        ConfigurationException: When required settings are missing or invalid.
    """
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationException(_validation_messages(exc)) from exc

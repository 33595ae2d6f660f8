"""Application settings with Pydantic validation."""

from pathlib import Path

from pydantic import Field, ValidationError, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from folioscope.utils.errors import ConfigError


class CacheConfig(BaseSettings):
    """Tiered price cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FOLIOSCOPE_CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ttl_seconds: float = Field(default=300.0, description="Entry time-to-live")
    debounce_seconds: float = Field(
        default=0.5, description="Quiet period before a durable sync"
    )
    max_entries: int = Field(default=100, description="Durable tier capacity")
    storage_key: str = Field(default="folioscope:price_cache")
    version: int = Field(default=1, description="Durable envelope version")
    quota_bytes: int = Field(
        default=5 * 1024 * 1024, description="Durable payload size limit"
    )

    @field_validator(
        "ttl_seconds",
        "debounce_seconds",
        "max_entries",
        "quota_bytes",
        mode="before",
    )
    @classmethod
    def validate_positive(cls, v: float | str) -> float:
        v_float = float(v)
        if v_float <= 0:
            raise ValueError("Value must be positive")
        return v_float


class DatabaseConfig(BaseSettings):
    """Snapshot database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FOLIOSCOPE_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    path: Path = Field(default=Path.home() / ".folioscope" / "snapshots.db")
    dsn: str | None = Field(
        default=None, description="Full SQLAlchemy async URL, overrides path"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def url(self) -> str:
        if self.dsn:
            return self.dsn
        return f"sqlite+aiosqlite:///{self.path}"


class RedisConfig(BaseSettings):
    """Redis configuration for the shared durable cache tier."""

    model_config = SettingsConfigDict(
        env_prefix="FOLIOSCOPE_REDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enabled: bool = Field(default=True)
    host: str = Field(default="localhost")
    port: int = Field(default=6379)
    db: int = Field(default=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def url(self) -> str:
        return f"redis://{self.host}:{self.port}/{self.db}"


class PriceConfig(BaseSettings):
    """Price API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FOLIOSCOPE_PRICES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = Field(default="https://api.coingecko.com/api/v3")
    currency: str = Field(default="usd")
    timeout: float = Field(default=30.0)


class SnapshotConfig(BaseSettings):
    """Automatic snapshot configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FOLIOSCOPE_SNAPSHOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    auto_snapshot: bool = Field(default=True)
    interval_minutes: float = Field(default=60.0, description="Minutes between snapshots")
    max_historical_days: int = Field(default=90, description="Prune snapshots older than this")
    chain_id: str = Field(default="43114")

    @field_validator("interval_minutes", "max_historical_days", mode="before")
    @classmethod
    def validate_positive(cls, v: float | str) -> float:
        v_float = float(v)
        if v_float <= 0:
            raise ValueError("Value must be positive")
        return v_float


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="FOLIOSCOPE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="folioscope")
    log_level: str = Field(default="INFO")

    cache: CacheConfig = Field(default_factory=CacheConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    prices: PriceConfig = Field(default_factory=PriceConfig)
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)


def load_settings() -> Settings:
    """Load settings from environment.

    Raises:
        ConfigError: If a setting is missing or invalid.
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

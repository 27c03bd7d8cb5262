"""Centralized configuration for lightning-search using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lightning_search.domain.search import SearchMode


LOCAL_HOSTS = frozenset({"127.0.0.1", "localhost", "::1"})

# Names of the variables handed to the engine and seeder processes. Nothing else
# from the parent environment is guaranteed to reach the child.
ENGINE_ENV_VARS: tuple[str, ...] = (
    "DB_CONNECTION",
    "DB_HOST",
    "DB_PORT",
    "DB_DATABASE",
    "DB_USERNAME",
    "DB_PASSWORD",
    "PORT",
    "LIGHTNING_SEARCH_HOST",
    "LIGHTNING_SEARCH_PORT",
    "LIGHTNING_SEARCH_CPU_CORES",
    "LIGHTNING_SEARCH_MAX_CONNECTIONS",
    "LIGHTNING_SEARCH_CACHE_DURATION",
    "LIGHTNING_SEARCH_RESULT_LIMIT",
)


def _db_alias(name: str) -> AliasChoices:
    return AliasChoices(f"LIGHTNING_SEARCH_DB_{name}", f"DB_{name}", f"db_{name.lower()}")


class ModelIndexConfig(BaseModel):
    """Per-entity overrides read from ``LIGHTNING_SEARCH_MODELS``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    searchable_fields: list[str] | None = None
    index_fields: list[str] | None = None
    table: str | None = None


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every engine-facing value is prefixed with ``LIGHTNING_SEARCH_``. Database
    parameters fall back to the unprefixed ``DB_*`` variables the host
    application already defines.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIGHTNING_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        populate_by_name=True,
        extra="ignore",
    )

    # Engine service
    host: str = Field(default="127.0.0.1", description="Engine listen host")
    port: int = Field(default=8081, ge=1, le=65535, description="Engine listen port")
    service_timeout: float = Field(default=10.0, gt=0, description="Engine HTTP request timeout in seconds")

    # Entity store connection, forwarded to the engine process
    db_connection: str = Field(default="mysql", validation_alias=_db_alias("CONNECTION"))
    db_host: str = Field(default="127.0.0.1", validation_alias=_db_alias("HOST"))
    db_port: str = Field(default="3306", validation_alias=_db_alias("PORT"))
    db_database: str = Field(default="", validation_alias=_db_alias("DATABASE"))
    db_username: str = Field(default="", validation_alias=_db_alias("USERNAME"))
    db_password: str = Field(default="", validation_alias=_db_alias("PASSWORD"))

    # Performance hints for the engine
    cpu_cores: int = Field(default=1, ge=1, description="Core-count hint for the engine")
    max_connections: int = Field(default=10, ge=1, description="Maximum store connections held by the engine")
    cache_duration: int = Field(default=300, ge=0, description="Engine result cache duration in seconds")
    result_limit: int = Field(default=1000, ge=1, description="Maximum identifiers returned per engine query")

    # Search modes
    default_mode: SearchMode | None = Field(default=None, description="Mode used when a request names none")
    fallback_mode: SearchMode | None = Field(
        default=SearchMode.EMBEDDED, description="Mode used when the engine fails; 'none' disables fallback"
    )

    # Per-entity overrides, JSON encoded in the environment
    models: dict[str, ModelIndexConfig] = Field(default_factory=dict)

    # Build and runtime layout
    binary_dir: Path = Field(default=Path("bin"), description="Where compiled binaries are placed")
    engine_source_dir: Path = Field(default=Path("go"), description="Engine Go module directory")
    seeder_source_dir: Path = Field(default=Path("go/seeder"), description="Seeder Go module directory")
    engine_binary: str = Field(default="lightning-search", min_length=1)
    seeder_binary: str = Field(default="go-seeder", min_length=1)
    deployment_os: str = Field(default="linux", description="Deployment platform OS compiled alongside the host")
    deployment_arch: str = Field(default="amd64", description="Deployment platform architecture")
    progress_marker: str = Field(default="Progress:", min_length=1)
    store_path: Path = Field(default=Path("database.sqlite"), description="SQLite file backing the entity store")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=False, description="Emit structured JSON logs")

    @field_validator("default_mode", "fallback_mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: Any) -> Any:
        if value is None or isinstance(value, SearchMode):
            return value
        if isinstance(value, str):
            if value.strip().lower() in {"", "none", "off", "false"}:
                return None
            return SearchMode.parse(value)
        return value

    @property
    def fallback_enabled(self) -> bool:
        return self.fallback_mode == SearchMode.EMBEDDED

    @property
    def service_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def is_local_database(self) -> bool:
        return self.db_host in LOCAL_HOSTS

    def model_config_for(self, entity_name: str) -> ModelIndexConfig | None:
        return self.models.get(entity_name)

    def engine_environment(self) -> dict[str, str]:
        """Return the fixed variable set passed to the engine and seeder processes.

        Empty values are omitted so the child applies its own defaults.
        """
        values = {
            "DB_CONNECTION": self.db_connection,
            "DB_HOST": self.db_host,
            "DB_PORT": self.db_port,
            "DB_DATABASE": self.db_database,
            "DB_USERNAME": self.db_username,
            "DB_PASSWORD": self.db_password,
            "PORT": str(self.port),
            "LIGHTNING_SEARCH_HOST": self.host,
            "LIGHTNING_SEARCH_PORT": str(self.port),
            "LIGHTNING_SEARCH_CPU_CORES": str(self.cpu_cores),
            "LIGHTNING_SEARCH_MAX_CONNECTIONS": str(self.max_connections),
            "LIGHTNING_SEARCH_CACHE_DURATION": str(self.cache_duration),
            "LIGHTNING_SEARCH_RESULT_LIMIT": str(self.result_limit),
        }
        return {name: values[name] for name in ENGINE_ENV_VARS if values[name]}

    def missing_database_settings(self) -> list[str]:
        """List required database variables that are unset."""
        missing: list[str] = []
        if not self.db_database:
            missing.append("DB_DATABASE")
        if not self.db_username:
            missing.append("DB_USERNAME")
        return missing

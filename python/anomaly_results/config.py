"""
Configuration management for the results persister.

Supports YAML config files with environment variable overrides.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INDEX_PREFIX = "prelertresults-"


class StoreConfig(BaseModel):
    """Configuration for the document store backend."""

    backend: str = Field(default="memory", description="Store backend (memory, elasticsearch)")
    hosts: list[str] = Field(
        default_factory=lambda: ["http://localhost:9200"],
        description="Elasticsearch hosts",
    )
    index_prefix: str = Field(
        default=DEFAULT_INDEX_PREFIX,
        description="Prefix joined with the job id to name the job's collection",
    )
    request_timeout: float = Field(default=30.0, description="Request timeout in seconds")
    username: str | None = Field(default=None, description="Basic auth username")
    password: str | None = Field(default=None, description="Basic auth password")
    api_key: str | None = Field(default=None, description="API key (takes precedence over basic auth)")
    verify_certs: bool = Field(default=True, description="Verify TLS certificates")
    ca_certs: str | None = Field(default=None, description="Path to CA bundle")


class PersisterConfig(BaseModel):
    """Configuration for the results persister."""

    background_workers: int = Field(
        default=1, ge=1, description="Worker threads for fire-and-forget interim deletes"
    )
    shutdown_timeout_seconds: float = Field(
        default=30.0, description="How long close() waits for background deletes"
    )
    interim_field: str = Field(
        default="is_interim", description="Document field flagging interim results"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json, plain)")
    file: str | None = Field(
        default=None, description="Log file path (None for logs/anomaly-results.jsonl)"
    )


class Config(BaseSettings):
    """Main configuration for the results persister."""

    model_config = SettingsConfigDict(
        env_prefix="ANOMALY_RESULTS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    store: StoreConfig = Field(default_factory=StoreConfig)
    persister: PersisterConfig = Field(default_factory=PersisterConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Config:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with path.open() as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls, config_path: str | None = None) -> Config:
        """
        Load configuration with precedence:
        1. Environment variables (highest)
        2. Config file
        3. Defaults (lowest)
        """
        if config_path is None:
            config_path = os.getenv("ANOMALY_RESULTS_CONFIG")

        if config_path is None:
            for candidate in [
                "anomaly-results.yaml",
                "anomaly-results.yml",
                "config/anomaly-results.yaml",
                ".anomaly-results.yaml",
            ]:
                if Path(candidate).exists():
                    config_path = candidate
                    break

        if config_path and Path(config_path).exists():
            return cls.from_yaml(config_path)

        return cls()

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config

"""Configuration loading with environment variable substitution."""

import json
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from repocdn.exceptions import ConfigError

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


class RemoteStoreConfig(BaseModel):
    """Remote store backend configuration."""

    backend: str = "github"  # github | memory
    owner: str | None = None
    repo: str = "cdn-mrfrank"
    branch: str = "main"
    token: str | None = None
    api_url: str = "https://api.github.com"
    root: str = ""  # Directory listed on resync
    timeout_seconds: float = 30.0


class CDNConfig(BaseModel):
    """Public CDN settings."""

    domain: str | None = None
    default_directory: str = "media"
    refresh_interval_seconds: float = Field(default=3600, gt=0)


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"  # json | text


# Environment variable -> (section, field)
ENV_SETTINGS: dict[str, tuple[str, str]] = {
    "GITHUB_TOKEN": ("store", "token"),
    "GITHUB_OWNER": ("store", "owner"),
    "GITHUB_REPO": ("store", "repo"),
    "GITHUB_BRANCH": ("store", "branch"),
    "STORE_BACKEND": ("store", "backend"),
    "CDN_DOMAIN": ("cdn", "domain"),
    "DEFAULT_DIRECTORY": ("cdn", "default_directory"),
    "REFRESH_INTERVAL_SECONDS": ("cdn", "refresh_interval_seconds"),
    "HOST": ("server", "host"),
    "PORT": ("server", "port"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FORMAT": ("logging", "format"),
}


class Config(BaseModel):
    """Main configuration for repocdn."""

    store: RemoteStoreConfig = Field(default_factory=RemoteStoreConfig)
    cdn: CDNConfig = Field(default_factory=CDNConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        # Substitute environment variables
        data = substitute_env_vars(data or {})
        return cls._validate(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        return cls._validate(data)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Config":
        """Load configuration from environment variables (see ENV_SETTINGS)."""
        environ = os.environ if environ is None else environ
        data: dict[str, dict[str, Any]] = {}
        for var_name, (section, key) in ENV_SETTINGS.items():
            value = environ.get(var_name)
            if value:
                data.setdefault(section, {})[key] = value
        return cls._validate(data)

    @classmethod
    def _validate(cls, data: dict[str, Any]) -> "Config":
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def validate_required(self) -> None:
        """Check settings needed for correct operation.

        Raises:
            ConfigError: If a required setting is missing
        """
        missing = []
        if not self.cdn.domain:
            missing.append("cdn.domain (CDN_DOMAIN)")
        if self.store.backend == "github":
            if not self.store.owner:
                missing.append("store.owner (GITHUB_OWNER)")
            if not self.store.token:
                missing.append("store.token (GITHUB_TOKEN)")
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

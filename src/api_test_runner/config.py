"""Run configuration.

Loaded from ``<workspace>/.api-tests/config.yaml``; ``API_BASE_URL`` and
``API_TOKEN`` environment variables take precedence over the file.
"""

import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_TIMEOUT = 30000  # ms
SECRET_MASK = "***"

STATE_DIR = ".api-tests"
CONFIG_FILE = "config.yaml"


class ConfigError(Exception):
    """Invalid or unusable configuration."""


class DatabaseConfig(BaseModel):
    type: Literal["mysql", "postgresql", "oracle"] = "mysql"
    host: str = "localhost"
    port: int = 3306
    database: str = ""
    username: str = ""
    password: str = ""


class RunConfig(BaseModel):
    """Target and transport settings for one test run."""

    base_url: str = DEFAULT_BASE_URL
    token: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: int = DEFAULT_TIMEOUT
    verify_ssl: bool = True
    database: DatabaseConfig | None = None

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("token")
    @classmethod
    def _strip_bearer(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = re.sub(r"^Bearer\s+", "", value.strip(), flags=re.IGNORECASE)
        return value or None

    def sanitized(self) -> "RunConfig":
        """Copy safe to embed in persisted artifacts."""
        update: dict = {"token": SECRET_MASK if self.token else None, "headers": mask_headers(self.headers)}
        if self.database is not None:
            update["database"] = self.database.model_copy(update={"password": SECRET_MASK})
        return self.model_copy(update=update)


def mask_headers(headers: dict[str, str]) -> dict[str, str]:
    """Copy of ``headers`` with any Authorization value masked."""
    return {
        k: (f"Bearer {SECRET_MASK}" if k.lower() == "authorization" else v)
        for k, v in headers.items()
    }


def config_path(workspace: Path) -> Path:
    return workspace / STATE_DIR / CONFIG_FILE


def load_config(workspace: Path) -> RunConfig:
    """Load the run configuration for ``workspace``; defaults if none saved."""
    path = config_path(workspace)
    data: dict = {}
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping")

    if os.getenv("API_BASE_URL"):
        data["base_url"] = os.environ["API_BASE_URL"]
    if os.getenv("API_TOKEN"):
        data["token"] = os.environ["API_TOKEN"]

    try:
        return RunConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


def save_config(config: RunConfig, workspace: Path) -> Path:
    """Persist ``config`` as YAML and return the file path."""
    path = config_path(workspace)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(exclude_none=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return path

"""Sync settings model."""

from __future__ import annotations

import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from repocheckout.errors import ConfigurationError

DEFAULT_SERVER_URL = "https://github.com"


class SubmoduleMode(str, Enum):
    """How submodules are checked out."""

    NONE = "none"
    TOP_LEVEL = "true"
    RECURSIVE = "recursive"

    @classmethod
    def parse(cls, value: str | bool | None) -> SubmoduleMode:
        if value is None or value is False:
            return cls.NONE
        if value is True:
            return cls.TOP_LEVEL
        normalized = str(value).strip().lower()
        if normalized in ("", "false", "none"):
            return cls.NONE
        if normalized in ("true", "shallow"):
            return cls.TOP_LEVEL
        if normalized == "recursive":
            return cls.RECURSIVE
        raise ConfigurationError(f"Invalid submodules value: {value!r}")


class SyncSettings(BaseModel):
    """Immutable input of one sync invocation."""

    model_config = ConfigDict(frozen=True)

    repository_owner: str = Field(..., description="Repository owner (user or organization)")
    repository_name: str = Field(..., description="Repository name")
    repository_path: Path = Field(..., description="Working directory to check out into")
    server_url: str = Field(
        default_factory=lambda: os.environ.get("GITHUB_SERVER_URL") or DEFAULT_SERVER_URL
    )
    ref: str | None = Field(default=None, description="Branch, tag or fully qualified ref")
    commit: str | None = Field(default=None, description="Commit SHA to check out")
    fetch_depth: int = Field(default=1, ge=0, description="0 fetches all history")
    clean: bool = True
    submodules: SubmoduleMode = SubmoduleMode.NONE
    lfs: bool = False
    auth_token: str = Field(default_factory=lambda: os.environ.get("GITHUB_TOKEN", ""))
    ssh_key: str | None = None
    ssh_known_hosts: str | None = None
    ssh_strict: bool = True
    persist_credentials: bool = True
    organization_id: str | None = None
    set_safe_directory: bool = False
    temp_dir: Path = Field(
        default_factory=lambda: Path(os.environ.get("RUNNER_TEMP") or tempfile.gettempdir())
    )

    @field_validator("submodules", mode="before")
    @classmethod
    def _parse_submodules(cls, value: Any) -> SubmoduleMode:
        if isinstance(value, SubmoduleMode):
            return value
        return SubmoduleMode.parse(value)

    @field_validator("repository_path", "temp_dir", mode="after")
    @classmethod
    def _absolute_path(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @field_validator("ref", "commit", "ssh_key", "ssh_known_hosts", "organization_id")
    @classmethod
    def _empty_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @model_validator(mode="after")
    def _check_repository(self) -> SyncSettings:
        if not self.repository_owner.strip() or not self.repository_name.strip():
            raise ConfigurationError("Invalid repository owner and name")
        return self

    @property
    def qualified_repository(self) -> str:
        return f"{self.repository_owner}/{self.repository_name}"

    @property
    def nested_submodules(self) -> bool:
        return self.submodules == SubmoduleMode.RECURSIVE

    @property
    def wants_submodules(self) -> bool:
        return self.submodules != SubmoduleMode.NONE

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> SyncSettings:
        """Load settings from a YAML file. Keyword overrides win over file values."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Expected a mapping in {path}")
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(data)

"""Value objects produced by a sync."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class CheckoutTarget:
    """What to check out once the fetch is done.

    ``ref`` is a branch name, a fully qualified ref or a commit SHA.
    ``start_point`` is the remote-tracking ref a local branch is created from.
    """

    ref: str
    start_point: str | None = None


class SyncResult(BaseModel):
    """Outcome of a sync, consumed by a later cleanup of the same workspace."""

    model_config = ConfigDict(frozen=True)

    repository_path: Path
    repository_url: str
    server_url: str | None = Field(default=None, description="Server the credentials were configured for")
    ref: str | None = Field(default=None, description="Ref that was resolved and checked out")
    commit: str | None = Field(default=None, description="HEAD commit after checkout")
    method: str = Field(default="git", description="git or archive")
    set_safe_directory: bool = False
    ssh_key_path: Path | None = None
    ssh_known_hosts_path: Path | None = None

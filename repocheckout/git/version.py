"""Version parsing for git and git-lfs output."""

from __future__ import annotations

import re

from packaging.version import InvalidVersion, Version

_VERSION_PATTERN = re.compile(r"\d+\.\d+(\.\d+)?")


class GitVersion:
    """A ``major.minor[.patch]`` tool version; invalid when nothing parsed."""

    def __init__(self, version: str | None = None) -> None:
        self._version: Version | None = None
        if version:
            try:
                self._version = Version(version)
            except InvalidVersion:
                self._version = None

    @classmethod
    def from_output(cls, output: str) -> GitVersion:
        """Parse e.g. ``git version 2.39.5`` or ``git-lfs/3.4.0 (GitHub; linux amd64)``."""
        stdout = output.strip()
        if "\n" in stdout:
            return cls()
        match = _VERSION_PATTERN.search(stdout)
        return cls(match.group(0)) if match else cls()

    def is_valid(self) -> bool:
        return self._version is not None

    def check_minimum(self, minimum: GitVersion) -> bool:
        if not self.is_valid() or not minimum.is_valid():
            raise ValueError("Arg minimum is not a valid version")
        return self._version >= minimum._version

    def __str__(self) -> str:
        return str(self._version) if self._version is not None else ""

    def __repr__(self) -> str:
        return f"GitVersion({str(self)!r})"

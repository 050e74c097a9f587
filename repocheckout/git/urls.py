"""Server and fetch URL helpers."""

from __future__ import annotations

import os
from urllib.parse import ParseResult, quote, urlparse

from repocheckout.errors import ConfigurationError
from repocheckout.models.settings import DEFAULT_SERVER_URL, SyncSettings

DEFAULT_API_URL = "https://api.github.com"


def get_server_url(url: str | None = None) -> ParseResult:
    value = url if url and url.strip() else os.environ.get("GITHUB_SERVER_URL") or DEFAULT_SERVER_URL
    parsed = urlparse(value.strip())
    if not parsed.scheme:
        raise ConfigurationError(f"Invalid server URL: {value!r}")
    return parsed


def get_origin(url: str | None = None) -> str:
    """``scheme://host[:port]`` of the server; ``file://`` URLs keep their path."""
    parsed = get_server_url(url)
    if parsed.scheme == "file":
        return f"file://{parsed.path.rstrip('/')}"
    return f"{parsed.scheme}://{parsed.netloc}"


def get_fetch_url(settings: SyncSettings) -> str:
    if not settings.repository_owner:
        raise ConfigurationError("settings.repository_owner must be defined")
    if not settings.repository_name:
        raise ConfigurationError("settings.repository_name must be defined")

    parsed = get_server_url(settings.server_url)
    encoded_owner = quote(settings.repository_owner, safe="")
    encoded_name = quote(settings.repository_name, safe="")
    if settings.ssh_key:
        if not parsed.hostname:
            raise ConfigurationError(
                f"Cannot fetch over SSH from a server URL without a host: {settings.server_url!r}"
            )
        return f"git@{parsed.hostname}:{encoded_owner}/{encoded_name}.git"

    return f"{get_origin(settings.server_url)}/{encoded_owner}/{encoded_name}"


def is_ghes(url: str | None = None) -> bool:
    """True for any server other than github.com (GitHub Enterprise Server)."""
    hostname = get_server_url(url).hostname or ""
    return hostname.upper() != "GITHUB.COM"


def get_server_api_url(url: str | None = None) -> str:
    if is_ghes(url):
        return f"{get_origin(url)}/api/v3"
    return DEFAULT_API_URL

"""GitHub REST API client for repository metadata and archive downloads."""

from __future__ import annotations

import logging
import os

import httpx

from repocheckout.errors import TransientNetworkError
from repocheckout.git.urls import get_server_api_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class GitHubApiClient:
    """Thin async client over the GitHub (or GHES) REST API.

    HTTP failures are raised as :class:`TransientNetworkError` so callers can
    run requests through a retry executor.
    """

    def __init__(
        self,
        auth_token: str = "",
        server_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.auth_token = auth_token
        self.base_url = get_server_api_url(server_url)
        self._transport = transport
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {
                "Accept": "application/vnd.github+json",
                "User-Agent": "repocheckout",
            }
            if self.auth_token:
                headers["Authorization"] = f"Bearer {self.auth_token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def get_default_branch(self, owner: str, repo: str) -> str:
        """Return the default branch as a fully qualified ref, e.g. ``refs/heads/main``."""
        logger.info("Retrieving the default branch name")
        try:
            response = await self.client.get(f"/repos/{owner}/{repo}")
            if response.status_code == 404 and repo.upper().endswith(".WIKI"):
                # Wikis have no repository record; their default branch is master
                result = "master"
            else:
                response.raise_for_status()
                result = response.json()["default_branch"]
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Failed to retrieve repository {owner}/{repo}: {e}") from e
        except (KeyError, ValueError) as e:
            raise TransientNetworkError(f"Unexpected repository response for {owner}/{repo}") from e

        logger.info(f"Default branch '{result}'")

        if not result.startswith("refs/"):
            result = f"refs/heads/{result}"
        return result

    async def download_archive(self, owner: str, repo: str, ref: str) -> bytes:
        """Download a tarball (zipball on Windows) of ``ref``."""
        archive_format = "zipball" if os.name == "nt" else "tarball"
        url = f"/repos/{owner}/{repo}/{archive_format}/{ref}"
        logger.info(f"Downloading the archive for {owner}/{repo}@{ref}")
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Failed to download archive of {owner}/{repo}: {e}") from e
        return response.content

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> GitHubApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

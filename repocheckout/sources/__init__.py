"""Non-git sources: the REST API and archive downloads."""

from repocheckout.sources.api import GitHubApiClient
from repocheckout.sources.archive import download_repository

__all__ = ["GitHubApiClient", "download_repository"]

"""Fallback checkout from a downloaded repository archive.

Used when no usable git executable is available. The archive contains a single
top-level folder (named after the repository and short SHA) whose contents
become the working tree.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tarfile
import uuid
import zipfile
from pathlib import Path

from repocheckout import fs
from repocheckout.errors import ArchiveError
from repocheckout.git.retry import RetryExecutor
from repocheckout.models.settings import SyncSettings
from repocheckout.sources.api import GitHubApiClient

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"


def _extract(archive_path: Path, extract_path: Path) -> None:
    if IS_WINDOWS:
        with zipfile.ZipFile(archive_path, "r") as zf:
            zf.extractall(extract_path)
    else:
        with tarfile.open(archive_path, "r:*") as tf:
            tf.extractall(extract_path, filter="data")


async def download_repository(
    settings: SyncSettings,
    client: GitHubApiClient | None = None,
    retry: RetryExecutor | None = None,
) -> str:
    """Download and unpack the requested ref into ``settings.repository_path``.

    Returns the ref or commit the archive was requested for.
    """
    retry = retry or RetryExecutor()
    owns_client = client is None
    if client is None:
        client = GitHubApiClient(settings.auth_token, settings.server_url)

    repository_path = settings.repository_path
    try:
        ref = settings.ref
        if not ref and not settings.commit:
            ref = await retry.execute(
                lambda: client.get_default_branch(
                    settings.repository_owner, settings.repository_name
                )
            )
        target = settings.commit or ref or ""

        archive_data = await retry.execute(
            lambda: client.download_archive(
                settings.repository_owner, settings.repository_name, target
            )
        )
    finally:
        if owns_client:
            await client.close()

    unique_id = uuid.uuid4().hex
    archive_path = repository_path / f"{unique_id}.{'zip' if IS_WINDOWS else 'tar.gz'}"
    extract_path = repository_path / unique_id
    try:
        archive_path.write_bytes(archive_data)
        # Free memory
        del archive_data

        fs.mkdir_p(extract_path)
        await asyncio.to_thread(_extract, archive_path, extract_path)
        fs.rm_rf(archive_path)

        entries = list(extract_path.iterdir())
        if len(entries) != 1 or not entries[0].is_dir():
            raise ArchiveError("Expected exactly one directory inside archive")
        # The top-level folder name includes the short SHA
        archive_version = entries[0].name
        logger.info(f"Resolved version {archive_version}")

        for source_path in entries[0].iterdir():
            target_path = repository_path / source_path.name
            if IS_WINDOWS:
                # Windows Defender may hold a lock on freshly extracted files
                fs.copy(source_path, target_path)
            else:
                fs.move(source_path, target_path)
    finally:
        fs.rm_rf(archive_path)
        fs.rm_rf(extract_path)

    return target

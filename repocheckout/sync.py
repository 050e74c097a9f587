"""End-to-end sync and cleanup of a repository working directory."""

from __future__ import annotations

import logging
from pathlib import Path

from repocheckout import fs
from repocheckout.errors import (
    GitCommandError,
    IncompatibleOptionsError,
    RaceConditionError,
    ToolUnavailableError,
)
from repocheckout.git import refs
from repocheckout.git.auth import GitAuthHelper, create_auth_helper
from repocheckout.git.commands import (
    MINIMUM_GIT_VERSION,
    GitCommandManager,
    create_command_manager,
)
from repocheckout.git.directory import prepare_existing_directory
from repocheckout.git.retry import RetryExecutor
from repocheckout.git.urls import get_fetch_url
from repocheckout.models.checkout import SyncResult
from repocheckout.models.settings import SyncSettings
from repocheckout.sources.api import GitHubApiClient
from repocheckout.sources.archive import download_repository

logger = logging.getLogger(__name__)


class RepoSync:
    """Brings one working directory to the requested ref.

    The git executable is used when available. Without it (and without LFS,
    which needs git) the repository is downloaded as an archive instead.
    Credentials configured along the way are removed before :meth:`sync`
    returns unless ``persist_credentials`` is set.
    """

    def __init__(
        self,
        settings: SyncSettings,
        retry: RetryExecutor | None = None,
        api_client: GitHubApiClient | None = None,
    ) -> None:
        self.settings = settings
        self.retry = retry or RetryExecutor()
        self._api_client = api_client
        self._owns_api_client = api_client is None

    @property
    def api_client(self) -> GitHubApiClient:
        """Get or create the REST API client."""
        if self._api_client is None:
            self._api_client = GitHubApiClient(self.settings.auth_token, self.settings.server_url)
        return self._api_client

    async def sync(self) -> SyncResult:
        settings = self.settings
        repository_path = settings.repository_path

        logger.info(f"Syncing repository: {settings.qualified_repository}")
        repository_url = get_fetch_url(settings)

        # Remove conflicting file path
        if fs.file_exists(repository_path):
            fs.rm_rf(repository_path)

        is_existing = True
        if not fs.directory_exists(repository_path):
            is_existing = False
            fs.mkdir_p(repository_path)

        git = await self._get_command_manager()
        if git is None:
            self._check_archive_options()

        auth_helper: GitAuthHelper | None = None
        safe_directory = False
        try:
            if git is not None:
                auth_helper = create_auth_helper(git, settings)
                if settings.set_safe_directory:
                    # A job running as a different user would otherwise refuse this repository
                    await auth_helper.configure_temp_global_config()
                    safe_directory = await _add_safe_directory(git, repository_path)

            if is_existing:
                await prepare_existing_directory(
                    git, repository_path, repository_url, settings.clean, settings.ref
                )

            if git is None:
                logger.info("The repository will be downloaded using the GitHub REST API")
                logger.info(
                    f"To create a local Git repository instead, add Git {MINIMUM_GIT_VERSION} "
                    "or higher to the PATH"
                )
                ref = await download_repository(settings, self.api_client, self.retry)
                return SyncResult(
                    repository_path=repository_path,
                    repository_url=repository_url,
                    server_url=settings.server_url,
                    ref=ref,
                    commit=settings.commit,
                    method="archive",
                )

            if not fs.directory_exists(repository_path / ".git"):
                logger.info("Initializing the repository")
                await git.init()
                await git.remote_add("origin", repository_url)

            logger.info("Disabling automatic garbage collection")
            if not await git.try_disable_automatic_garbage_collection():
                logger.warning(
                    "Unable to turn off git automatic garbage collection. "
                    "The git fetch operation may trigger garbage collection and cause a delay."
                )

            logger.info("Setting up auth")
            await auth_helper.configure_auth()

            ref = settings.ref
            commit = settings.commit
            if not ref and not commit:
                logger.info("Determining the default branch")
                if settings.ssh_key:
                    ref = await git.get_default_branch(repository_url)
                else:
                    ref = await self.retry.execute(
                        lambda: self.api_client.get_default_branch(
                            settings.repository_owner, settings.repository_name
                        )
                    )

            if settings.lfs:
                await git.lfs_install()

            logger.info("Fetching the repository")
            await self._fetch(git, ref, commit)

            checkout_info = await refs.get_checkout_info(git, ref, commit)

            # An explicit fetch downloads LFS objects in parallel; checkout fetches one at a time
            if settings.lfs:
                await git.lfs_fetch(checkout_info.start_point or checkout_info.ref)

            await git.checkout(checkout_info.ref, checkout_info.start_point)

            if settings.wants_submodules:
                logger.info("Setting up auth for fetching submodules")
                await auth_helper.configure_global_auth()

                logger.info("Fetching submodules")
                await git.submodule_sync(settings.nested_submodules)
                await git.submodule_update(settings.fetch_depth, settings.nested_submodules)
                await git.submodule_foreach("git config --local gc.auto 0", settings.nested_submodules)

                if settings.persist_credentials:
                    logger.info("Persisting credentials for submodules")
                    await auth_helper.configure_submodule_auth()

            head = (await git.log1("--format=%H")).strip()
            logger.info(f"Checked out {head}")

            persisted = settings.persist_credentials
            return SyncResult(
                repository_path=repository_path,
                repository_url=repository_url,
                server_url=settings.server_url,
                ref=ref,
                commit=head or commit,
                method="git",
                set_safe_directory=safe_directory,
                ssh_key_path=auth_helper.session.ssh_key_path if persisted else None,
                ssh_known_hosts_path=auth_helper.session.ssh_known_hosts_path if persisted else None,
            )
        finally:
            if auth_helper is not None:
                if not settings.persist_credentials:
                    logger.info("Removing auth")
                    await auth_helper.remove_auth()
                await auth_helper.remove_global_config()
            if self._owns_api_client and self._api_client is not None:
                await self._api_client.close()

    async def _get_command_manager(self) -> GitCommandManager | None:
        logger.info(f"Working directory is '{self.settings.repository_path}'")
        try:
            return await create_command_manager(
                self.settings.repository_path, self.settings.lfs, self.retry
            )
        except (ToolUnavailableError, GitCommandError, OSError):
            # Git is required for LFS
            if self.settings.lfs:
                raise
            logger.debug("git is unavailable", exc_info=True)
            return None

    def _check_archive_options(self) -> None:
        hint = (
            f"To create a local Git repository instead, add Git {MINIMUM_GIT_VERSION} "
            "or higher to the PATH."
        )
        if self.settings.wants_submodules:
            raise IncompatibleOptionsError(
                f"Input 'submodules' not supported when falling back to download using "
                f"the GitHub REST API. {hint}"
            )
        if self.settings.ssh_key:
            raise IncompatibleOptionsError(
                f"Input 'ssh-key' not supported when falling back to download using "
                f"the GitHub REST API. {hint}"
            )

    async def _fetch(self, git: GitCommandManager, ref: str | None, commit: str | None) -> None:
        if self.settings.fetch_depth <= 0:
            # Fetch all branches and tags
            await git.fetch(refs.get_ref_spec_for_all_history(ref, commit))

            # The ref may have moved between resolving it and the fetch completing
            if not await refs.verify_ref(git, ref, commit):
                logger.info(f"'{ref}' moved during the fetch, fetching '{commit}' directly")
                await git.fetch(refs.get_ref_spec(ref, commit))
                if not await refs.verify_ref(git, ref, commit):
                    raise RaceConditionError(
                        f"The ref '{ref}' does not point at commit '{commit}' after fetching"
                    )
        else:
            await git.fetch(refs.get_ref_spec(ref, commit), self.settings.fetch_depth)


async def _add_safe_directory(git: GitCommandManager, repository_path: Path) -> bool:
    logger.info("Adding repository directory to the temporary git global config as a safe directory")
    try:
        await git.config("safe.directory", str(repository_path), global_config=True, add=True)
    except GitCommandError as e:
        logger.info(f"Failed to initialize safe directory with error: {e}")
    return True


async def get_source(settings: SyncSettings, retry: RetryExecutor | None = None) -> SyncResult:
    """Sync ``settings.repository_path`` to the requested ref."""
    return await RepoSync(settings, retry).sync()


async def cleanup(repository_path: str | Path, result: SyncResult | None = None) -> None:
    """Remove credentials a previous sync persisted into ``repository_path``.

    Without ``result`` the SSH key files are found through the persisted
    ``core.sshCommand``. A missing or non-git directory is ignored.
    """
    if not repository_path:
        return
    path = Path(repository_path)
    if not fs.file_exists(path / ".git" / "config"):
        return

    try:
        git = await create_command_manager(path, False)
    except (ToolUnavailableError, GitCommandError, OSError):
        return

    auth_helper = create_auth_helper(
        git,
        ssh_key_path=result.ssh_key_path if result else None,
        ssh_known_hosts_path=result.ssh_known_hosts_path if result else None,
        server_url=result.server_url if result else None,
    )
    try:
        if result and result.set_safe_directory:
            await auth_helper.configure_temp_global_config()
            await _add_safe_directory(git, path)
        await auth_helper.remove_auth()
    finally:
        await auth_helper.remove_global_config()

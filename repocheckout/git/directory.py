"""Decide whether an existing working directory can be reused."""

from __future__ import annotations

import logging
from pathlib import Path

from repocheckout import fs
from repocheckout.git.commands import GitCommandManager

logger = logging.getLogger(__name__)

_LOCK_FILES = ("index.lock", "shallow.lock")


async def prepare_existing_directory(
    git: GitCommandManager | None,
    repository_path: Path,
    repository_url: str,
    clean: bool,
    ref: str | None,
) -> None:
    """Reuse ``repository_path`` in place, or empty it.

    The directory is reused when git is usable, ``.git`` exists and the
    origin fetch URL matches ``repository_url``. Any failure while scrubbing
    local state downgrades to removal. Removal deletes the directory's
    contents only; the directory itself may be a process's working directory.
    """
    if not repository_path:
        raise ValueError("Arg 'repository_path' cannot be empty")
    if not repository_url:
        raise ValueError("Arg 'repository_url' cannot be empty")

    remove = False

    if git is None:
        remove = True
    elif not fs.directory_exists(repository_path / ".git"):
        remove = True
    elif repository_url != await git.try_get_fetch_url():
        remove = True
    else:
        remove = await _scrub_existing_repository(git, repository_path, clean, ref)

    if remove:
        # Delete the contents of the directory. Don't delete the directory itself
        # since it might be the current working directory.
        logger.info(f"Deleting the contents of '{repository_path}'")
        for entry in repository_path.iterdir():
            fs.rm_rf(entry)


async def _scrub_existing_repository(
    git: GitCommandManager, repository_path: Path, clean: bool, ref: str | None
) -> bool:
    """Reset local state of a reusable clone. Returns True if it must be removed instead."""
    # Delete any index.lock and shallow.lock left over from a previously canceled run
    for lock_name in _LOCK_FILES:
        lock_path = repository_path / ".git" / lock_name
        try:
            fs.rm_rf(lock_path)
        except OSError as e:
            logger.debug(f"Unable to delete '{lock_path}'. {e}")

    try:
        logger.info("Cleaning the repository")

        if not await git.is_detached():
            await git.checkout_detach()

        for branch in await git.branch_list(False):
            await git.branch_delete(False, branch)

        # A remote branch "a/b" blocks fetching "a" and the reverse
        if ref:
            qualified = ref if ref.upper().startswith("REFS/") else f"refs/heads/{ref}"
            if qualified.upper().startswith("REFS/HEADS/"):
                upper_name1 = qualified.upper()[len("REFS/HEADS/"):]
                upper_name1_slash = f"{upper_name1}/"
                for branch in await git.branch_list(True):
                    upper_name2 = branch.upper()[len("ORIGIN/"):]
                    upper_name2_slash = f"{upper_name2}/"
                    if upper_name1.startswith(upper_name2_slash) or upper_name2.startswith(
                        upper_name1_slash
                    ):
                        await git.branch_delete(True, branch)

        if not await git.submodule_status():
            logger.info("Bad submodules found, removing existing files")
            return True

        if clean:
            if not await git.try_clean() or not await git.try_reset():
                logger.warning(
                    "Unable to clean or reset the repository. "
                    "The repository will be recreated instead."
                )
                return True
    except Exception as e:
        logger.warning(
            f"Unable to prepare the existing repository. The repository will be recreated instead. {e}"
        )
        return True

    return False

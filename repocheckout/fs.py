"""Filesystem helpers with retry-on-transient-lock semantics."""

from __future__ import annotations

import os
import shutil
import stat
import time
from pathlib import Path

from repocheckout.errors import ToolUnavailableError

RM_MAX_RETRIES = 3
RM_RETRY_DELAY = 0.3


def directory_exists(path: str | Path, required: bool = False) -> bool:
    """Check whether ``path`` is a directory.

    With ``required`` set, a missing directory raises instead of returning False.
    """
    if not str(path):
        raise ValueError("Arg 'path' must not be empty")
    p = Path(path)
    if p.is_dir():
        return True
    if required:
        raise FileNotFoundError(f"Directory '{p}' does not exist")
    return False


def file_exists(path: str | Path) -> bool:
    """Check whether ``path`` exists and is not a directory."""
    if not str(path):
        raise ValueError("Arg 'path' must not be empty")
    p = Path(path)
    return p.exists() and not p.is_dir()


def mkdir_p(path: str | Path) -> None:
    if not str(path):
        raise ValueError("a path argument must be provided")
    Path(path).mkdir(parents=True, exist_ok=True)


def _make_writable_and_retry(func, path, _exc) -> None:
    # Read-only files (e.g. git pack files on Windows) block deletion
    os.chmod(path, stat.S_IWRITE)
    func(path)


def rm_rf(path: str | Path) -> None:
    """Remove a file or directory tree, silently accepting a missing path.

    Deletion is retried a few times to ride out transient locks held by
    antivirus scanners or a git process that is still exiting.
    """
    p = Path(path)
    last_error: OSError | None = None
    for attempt in range(RM_MAX_RETRIES + 1):
        try:
            if p.is_symlink() or p.is_file():
                p.unlink()
            elif p.is_dir():
                shutil.rmtree(p, onexc=_make_writable_and_retry)
            return
        except FileNotFoundError:
            return
        except OSError as e:
            last_error = e
            if attempt < RM_MAX_RETRIES:
                time.sleep(RM_RETRY_DELAY)
    raise OSError(f"File was unable to be removed {last_error}") from last_error


def move(source: str | Path, destination: str | Path, force: bool = True) -> None:
    """Move ``source`` to ``destination``.

    If the destination is an existing directory, ``source`` is moved inside it.
    """
    src = Path(source)
    dst = Path(destination)
    if dst.is_dir() and not dst.is_symlink():
        dst = dst / src.name
    if dst.exists() or dst.is_symlink():
        if not force:
            raise FileExistsError("Destination already exists")
        rm_rf(dst)
    dst.parent.mkdir(parents=True, exist_ok=True)
    os.replace(src, dst)


def copy(source: str | Path, destination: str | Path, recursive: bool = True) -> None:
    """Copy a file or directory, recreating symlinks rather than following them."""
    src = Path(source)
    dst = Path(destination)
    if not src.exists() and not src.is_symlink():
        raise FileNotFoundError(f"no such file or directory: {src}")

    if src.is_symlink():
        if dst.exists() or dst.is_symlink():
            rm_rf(dst)
        os.symlink(os.readlink(src), dst)
    elif src.is_dir():
        if not recursive:
            raise IsADirectoryError(
                f"Failed to copy. {src} is a directory, but tried to copy without recursive flag."
            )
        shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)
    else:
        shutil.copy2(src, dst)


def which(tool: str, check: bool = False) -> str:
    """Locate an executable on PATH.

    Returns an empty string when not found, or raises ToolUnavailableError
    when ``check`` is set.
    """
    if not tool:
        raise ValueError("parameter 'tool' is required")
    found = shutil.which(tool)
    if found:
        return found
    if check:
        raise ToolUnavailableError(
            f"Unable to locate executable file: {tool}. Please verify either the file "
            "path exists or the file can be found within a directory specified by the "
            "PATH environment variable."
        )
    return ""

"""Typed command surface over the git executable.

Each method wraps exactly one git invocation. Methods named ``try_*`` never
raise on a non-zero exit status; they report success as a boolean instead.
Everything else raises :class:`GitCommandError` with the captured stderr.

The manager owns a private environment overlay which is merged on top of
``os.environ`` for every invocation. It always disables interactive
credential prompts; the auth helper adds ``HOME`` and ``GIT_SSH_COMMAND``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from repocheckout import fs
from repocheckout.errors import GitCommandError, ToolUnavailableError, TransientNetworkError
from repocheckout.git.refs import TAGS_REF_SPEC
from repocheckout.git.retry import RetryExecutor
from repocheckout.git.version import GitVersion

logger = logging.getLogger(__name__)

# Auth header not supported before 2.9
# Wire protocol v2 not supported before 2.18
MINIMUM_GIT_VERSION = GitVersion("2.18")

# Auth header not supported before 2.1
MINIMUM_GIT_LFS_VERSION = GitVersion("2.1")

USER_AGENT_NAME = "repocheckout"


def regexp_escape(value: str) -> str:
    """Escape every non-word character for use in ``git config --get-regexp``."""
    return re.sub(r"\W", lambda m: "\\" + m.group(0), value)


@dataclass
class GitOutput:
    """Exit status and captured output of one git invocation."""

    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""


class GitCommandManager:
    """Runs git commands inside one working directory.

    Use :meth:`create` (or :func:`create_command_manager`) rather than the
    constructor: creation locates git and verifies its version.
    """

    def __init__(
        self,
        working_directory: str | Path,
        lfs: bool = False,
        retry: RetryExecutor | None = None,
    ) -> None:
        self.working_directory = Path(working_directory)
        self.lfs = lfs
        self.git_path = ""
        self.git_version = GitVersion()
        self._retry = retry or RetryExecutor()
        self._git_env: dict[str, str] = {
            "GIT_TERMINAL_PROMPT": "0",  # Disable git prompt
            "GCM_INTERACTIVE": "Never",  # Disable prompting for git credential manager
        }

    @classmethod
    async def create(
        cls,
        working_directory: str | Path,
        lfs: bool = False,
        retry: RetryExecutor | None = None,
    ) -> GitCommandManager:
        manager = cls(working_directory, lfs, retry)
        await manager._initialize()
        return manager

    async def _initialize(self) -> None:
        # git-lfs pulls assets if any local/user/system setting enables it.
        # Without LFS requested, keep it from fetching during checkout.
        if not self.lfs:
            self._git_env["GIT_LFS_SKIP_SMUDGE"] = "1"

        self.git_path = fs.which("git", check=True)

        logger.debug("Getting git version")
        output = await self._exec_git(["version"])
        git_version = GitVersion.from_output(output.stdout)
        if not git_version.is_valid():
            raise ToolUnavailableError("Unable to determine git version")
        if not git_version.check_minimum(MINIMUM_GIT_VERSION):
            raise ToolUnavailableError(
                f"Minimum required git version is {MINIMUM_GIT_VERSION}. "
                f"Your git ('{self.git_path}') is {git_version}"
            )
        self.git_version = git_version

        if self.lfs:
            logger.debug("Getting git-lfs version")
            git_lfs_path = fs.which("git-lfs", check=True)
            output = await self._exec_git(["lfs", "version"])
            lfs_version = GitVersion.from_output(output.stdout)
            if not lfs_version.is_valid():
                raise ToolUnavailableError("Unable to determine git-lfs version")
            if not lfs_version.check_minimum(MINIMUM_GIT_LFS_VERSION):
                raise ToolUnavailableError(
                    f"Minimum required git-lfs version is {MINIMUM_GIT_LFS_VERSION}. "
                    f"Your git-lfs ('{git_lfs_path}') is {lfs_version}"
                )

        user_agent = f"git/{git_version} ({USER_AGENT_NAME})"
        logger.debug(f"Set git useragent to: {user_agent}")
        self._git_env["GIT_HTTP_USER_AGENT"] = user_agent

    # Environment overlay

    def get_working_directory(self) -> Path:
        """Directory every git command runs in."""
        return self.working_directory

    def set_environment_variable(self, name: str, value: str) -> None:
        """Add a variable to the environment of later git commands."""
        self._git_env[name] = value

    def remove_environment_variable(self, name: str) -> None:
        """Drop a variable set with :meth:`set_environment_variable`."""
        self._git_env.pop(name, None)

    @property
    def environment(self) -> dict[str, str]:
        """A copy of the private environment overlay."""
        return dict(self._git_env)

    # Branches and tags

    async def branch_delete(self, remote: bool, branch: str) -> None:
        """Force-delete a local or remote-tracking branch."""
        args = ["branch", "--delete", "--force"]
        if remote:
            args.append("--remote")
        args.append(branch)
        await self._exec_git(args)

    async def branch_exists(self, remote: bool, pattern: str) -> bool:
        """True when a local or remote-tracking branch matches ``pattern``."""
        args = ["branch", "--list"]
        if remote:
            args.append("--remote")
        args.append(pattern)
        output = await self._exec_git(args)
        return bool(output.stdout.strip())

    async def branch_list(self, remote: bool) -> list[str]:
        """List local branches, or ``origin/*`` remote-tracking branches.

        Uses ``rev-parse --symbolic-full-name`` since ``branch --list`` output is
        awkward to parse in a detached HEAD state.
        """
        args = ["rev-parse", "--symbolic-full-name"]
        args.append("--remotes=origin" if remote else "--branches")
        output = await self._exec_git(args, silent=True)

        result: list[str] = []
        for line in output.stdout.splitlines():
            branch = line.strip()
            if not branch:
                continue
            if branch.startswith("refs/heads/"):
                branch = branch[len("refs/heads/"):]
            elif branch.startswith("refs/remotes/"):
                branch = branch[len("refs/remotes/"):]
            result.append(branch)
        return result

    async def tag_exists(self, pattern: str) -> bool:
        """True when a tag matches ``pattern``."""
        output = await self._exec_git(["tag", "--list", pattern])
        return bool(output.stdout.strip())

    # Checkout

    async def checkout(self, ref: str, start_point: str | None = None) -> None:
        """Check out ``ref``, resetting it to ``start_point`` when one is given."""
        args = ["checkout", "--progress", "--force"]
        if start_point:
            args.extend(["-B", ref, start_point])
        else:
            args.append(ref)
        await self._exec_git(args)

    async def checkout_detach(self) -> None:
        """Detach HEAD at the current commit."""
        await self._exec_git(["checkout", "--detach"])

    async def is_detached(self) -> bool:
        """True when HEAD does not point at a local branch."""
        # "branch --show-current" would be simpler but needs git 2.22
        output = await self._exec_git(
            ["rev-parse", "--symbolic-full-name", "--verify", "--quiet", "HEAD"],
            allow_all_exit_codes=True,
        )
        return not output.stdout.strip().startswith("refs/heads/")

    # Config

    async def config(
        self,
        key: str,
        value: str,
        global_config: bool = False,
        add: bool = False,
    ) -> None:
        """Write ``key`` to the local (or global) config; ``add`` keeps existing values."""
        args = ["config", "--global" if global_config else "--local"]
        if add:
            args.append("--add")
        args.extend([key, value])
        await self._exec_git(args)

    async def config_exists(self, key: str, global_config: bool = False) -> bool:
        """True when any config key matches ``key``."""
        pattern = regexp_escape(key)
        output = await self._exec_git(
            [
                "config",
                "--global" if global_config else "--local",
                "--name-only",
                "--get-regexp",
                pattern,
            ],
            allow_all_exit_codes=True,
        )
        return output.exit_code == 0

    async def try_config_get(self, key: str, global_config: bool = False) -> str:
        """Value of ``key``, or an empty string when it is not set."""
        output = await self._exec_git(
            ["config", "--global" if global_config else "--local", "--get", key],
            allow_all_exit_codes=True,
        )
        if output.exit_code != 0:
            return ""
        return output.stdout.strip()

    async def try_config_unset(self, key: str, global_config: bool = False) -> bool:
        """Remove every value of ``key``. False when nothing was removed."""
        output = await self._exec_git(
            ["config", "--global" if global_config else "--local", "--unset-all", key],
            allow_all_exit_codes=True,
        )
        return output.exit_code == 0

    async def try_config_remove_section(self, section: str, global_config: bool = False) -> bool:
        """Remove a whole config section. False when it could not be removed."""
        output = await self._exec_git(
            ["config", "--global" if global_config else "--local", "--remove-section", section],
            allow_all_exit_codes=True,
        )
        return output.exit_code == 0

    async def try_disable_automatic_garbage_collection(self) -> bool:
        """Set ``gc.auto`` to 0 in the local config."""
        output = await self._exec_git(
            ["config", "--local", "gc.auto", "0"], allow_all_exit_codes=True
        )
        return output.exit_code == 0

    async def try_get_fetch_url(self) -> str:
        """URL of ``origin``, or an empty string when unset or ambiguous."""
        output = await self._exec_git(
            ["config", "--local", "--get", "remote.origin.url"],
            allow_all_exit_codes=True,
        )
        if output.exit_code != 0:
            return ""
        stdout = output.stdout.strip()
        if "\n" in stdout:
            return ""
        return stdout

    # Repository setup and network

    async def init(self) -> None:
        """Create an empty repository in the working directory."""
        await self._exec_git(["init", str(self.working_directory)])

    async def remote_add(self, remote_name: str, remote_url: str) -> None:
        """Register a remote."""
        await self._exec_git(["remote", "add", remote_name, remote_url])

    async def fetch(self, ref_spec: list[str], fetch_depth: int | None = None) -> None:
        """Fetch ``ref_spec`` from origin, retrying on network failures."""
        args = ["-c", "protocol.version=2", "fetch"]
        if TAGS_REF_SPEC not in ref_spec:
            args.append("--no-tags")

        args.extend(["--prune", "--progress", "--no-recurse-submodules"])
        if fetch_depth and fetch_depth > 0:
            args.append(f"--depth={fetch_depth}")
        elif fs.file_exists(self.working_directory / ".git" / "shallow"):
            args.append("--unshallow")

        args.append("origin")
        args.extend(ref_spec)

        await self._retry.execute(lambda: self._exec_network(args))

    async def get_default_branch(self, repository_url: str) -> str:
        """Ask the remote for its HEAD symref, e.g. ``refs/heads/main``."""
        output = await self._retry.execute(
            lambda: self._exec_network(
                ["ls-remote", "--quiet", "--exit-code", "--symref", repository_url, "HEAD"]
            )
        )
        for line in output.stdout.strip().splitlines():
            line = line.strip()
            if line.startswith("ref:") and line.endswith("HEAD"):
                return line[len("ref:"):-len("HEAD")].strip()
        raise GitCommandError(
            ["ls-remote", "--symref", repository_url, "HEAD"],
            output.exit_code,
            "Unexpected output when retrieving default branch",
        )

    async def lfs_fetch(self, ref: str) -> None:
        """Download the LFS objects of ``ref``."""
        args = ["lfs", "fetch", "origin", ref]
        await self._retry.execute(lambda: self._exec_network(args))

    async def lfs_install(self) -> None:
        """Install the LFS hooks into the local config."""
        await self._exec_git(["lfs", "install", "--local"])

    # Inspection

    async def log1(self, format: str | None = None) -> str:
        """Output of ``git log -1``, optionally formatted."""
        args = ["log", "-1", format] if format else ["log", "-1"]
        output = await self._exec_git(args, silent=not format)
        return output.stdout

    async def rev_parse(self, ref: str) -> str:
        """Resolve a ref to a SHA.

        For a branch or lightweight tag the commit SHA is returned, for an
        annotated tag the tag object SHA.
        """
        output = await self._exec_git(["rev-parse", ref])
        return output.stdout.strip()

    async def sha_exists(self, sha: str) -> bool:
        """True when the object exists locally."""
        output = await self._exec_git(
            ["rev-parse", "--verify", "--quiet", f"{sha}^{{object}}"],
            allow_all_exit_codes=True,
        )
        return output.exit_code == 0

    # Submodules

    async def submodule_foreach(self, command: str, recursive: bool) -> str:
        """Run a shell command in every checked-out submodule."""
        args = ["submodule", "foreach"]
        if recursive:
            args.append("--recursive")
        args.append(command)
        output = await self._exec_git(args)
        return output.stdout

    async def submodule_sync(self, recursive: bool) -> None:
        """Copy submodule URLs from ``.gitmodules`` into the config."""
        args = ["submodule", "sync"]
        if recursive:
            args.append("--recursive")
        await self._exec_git(args)

    async def submodule_update(self, fetch_depth: int, recursive: bool) -> None:
        """Clone and check out submodules at their recorded commits."""
        args = ["-c", "protocol.version=2", "submodule", "update", "--init", "--force"]
        if fetch_depth > 0:
            args.append(f"--depth={fetch_depth}")
        if recursive:
            args.append("--recursive")
        await self._exec_git(args)

    async def submodule_status(self) -> bool:
        """False when ``git submodule status`` fails, e.g. for a broken submodule."""
        output = await self._exec_git(["submodule", "status"], allow_all_exit_codes=True)
        logger.debug(output.stdout)
        return output.exit_code == 0

    # Workspace maintenance

    async def try_clean(self) -> bool:
        """Remove untracked and ignored files."""
        output = await self._exec_git(["clean", "-ffdx"], allow_all_exit_codes=True)
        return output.exit_code == 0

    async def try_reset(self) -> bool:
        """Discard local changes to tracked files."""
        output = await self._exec_git(["reset", "--hard", "HEAD"], allow_all_exit_codes=True)
        return output.exit_code == 0

    # Process execution

    async def _exec_network(self, args: list[str]) -> GitOutput:
        try:
            return await self._exec_git(args)
        except GitCommandError as e:
            raise TransientNetworkError(str(e)) from e

    async def _exec_git(
        self,
        args: list[str],
        allow_all_exit_codes: bool = False,
        silent: bool = False,
    ) -> GitOutput:
        fs.directory_exists(self.working_directory, required=True)

        env = dict(os.environ)
        env.update(self._git_env)

        logger.debug(f"Exec git {' '.join(args)}")
        process = await asyncio.create_subprocess_exec(
            self.git_path or "git",
            *args,
            cwd=self.working_directory,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()

        result = GitOutput(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        logger.debug(str(result.exit_code))
        if not silent:
            logger.debug(result.stdout)

        if result.exit_code != 0 and not allow_all_exit_codes:
            raise GitCommandError(args, result.exit_code, result.stderr)
        return result


async def create_command_manager(
    working_directory: str | Path,
    lfs: bool = False,
    retry: RetryExecutor | None = None,
) -> GitCommandManager:
    return await GitCommandManager.create(working_directory, lfs, retry)

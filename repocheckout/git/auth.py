"""Ephemeral git credentials for one sync.

Token auth is written as an ``http.<origin>/.extraheader`` config entry. The
config is first written with a placeholder value and the placeholder is then
patched in the config file directly, so the real credential never shows up in
a process command line (which OS audit logging may record).

SSH auth writes the private key and a known_hosts file into the temp
directory and points ``GIT_SSH_COMMAND`` at them.

Submodule fetches may run under a different user context, so the same
credentials can also be written into a throwaway global config that lives
under a temporary ``HOME``.
"""

from __future__ import annotations

import base64
import logging
import os
import re
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from repocheckout import fs
from repocheckout.errors import CredentialError, GitCommandError
from repocheckout.git.commands import GitCommandManager, regexp_escape
from repocheckout.git.urls import get_origin, get_server_url
from repocheckout.models.settings import SyncSettings

logger = logging.getLogger(__name__)

SSH_COMMAND_KEY = "core.sshCommand"
TOKEN_PLACEHOLDER_CONFIG_VALUE = "AUTHORIZATION: basic ***"
GITHUB_KNOWN_HOST = (
    "github.com ssh-ed25519 "
    "AAAAC3NzaC1lZDI1NTE5AAAAIOMqqnkVzrm0SdG6UOoqKLsabgH5C9okWi0dh2l9GKJl"
)

_ENTERING_PATTERN = re.compile(r"^Entering '(?P<path>.*)'$")
_ORIGIN_PATTERN = re.compile(r"^file:(?P<path>[^\t]+)\tremote\.origin\.url$")
_SSH_KEY_PATTERN = re.compile(r'-i "(?P<path>[^"]+)"')
_KNOWN_HOSTS_PATTERN = re.compile(r'-o "UserKnownHostsFile=(?P<path>[^"]+)"')


@dataclass
class CredentialSession:
    """Credential material owned by one auth helper."""

    token_config_key: str
    token_config_value: str
    insteadof_key: str
    insteadof_values: list[str] = field(default_factory=list)
    ssh_key_path: Path | None = None
    ssh_known_hosts_path: Path | None = None
    ssh_command: str = ""
    temporary_home_path: Path | None = None


class GitAuthHelper:
    """Configures and removes credentials for one command manager.

    ``settings`` may be omitted for cleanup-only use, in which case the
    server URL and the SSH artifact paths recorded by an earlier sync can be
    passed in.
    """

    def __init__(
        self,
        git: GitCommandManager,
        settings: SyncSettings | None = None,
        ssh_key_path: Path | None = None,
        ssh_known_hosts_path: Path | None = None,
        server_url: str | None = None,
    ) -> None:
        self.git = git
        self.settings = settings

        if settings:
            server_url = settings.server_url
        origin = get_origin(server_url)
        token = settings.auth_token if settings else ""
        basic_credential = base64.b64encode(f"x-access-token:{token}".encode("utf-8")).decode("ascii")

        self.session = CredentialSession(
            token_config_key=f"http.{origin}/.extraheader",
            token_config_value=f"AUTHORIZATION: basic {basic_credential}",
            insteadof_key=f"url.{origin}/.insteadOf",
            ssh_key_path=ssh_key_path,
            ssh_known_hosts_path=ssh_known_hosts_path,
        )
        hostname = get_server_url(server_url).hostname
        if hostname:
            self.session.insteadof_values.append(f"git@{hostname}:")
        if settings and settings.organization_id:
            self.session.insteadof_values.append(f"org-{settings.organization_id}@github.com:")

    @property
    def _has_token(self) -> bool:
        return bool(self.settings and self.settings.auth_token)

    @property
    def _ssh_key(self) -> str | None:
        return self.settings.ssh_key if self.settings else None

    @property
    def _nested(self) -> bool:
        return bool(self.settings and self.settings.nested_submodules)

    @property
    def _temp_dir(self) -> Path:
        if self.settings:
            return self.settings.temp_dir
        return Path(os.environ.get("RUNNER_TEMP") or tempfile.gettempdir())

    async def configure_auth(self) -> None:
        # Remove possible previous values
        await self.remove_auth()
        self.session.ssh_key_path = None
        self.session.ssh_known_hosts_path = None

        await self._configure_ssh()
        await self._configure_token()

    async def configure_temp_global_config(self) -> Path:
        """Create the temporary HOME with a copy of the user's global config.

        Returns the path of the temporary ``.gitconfig``. A second call reuses
        the HOME created by the first.
        """
        if self.session.temporary_home_path is not None:
            return self.session.temporary_home_path / ".gitconfig"

        temporary_home = self._temp_dir / uuid.uuid4().hex
        temporary_home.mkdir(parents=True, exist_ok=True)
        self.session.temporary_home_path = temporary_home

        home = os.environ.get("HOME") or str(Path.home())
        git_config_path = Path(home) / ".gitconfig"
        new_git_config_path = temporary_home / ".gitconfig"
        if git_config_path.exists():
            logger.info(f"Copying '{git_config_path}' to '{new_git_config_path}'")
            fs.copy(git_config_path, new_git_config_path)
        else:
            new_git_config_path.write_text("")

        logger.info(
            f"Temporarily overriding HOME='{temporary_home}' before making global git config changes"
        )
        self.git.set_environment_variable("HOME", str(temporary_home))
        return new_git_config_path

    async def configure_global_auth(self) -> None:
        new_git_config_path = await self.configure_temp_global_config()
        try:
            await self._configure_token(new_git_config_path, global_config=True)

            # Configure HTTPS instead of SSH
            await self.git.try_config_unset(self.session.insteadof_key, global_config=True)
            if not self._ssh_key:
                for value in self.session.insteadof_values:
                    await self.git.config(self.session.insteadof_key, value, global_config=True, add=True)
        except Exception:
            # Unset in case somehow written to the real global config
            logger.info("Encountered an error when attempting to configure token. Attempting unconfigure.")
            await self.git.try_config_unset(self.session.token_config_key, global_config=True)
            raise

    async def configure_submodule_auth(self) -> None:
        # Remove possible previous HTTPS instead of SSH
        await self._remove_git_config(self.session.insteadof_key, submodule_only=True)

        if not (self.settings and self.settings.persist_credentials):
            return

        if self._has_token:
            key = self.session.token_config_key
            output = await self.git.submodule_foreach(
                # Quote the pipeline so foreach runs all of it, not just the first command
                f"sh -c \"git config --local '{key}' '{TOKEN_PLACEHOLDER_CONFIG_VALUE}' && "
                f"git config --local --show-origin --name-only --get-regexp remote.origin.url\"",
                self._nested,
            )
            for config_path in self._parse_submodule_config_paths(output):
                logger.debug(f"Replacing token placeholder in '{config_path}'")
                self._replace_token_placeholder(config_path)

        if self._ssh_key:
            await self.git.submodule_foreach(
                f"git config --local '{SSH_COMMAND_KEY}' '{self.session.ssh_command}'",
                self._nested,
            )
        else:
            for value in self.session.insteadof_values:
                await self.git.submodule_foreach(
                    f"git config --local --add '{self.session.insteadof_key}' '{value}'",
                    self._nested,
                )

    async def remove_auth(self) -> None:
        await self._remove_ssh()
        await self._remove_token()

    async def remove_global_config(self) -> None:
        temporary_home = self.session.temporary_home_path
        if temporary_home is None:
            return
        logger.debug("Unsetting HOME override")
        self.git.remove_environment_variable("HOME")
        try:
            fs.rm_rf(temporary_home)
        except OSError as e:
            logger.warning(f"Failed to remove temporary HOME '{temporary_home}': {e}")
        self.session.temporary_home_path = None

    async def _configure_ssh(self) -> None:
        ssh_key = self._ssh_key
        if not ssh_key:
            return

        ssh_path = fs.which("ssh", check=True)

        temp_dir = self._temp_dir
        temp_dir.mkdir(parents=True, exist_ok=True)
        unique_id = uuid.uuid4().hex

        key_path = temp_dir / unique_id
        self.session.ssh_key_path = key_path
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(ssh_key.strip() + "\n")

        known_hosts = ""
        user_known_hosts_path = Path.home() / ".ssh" / "known_hosts"
        if user_known_hosts_path.is_file():
            user_known_hosts = user_known_hosts_path.read_text()
            known_hosts += (
                f"# Begin from {user_known_hosts_path}\n{user_known_hosts}\n"
                f"# End from {user_known_hosts_path}\n"
            )
        if self.settings and self.settings.ssh_known_hosts:
            known_hosts += (
                f"# Begin from input known hosts\n{self.settings.ssh_known_hosts}\n"
                "# End from input known hosts\n"
            )
        known_hosts += (
            f"# Begin implicitly added github.com\n{GITHUB_KNOWN_HOST}\n"
            "# End implicitly added github.com\n"
        )
        known_hosts_path = temp_dir / f"{unique_id}_known_hosts"
        self.session.ssh_known_hosts_path = known_hosts_path
        known_hosts_path.write_text(known_hosts)

        ssh_command = f'"{ssh_path}" -i "{key_path}"'
        if self.settings and self.settings.ssh_strict:
            ssh_command += " -o StrictHostKeyChecking=yes -o CheckHostIP=no"
        ssh_command += f' -o "UserKnownHostsFile={known_hosts_path}"'
        self.session.ssh_command = ssh_command

        logger.info(f"Temporarily overriding GIT_SSH_COMMAND={ssh_command}")
        self.git.set_environment_variable("GIT_SSH_COMMAND", ssh_command)

        if self.settings and self.settings.persist_credentials:
            await self.git.config(SSH_COMMAND_KEY, ssh_command)

    async def _configure_token(
        self, config_path: Path | None = None, global_config: bool = False
    ) -> None:
        if bool(config_path) != global_config:
            raise ValueError("Unexpected configure_token parameter combinations")
        if not self._has_token:
            return

        if config_path is None:
            config_path = self.git.get_working_directory() / ".git" / "config"

        await self.git.config(
            self.session.token_config_key,
            TOKEN_PLACEHOLDER_CONFIG_VALUE,
            global_config=global_config,
        )
        self._replace_token_placeholder(config_path)

    def _replace_token_placeholder(self, config_path: Path) -> None:
        content = Path(config_path).read_text()
        if content.count(TOKEN_PLACEHOLDER_CONFIG_VALUE) != 1:
            raise CredentialError(f"Unable to replace auth placeholder in {config_path}")
        content = content.replace(TOKEN_PLACEHOLDER_CONFIG_VALUE, self.session.token_config_value)
        Path(config_path).write_text(content)

    def _parse_submodule_config_paths(self, output: str) -> list[Path]:
        """Config file paths from ``--show-origin`` output of a submodule foreach."""
        paths: list[Path] = []
        current = self.git.get_working_directory()
        for line in output.splitlines():
            entering = _ENTERING_PATTERN.match(line)
            if entering:
                current = self.git.get_working_directory() / entering.group("path")
                continue
            origin = _ORIGIN_PATTERN.match(line)
            if origin:
                path = Path(origin.group("path"))
                paths.append(path if path.is_absolute() else current / path)
        return paths

    async def _recover_ssh_paths(self) -> None:
        """Find the key files a persisted ``core.sshCommand`` points at.

        Only a key and known_hosts pair in the layout :meth:`_configure_ssh`
        writes is recovered, so a user's own ssh command never leads to
        deleting their files.
        """
        try:
            ssh_command = await self.git.try_config_get(SSH_COMMAND_KEY)
        except (GitCommandError, OSError) as e:
            logger.debug(f"Unable to read '{SSH_COMMAND_KEY}': {e}")
            return
        key_match = _SSH_KEY_PATTERN.search(ssh_command)
        known_hosts_match = _KNOWN_HOSTS_PATTERN.search(ssh_command)
        if not key_match or not known_hosts_match:
            return

        key_path = Path(key_match.group("path"))
        known_hosts_path = Path(known_hosts_match.group("path"))
        if known_hosts_path != key_path.with_name(f"{key_path.name}_known_hosts"):
            return
        self.session.ssh_key_path = key_path
        self.session.ssh_known_hosts_path = known_hosts_path

    async def _remove_ssh(self) -> None:
        if self.session.ssh_key_path is None and self.session.ssh_known_hosts_path is None:
            await self._recover_ssh_paths()

        key_path = self.session.ssh_key_path
        if key_path:
            try:
                fs.rm_rf(key_path)
            except OSError as e:
                logger.debug(str(e))
                logger.warning(f"Failed to remove SSH key '{key_path}'")

        known_hosts_path = self.session.ssh_known_hosts_path
        if known_hosts_path:
            try:
                fs.rm_rf(known_hosts_path)
            except OSError as e:
                logger.warning(f"Failed to remove SSH known hosts '{known_hosts_path}': {e}")

        await self._remove_git_config(SSH_COMMAND_KEY)

    async def _remove_token(self) -> None:
        await self._remove_git_config(self.session.token_config_key)

    async def _remove_git_config(self, key: str, submodule_only: bool = False) -> None:
        try:
            if not submodule_only:
                if await self.git.config_exists(key) and not await self.git.try_config_unset(key):
                    logger.warning(f"Failed to remove '{key}' from the git config")
                await self._remove_empty_section(key)

            pattern = regexp_escape(key)
            await self.git.submodule_foreach(
                f"sh -c \"git config --local --name-only --get-regexp '{pattern}' && "
                f"git config --local --unset-all '{key}' || :\"",
                True,
            )
        except (GitCommandError, OSError) as e:
            logger.warning(f"Failed to remove '{key}' from the git config: {e}")

    async def _remove_empty_section(self, key: str) -> None:
        # "git config --unset" leaves an empty section header behind
        section = key.rsplit(".", 1)[0]
        if not await self.git.config_exists(f"{section}."):
            await self.git.try_config_remove_section(section)


def create_auth_helper(
    git: GitCommandManager,
    settings: SyncSettings | None = None,
    ssh_key_path: Path | None = None,
    ssh_known_hosts_path: Path | None = None,
    server_url: str | None = None,
) -> GitAuthHelper:
    return GitAuthHelper(git, settings, ssh_key_path, ssh_known_hosts_path, server_url)

"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock

import pytest

from repocheckout.git.commands import GitCommandManager
from repocheckout.git.retry import RetryExecutor, RetryPolicy

HAS_GIT = shutil.which("git") is not None

requires_git = pytest.mark.skipif(not HAS_GIT, reason="git executable not found")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Keep the user's git config, token and runner settings out of every test."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Committer")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "committer@example.com")
    for name in ("GITHUB_TOKEN", "GITHUB_SERVER_URL", "RUNNER_TEMP", "GIT_DIR", "GIT_WORK_TREE"):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def no_wait_retry() -> RetryExecutor:
    """A retry executor that does not retry, so failing tests stay fast."""
    return RetryExecutor(RetryPolicy(max_attempts=1, min_seconds=0, max_seconds=0))


@pytest.fixture
def mock_git(temp_dir: Path) -> MagicMock:
    """A GitCommandManager double with harmless defaults.

    Async methods are AsyncMocks (derived from the mocked class); results default to
    "nothing there" so callers see a clean, empty repository.
    """
    git = MagicMock(spec=GitCommandManager)
    git.get_working_directory.return_value = temp_dir
    git.config_exists.return_value = False
    git.try_config_get.return_value = ""
    git.try_config_unset.return_value = True
    git.try_config_remove_section.return_value = False
    git.try_disable_automatic_garbage_collection.return_value = True
    git.try_get_fetch_url.return_value = ""
    git.submodule_foreach.return_value = ""
    git.submodule_status.return_value = True
    git.try_clean.return_value = True
    git.try_reset.return_value = True
    git.is_detached.return_value = True
    git.branch_list.return_value = []
    git.branch_exists.return_value = False
    git.tag_exists.return_value = False
    git.sha_exists.return_value = True
    git.rev_parse.return_value = ""
    git.log1.return_value = ""
    return git


def run_git(cwd: Path, *args: str) -> str:
    """Run git synchronously for test setup and return stripped stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def _succeeds(cwd: Path, *args: str) -> bool:
    return subprocess.run(["git", *args], cwd=cwd, capture_output=True).returncode == 0


@dataclass
class RemoteRepo:
    """A bare repository served over file:// with a scratch clone to commit from."""

    server_dir: Path
    bare_dir: Path
    work_dir: Path
    owner: str = "octo"
    name: str = "hello"

    @property
    def server_url(self) -> str:
        return f"file://{self.server_dir}"

    @property
    def url(self) -> str:
        return f"file://{self.bare_dir}"

    def commit(self, filename: str, content: str, branch: str = "main") -> str:
        """Commit a file on ``branch`` and push it. Returns the new SHA."""
        self._switch(branch)
        (self.work_dir / filename).write_text(content)
        run_git(self.work_dir, "add", filename)
        run_git(self.work_dir, "commit", "-q", "-m", f"Update {filename}")
        run_git(self.work_dir, "push", "-q", "--force", "origin", f"{branch}:refs/heads/{branch}")
        return run_git(self.work_dir, "rev-parse", "HEAD")

    def _switch(self, branch: str) -> None:
        if _succeeds(self.work_dir, "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"):
            run_git(self.work_dir, "checkout", "-q", branch)
        elif not _succeeds(self.work_dir, "rev-parse", "--verify", "--quiet", "HEAD"):
            run_git(self.work_dir, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
        else:
            run_git(self.work_dir, "checkout", "-q", "-b", branch)

    def tag(self, name: str, sha: str) -> None:
        run_git(self.bare_dir, "tag", name, sha)

    def update_ref(self, ref: str, sha: str) -> None:
        run_git(self.bare_dir, "update-ref", ref, sha)

    def sha(self, ref: str) -> str:
        return run_git(self.bare_dir, "rev-parse", ref)


@pytest.fixture
def remote_repo(tmp_path: Path) -> RemoteRepo:
    """A bare repo at ``<server>/octo/hello`` with one commit on main."""
    if not HAS_GIT:
        pytest.skip("git executable not found")

    server_dir = tmp_path / "server"
    bare_dir = server_dir / "octo" / "hello"
    bare_dir.mkdir(parents=True)
    run_git(bare_dir, "init", "-q", "--bare")
    run_git(bare_dir, "symbolic-ref", "HEAD", "refs/heads/main")

    work_dir = tmp_path / "scratch"
    work_dir.mkdir()
    run_git(work_dir, "init", "-q")
    run_git(work_dir, "remote", "add", "origin", str(bare_dir))

    repo = RemoteRepo(server_dir=server_dir, bare_dir=bare_dir, work_dir=work_dir)
    repo.commit("README.md", "hello\n")
    return repo


# Markers for test categories
def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests running the real git executable")
    config.addinivalue_line("markers", "slow: slow running tests")

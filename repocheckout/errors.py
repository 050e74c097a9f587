"""Exception hierarchy for the checkout engine."""

from __future__ import annotations


class CheckoutError(Exception):
    """Base class for every error raised by repocheckout."""


class ConfigurationError(CheckoutError):
    """Invalid settings (missing owner/name, inverted backoff bounds, ...)."""


class ToolUnavailableError(CheckoutError):
    """The git (or git-lfs) executable is missing or older than required."""


class TransientNetworkError(CheckoutError):
    """A network operation failed; retried until the retry policy gives up."""


class RaceConditionError(CheckoutError):
    """The requested ref moved on the remote while it was being fetched."""


class AmbiguousReferenceError(CheckoutError):
    """No branch or tag matches the requested ref."""


class IncompatibleOptionsError(CheckoutError):
    """Options that cannot be honored by the archive download fallback."""


class ArchiveError(CheckoutError):
    """A downloaded archive does not have the expected layout."""


class CredentialError(CheckoutError):
    """Credential material could not be written into the git config."""


class GitCommandError(CheckoutError):
    """A git invocation exited with a non-zero status."""

    def __init__(self, args: list[str], exit_code: int, stderr: str = "") -> None:
        self.git_args = list(args)
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"The process 'git {' '.join(args)}' failed with exit code {exit_code}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)

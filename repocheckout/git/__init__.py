"""Git execution, reference resolution and credential handling."""

from repocheckout.git.auth import GitAuthHelper, create_auth_helper
from repocheckout.git.commands import GitCommandManager, GitOutput, create_command_manager
from repocheckout.git.retry import RetryExecutor, RetryPolicy

__all__ = [
    "GitAuthHelper",
    "GitCommandManager",
    "GitOutput",
    "RetryExecutor",
    "RetryPolicy",
    "create_auth_helper",
    "create_command_manager",
]

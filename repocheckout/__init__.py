"""repocheckout - Check out a repository at a branch, tag, pull request or commit."""

from repocheckout.models import CheckoutTarget, SubmoduleMode, SyncResult, SyncSettings
from repocheckout.sync import RepoSync, cleanup, get_source

__version__ = "0.1.0"
__all__ = [
    "RepoSync",
    "get_source",
    "cleanup",
    "SyncSettings",
    "SyncResult",
    "SubmoduleMode",
    "CheckoutTarget",
]

"""Data models for repocheckout."""

from repocheckout.models.checkout import CheckoutTarget, SyncResult
from repocheckout.models.settings import SubmoduleMode, SyncSettings

__all__ = [
    "CheckoutTarget",
    "SubmoduleMode",
    "SyncResult",
    "SyncSettings",
]

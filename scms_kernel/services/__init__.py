"""Services for the submission mutation kernel (write side)."""

from scms_kernel.services.access_gate import AccessGate, TokenSummary, validate_access_limit
from scms_kernel.services.activity_log import ActivityLog
from scms_kernel.services.base import BaseService
from scms_kernel.services.versioned_record_store import VersionedRecordStore

__all__ = [
    "AccessGate",
    "ActivityLog",
    "BaseService",
    "TokenSummary",
    "VersionedRecordStore",
    "validate_access_limit",
]

"""ORM models for the submission mutation kernel."""

from scms_kernel.models.access_token import AccessLogEntry, AccessToken
from scms_kernel.models.activity import ActivityKind, ActivityRecord
from scms_kernel.models.submission_version import SubmissionVersion
from scms_kernel.models.versioned_record import VersionedRecord

__all__ = [
    "AccessLogEntry",
    "AccessToken",
    "ActivityKind",
    "ActivityRecord",
    "SubmissionVersion",
    "VersionedRecord",
]

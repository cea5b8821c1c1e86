"""
scms_services.slugs -- slug side effect of publishing transitions.

Transitions flagged ``updates_slug`` point the submission's public slug at
the version being transitioned.  Slug storage belongs to the site layer;
the engine only calls the collaborator, inside its own transaction, so a
failing slug update rolls the status change back with it.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sqlalchemy.orm import Session

from scms_kernel.logging_config import get_logger
from scms_kernel.models.submission_version import SubmissionVersion

logger = get_logger("services.slugs")


@runtime_checkable
class SlugApplier(Protocol):
    def apply(self, session: Session, record: SubmissionVersion) -> None:
        """Point the submission's slug at ``record``.  Flush only, never commit."""
        ...


class NullSlugApplier:
    """Used when the deployment has no slug routing."""

    def apply(self, session: Session, record: SubmissionVersion) -> None:
        logger.debug(
            "slug_update_skipped",
            extra={"submission_version_id": str(record.id)},
        )

"""
ORM-Level Append-Only Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The activity feed and the magic-link access log are history.  Editors and
auditors read them to answer "who moved this submission, and when?" and
"how many times was this preview link opened?".  Neither question has a
trustworthy answer if rows can be edited or removed after the fact.

SQLAlchemy fires mapper events before UPDATE/DELETE reach the database:

    session.flush()
         |
         v
    [before_update event] --> _reject_update() --> ImmutabilityViolationError
         |
    [before_delete event] --> _reject_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

If a check fails the flush is aborted and the database is never modified.
Bulk Core statements bypass mapper events; no service issues them against
these tables.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable          | Why
----------------|-------------------------|-----------------------------------
ActivityRecord  | ALWAYS (from creation)  | Activity feed is the audit trail
AccessLogEntry  | ALWAYS (from creation)  | Access counts derive from it

===============================================================================
USAGE
===============================================================================

Called once at application startup (and by the test suite):

    from scms_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY - never in production):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from scms_kernel.exceptions import ImmutabilityViolationError
from scms_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _reject(target, operation: str, reason: str) -> None:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _reject_activity_update(mapper, connection, target):
    _reject(target, "UPDATE", "Activity records are immutable and cannot be modified")


def _reject_activity_delete(mapper, connection, target):
    _reject(target, "DELETE", "Activity records cannot be deleted")


def _reject_access_log_update(mapper, connection, target):
    _reject(target, "UPDATE", "Access log entries are immutable and cannot be modified")


def _reject_access_log_delete(mapper, connection, target):
    _reject(target, "DELETE", "Access log entries cannot be deleted")


def _listeners():
    from scms_kernel.models.access_token import AccessLogEntry
    from scms_kernel.models.activity import ActivityRecord

    return (
        (ActivityRecord, "before_update", _reject_activity_update),
        (ActivityRecord, "before_delete", _reject_activity_delete),
        (AccessLogEntry, "before_update", _reject_access_log_update),
        (AccessLogEntry, "before_delete", _reject_access_log_delete),
    )


def register_immutability_listeners():
    """
    Register all append-only enforcement listeners.

    Idempotent: listeners already registered are left in place.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove append-only enforcement listeners.

    WARNING: Only use this in tests that must violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)

"""
Typed Exception Hierarchy for the submission mutation kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP handlers, job workers, CLIs) map kernel failures onto their
own responses: 404, 409, 403, 400. Parsing exception messages for that is
fragile, so every failure the kernel reports is:
  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE class attribute (machine-readable, API-safe)
  3. Carrying structured DATA as attributes (not just a message string)

Example - WRONG way:
    try:
        store.update(record_id, modify)
    except Exception as e:
        if "retries" in str(e):
            return 409

Example - RIGHT way:
    try:
        store.update(record_id, modify)
    except OCCConflictError as e:
        return response(status=409, code=e.code, attempts=e.attempts)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ScmsKernelError:

    ScmsKernelError (base)
    |
    +-- NotFoundError
    |   +-- RecordNotFoundError
    |   +-- TokenNotFoundError
    |   +-- WorkflowNotFoundError
    |
    +-- ConcurrencyError
    |   +-- OCCConflictError
    |   +-- StaleJobCompletionError
    |
    +-- AuthorizationError
    |   +-- ForbiddenError
    |   +-- MissingCredentialsError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- InvalidWorkflowError
    |
    +-- ValidationError
    |   +-- InvalidAccessLimitError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category       | Code                     | When Raised
---------------|--------------------------|------------------------------------------
NotFound       | RECORD_NOT_FOUND         | Versioned record / submission id unknown
               | TOKEN_NOT_FOUND          | Access token id unknown or deleted
               | WORKFLOW_NOT_FOUND       | Workflow name not registered
---------------|--------------------------|------------------------------------------
Conflict       | OCC_CONFLICT             | Conditional write lost every attempt
               | STALE_JOB_COMPLETION     | Job result does not match pending job
---------------|--------------------------|------------------------------------------
Forbidden      | FORBIDDEN                | Actor lacks a required scope
               | MISSING_CREDENTIALS      | Job transition without job credentials
---------------|--------------------------|------------------------------------------
Workflow       | INVALID_TRANSITION       | (status, target) is not a declared edge
               | INVALID_WORKFLOW         | Workflow definition fails validation
---------------|--------------------------|------------------------------------------
Validation     | INVALID_ACCESS_LIMIT     | access_limit not a positive integer
---------------|--------------------------|------------------------------------------
Immutability   | IMMUTABILITY_VIOLATION   | UPDATE/DELETE of an append-only row

Expected access outcomes (revoked, expired, limit reached) are NOT
exceptions: they are returned as ``AccessResult`` values so that the
access-log row is committed with them.
"""


class ScmsKernelError(Exception):
    """
    Base exception for all kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SCMS_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(ScmsKernelError):
    """Base exception for lookups that found nothing."""

    code: str = "NOT_FOUND"


class RecordNotFoundError(NotFoundError):
    """Versioned record with given ID was not found."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, record_type: str, record_id: str):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} not found: {record_id}")


class TokenNotFoundError(NotFoundError):
    """Access token with given ID was not found (or could not be locked)."""

    code: str = "TOKEN_NOT_FOUND"

    def __init__(self, token_id: str):
        self.token_id = token_id
        super().__init__(f"Access token not found: {token_id}")


class WorkflowNotFoundError(NotFoundError):
    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_name: str):
        self.workflow_name = workflow_name
        super().__init__(f"Workflow {workflow_name} not found")


# Concurrency-related exceptions


class ConcurrencyError(ScmsKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OCCConflictError(ConcurrencyError):
    """
    Optimistic write could not land within the attempt budget.

    Raised only after every attempt lost its conditional write to a
    concurrent writer. No partial state has been committed.
    """

    code: str = "OCC_CONFLICT"

    def __init__(self, record_type: str, record_id: str, attempts: int):
        self.record_type = record_type
        self.record_id = record_id
        self.attempts = attempts
        super().__init__(
            f"Failed to update {record_type} {record_id} after {attempts} retries"
        )


class StaleJobCompletionError(ConcurrencyError):
    """A job result arrived for a transition that is no longer pending."""

    code: str = "STALE_JOB_COMPLETION"

    def __init__(
        self,
        record_id: str,
        correlation_id: str,
        pending_correlation_id: str | None,
    ):
        self.record_id = record_id
        self.correlation_id = correlation_id
        self.pending_correlation_id = pending_correlation_id
        super().__init__(
            f"Job {correlation_id} does not match the pending transition "
            f"on {record_id} (pending: {pending_correlation_id})"
        )


# Authorization exceptions


class AuthorizationError(ScmsKernelError):
    code: str = "AUTHORIZATION_ERROR"


class ForbiddenError(AuthorizationError):
    """Actor does not hold every scope the transition requires."""

    code: str = "FORBIDDEN"

    def __init__(
        self,
        actor_id: str,
        site: str,
        required_scopes: tuple[str, ...],
        transition_name: str,
    ):
        self.actor_id = actor_id
        self.site = site
        self.required_scopes = list(required_scopes)
        self.transition_name = transition_name
        super().__init__(
            f"User {actor_id} lacks scopes {', '.join(required_scopes)} "
            f"for transition {transition_name} on site {site}"
        )


class MissingCredentialsError(AuthorizationError):
    """A job-backed transition was requested without job credentials."""

    code: str = "MISSING_CREDENTIALS"

    def __init__(self, transition_name: str):
        self.transition_name = transition_name
        super().__init__(
            f"Transition {transition_name} requires a job and no job "
            "credentials were supplied"
        )


# Workflow exceptions


class WorkflowError(ScmsKernelError):
    """Base exception for workflow-related errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """The requested (status, target) pair is not a declared transition."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow_name: str, source_state: str, target_state: str):
        self.workflow_name = workflow_name
        self.source_state = source_state
        self.target_state = target_state
        super().__init__(
            f"Invalid transition from {source_state} to {target_state} "
            f"in workflow {workflow_name}"
        )


class InvalidWorkflowError(WorkflowError):
    """Workflow definition failed validation. ``errors`` lists every problem."""

    code: str = "INVALID_WORKFLOW"

    def __init__(self, workflow_name: str, errors: list[str]):
        self.workflow_name = workflow_name
        self.errors = list(errors)
        super().__init__(
            f"Workflow {workflow_name or '<unnamed>'} is invalid: "
            + "; ".join(self.errors)
        )


# Validation exceptions


class ValidationError(ScmsKernelError):
    """Base exception for caller input that fails validation."""

    code: str = "VALIDATION_ERROR"


class InvalidAccessLimitError(ValidationError):
    """access_limit must be a positive integer (or absent)."""

    code: str = "INVALID_ACCESS_LIMIT"

    def __init__(self, access_limit: object):
        self.access_limit = repr(access_limit)
        super().__init__("Access limit must be a positive integer")


# Immutability-related exceptions


class ImmutabilityError(ScmsKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    ActivityRecord and AccessLogEntry rows are immutable from creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )

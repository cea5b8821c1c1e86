"""
scms_services -- orchestration above the kernel.

Workflow transitions, and the external collaborators they talk to: the
job service, notification sinks, scope checks and slug routing.
"""

from scms_services.job_dispatcher import (
    BearerTokenCredentials,
    HandshakeTokenCredentials,
    HttpJobDispatcher,
    JobCredentials,
    JobDispatcher,
    JobRequest,
    SessionCookieCredentials,
)
from scms_services.factory import Services, build_services
from scms_services.notifications import (
    NotificationSink,
    NullNotificationSink,
    WebhookNotificationSink,
)
from scms_services.scopes import ScopeChecker, StaticScopeChecker
from scms_services.slugs import NullSlugApplier, SlugApplier
from scms_services.workflow_engine import TransitionContext, WorkflowEngine

__all__ = [
    "BearerTokenCredentials",
    "HandshakeTokenCredentials",
    "HttpJobDispatcher",
    "JobCredentials",
    "JobDispatcher",
    "JobRequest",
    "NotificationSink",
    "NullNotificationSink",
    "NullSlugApplier",
    "ScopeChecker",
    "Services",
    "SessionCookieCredentials",
    "SlugApplier",
    "StaticScopeChecker",
    "TransitionContext",
    "WebhookNotificationSink",
    "WorkflowEngine",
    "build_services",
]

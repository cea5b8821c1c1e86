"""
scms_services.factory -- build the mutation services from Settings.

Single entrypoint for production wiring: reads a ``Settings`` (usually
``Settings.from_env()``) and constructs the store, access gate and
workflow engine with the configured database, retry policy, job service
and webhook.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from sqlalchemy.orm import Session, sessionmaker

from scms_config.settings import Settings
from scms_kernel.db.engine import get_session_factory, init_engine_from_url
from scms_kernel.domain.clock import Clock, SystemClock
from scms_kernel.logging_config import configure_logging, get_logger
from scms_kernel.models.submission_version import SubmissionVersion
from scms_kernel.services.access_gate import AccessGate
from scms_kernel.services.versioned_record_store import VersionedRecordStore
from scms_services.job_dispatcher import HttpJobDispatcher
from scms_services.notifications import (
    NotificationSink,
    NullNotificationSink,
    WebhookNotificationSink,
)
from scms_services.scopes import ScopeChecker
from scms_services.slugs import SlugApplier
from scms_services.workflow_engine import WorkflowEngine

logger = get_logger("services.factory")


@dataclass(frozen=True)
class Services:
    settings: Settings
    session_factory: sessionmaker[Session]
    record_store: VersionedRecordStore
    submission_store: VersionedRecordStore[SubmissionVersion]
    access_gate: AccessGate
    workflow_engine: WorkflowEngine
    job_dispatcher: HttpJobDispatcher
    notification_sink: NotificationSink

    def close(self) -> None:
        """Stop the dispatch workers and release HTTP connections."""
        self.job_dispatcher.close()
        if isinstance(self.notification_sink, WebhookNotificationSink):
            self.notification_sink.close()


def build_services(
    settings: Settings,
    scope_checker: ScopeChecker,
    session_factory: sessionmaker[Session] | None = None,
    slug_applier: SlugApplier | None = None,
    clock: Clock | None = None,
    http_client: httpx.Client | None = None,
) -> Services:
    """Build every mutation service from ``settings``.

    Args:
        settings: Runtime settings.  ``api_url`` is required.
        scope_checker: Capability lookup for workflow transitions.
        session_factory: Existing factory to reuse; by default the engine
            is initialised from ``settings.database_url``.
        slug_applier: Slug routing collaborator; default does nothing.
        clock: Optional clock; default SystemClock.
        http_client: Shared client for the job service and the webhook.

    Raises:
        ValueError: ``settings.api_url`` is not set.
    """
    if not settings.api_url:
        raise ValueError("Settings.api_url is required to dispatch jobs (SCMS_API_URL)")

    configure_logging(level=settings.log_level)
    if session_factory is None:
        init_engine_from_url(settings.database_url)
        session_factory = get_session_factory()
    clock = clock or SystemClock()

    dispatcher = HttpJobDispatcher(settings.api_url, client=http_client)
    sink: NotificationSink = (
        WebhookNotificationSink(settings.webhook_url, client=http_client)
        if settings.webhook_url
        else NullNotificationSink()
    )
    retry = {
        "clock": clock,
        "retry_delay": settings.occ_retry_delay,
        "max_retries": settings.occ_max_retries,
    }

    services = Services(
        settings=settings,
        session_factory=session_factory,
        record_store=VersionedRecordStore(session_factory, **retry),
        submission_store=VersionedRecordStore(session_factory, model=SubmissionVersion, **retry),
        access_gate=AccessGate(session_factory, clock=clock),
        workflow_engine=WorkflowEngine(
            session_factory,
            scope_checker,
            dispatcher,
            notification_sink=sink,
            slug_applier=slug_applier,
            **retry,
        ),
        job_dispatcher=dispatcher,
        notification_sink=sink,
    )
    logger.info(
        "services_built",
        extra={
            "occ_max_retries": settings.occ_max_retries,
            "occ_retry_delay_ms": settings.occ_retry_delay_ms,
            "webhook": settings.webhook_url is not None,
        },
    )
    return services

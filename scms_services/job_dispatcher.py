"""
scms_services.job_dispatcher -- client side of the job-submission contract.

Responsibility:
    Turns a started job-backed transition into a request to the job
    service: ``POST {api_url}/jobs`` with ``{id, job_type, payload}``.  The
    job service runs the job (publish, unpublish, ...) and later reports
    the outcome, which WorkflowEngine.complete_job_transition applies.

Architecture position:
    Services layer.  Called by WorkflowEngine strictly after its
    transaction commits.  Never called while a row lock is held.

Invariants enforced:
    - Credentials are an explicit strategy chosen by the caller
      (``BearerTokenCredentials``, ``HandshakeTokenCredentials``,
      ``SessionCookieCredentials``).  There is no implicit fallthrough
      between credential kinds.
    - ``dispatch`` is fire-and-forget: it returns at once, and failures
      are logged, never raised, never retried.

Failure modes:
    - ``submit`` raises ``httpx.HTTPError`` for transport errors and
      non-2xx responses.  ``dispatch`` logs any failure in the worker,
      HTTP or otherwise, as ``job_dispatch_failed``; the Future then
      resolves to False.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx

from scms_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.job_dispatcher")


@dataclass(frozen=True)
class JobRequest:
    """One job submission.  ``id`` is the transition's correlation id."""

    id: str
    job_type: str
    payload: dict[str, Any] = field(default_factory=dict, hash=False)

    def to_json(self) -> dict[str, Any]:
        return {"id": self.id, "job_type": self.job_type, "payload": self.payload}


# ---------------------------------------------------------------------------
# Credential strategies
# ---------------------------------------------------------------------------


class JobCredentials(ABC):
    """How a job request authenticates as the user who started it."""

    kind: str = "abstract"

    @abstractmethod
    def headers(self) -> dict[str, str]:
        ...


class BearerTokenCredentials(JobCredentials):
    """API token of the acting user (CLI and API clients)."""

    kind = "bearer_token"

    def __init__(self, token: str) -> None:
        if not token:
            raise ValueError("BearerTokenCredentials requires a token")
        self._token = token

    def headers(self) -> dict[str, str]:
        if self._token.lower().startswith("bearer "):
            return {"Authorization": self._token}
        return {"Authorization": f"Bearer {self._token}"}


class HandshakeTokenCredentials(BearerTokenCredentials):
    """Short-lived handshake token issued to a running job for follow-up calls."""

    kind = "handshake_token"


class SessionCookieCredentials(JobCredentials):
    """Browser session cookie of the acting user, forwarded verbatim."""

    kind = "session_cookie"

    def __init__(self, cookie_header: str) -> None:
        if not cookie_header:
            raise ValueError("SessionCookieCredentials requires a cookie header")
        self._cookie_header = cookie_header

    def headers(self) -> dict[str, str]:
        return {"Cookie": self._cookie_header}


# ---------------------------------------------------------------------------
# Dispatchers
# ---------------------------------------------------------------------------


@runtime_checkable
class JobDispatcher(Protocol):
    def dispatch(self, request: JobRequest, credentials: JobCredentials) -> Any:
        """Send ``request`` without waiting for the job service.  Must not raise."""
        ...


class HttpJobDispatcher:
    """
    Posts job requests to the job service over HTTP.

    Contract:
        ``submit`` is the synchronous call; ``dispatch`` runs ``submit`` on
        a small worker pool and returns the Future.  Callers are not
        expected to wait on it.
    """

    def __init__(
        self,
        api_url: str,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        max_workers: int = 4,
    ) -> None:
        self._jobs_url = api_url.rstrip("/") + "/jobs"
        self._client = client or httpx.Client(timeout=timeout)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="job-dispatch",
        )

    def submit(self, request: JobRequest, credentials: JobCredentials) -> httpx.Response:
        headers = {"Content-Type": "application/json", **credentials.headers()}
        response = self._client.post(self._jobs_url, json=request.to_json(), headers=headers)
        response.raise_for_status()
        return response

    def dispatch(self, request: JobRequest, credentials: JobCredentials) -> Future:
        context = LogContext.get_all()
        return self._executor.submit(self._send, request, credentials, context)

    def _send(
        self,
        request: JobRequest,
        credentials: JobCredentials,
        context: dict[str, str],
    ) -> bool:
        with LogContext.bind(**context):
            try:
                response = self.submit(request, credentials)
            except Exception:
                logger.error(
                    "job_dispatch_failed",
                    extra={
                        "job_id": request.id,
                        "job_type": request.job_type,
                        "credential_kind": credentials.kind,
                    },
                    exc_info=True,
                )
                return False
            logger.info(
                "job_dispatched",
                extra={
                    "job_id": request.id,
                    "job_type": request.job_type,
                    "credential_kind": credentials.kind,
                    "status_code": response.status_code,
                },
            )
            return True

    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        self._client.close()

"""
scms_services.notifications -- best-effort status-change notifications.

Responsibility:
    Delivers a small JSON document to a human-facing channel (Slack-style
    incoming webhook) after a status change has committed.

Architecture position:
    Services layer.  Called by WorkflowEngine strictly after commit.

Invariants enforced:
    - Notification failures never undo or fail the status change; the
      engine logs them and moves on.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx

from scms_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


@runtime_checkable
class NotificationSink(Protocol):
    def notify(self, event: dict[str, Any]) -> None:
        """Deliver ``event``.  May raise; callers treat failures as non-fatal."""
        ...


class NullNotificationSink:
    def notify(self, event: dict[str, Any]) -> None:
        return None


class WebhookNotificationSink:
    """POSTs each event as JSON to a webhook URL.

    Raises ``httpx.HTTPError`` on transport failures and non-2xx replies.
    """

    def __init__(
        self,
        url: str,
        client: httpx.Client | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=timeout)

    def notify(self, event: dict[str, Any]) -> None:
        response = self._client.post(self._url, json=event)
        response.raise_for_status()
        logger.debug(
            "notification_delivered",
            extra={"event": event.get("event"), "status_code": response.status_code},
        )

    def close(self) -> None:
        self._client.close()

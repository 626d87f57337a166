"""JSON webhook delivery of a single notification job.

Posts the encoded EventNotification to the registration endpoint. Delivery
is attempted once: failures are logged with the target identity and
reported as ``False``, never raised.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from eventrouter.models.notifications import NotificationJob
from eventrouter.notifications.payload import encode_notification
from eventrouter.observability.metrics import notifications_total

_log = structlog.get_logger(component="notifications.webhook")

DEFAULT_TIMEOUT = 40.0


async def _trace_request(request: httpx.Request) -> None:
    _log.debug(
        "http_request",
        method=request.method,
        url=str(request.url),
        body=request.content.decode("utf-8", errors="replace")[:2048],
    )


async def _trace_response(response: httpx.Response) -> None:
    _log.debug(
        "http_response",
        method=response.request.method,
        url=str(response.request.url),
        status_code=response.status_code,
    )


def build_http_client(
    timeout: float = DEFAULT_TIMEOUT,
    insecure: bool = False,
    trace: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the HTTP client shared by every dispatch worker.

    Args:
        timeout:   Per-request timeout in seconds.
        insecure:  Skip TLS certificate verification.
        trace:     Log every request and response at debug level.
        transport: Alternate transport (tests use ``httpx.MockTransport``).
    """
    event_hooks: dict[str, list[Any]] = {}
    if trace:
        event_hooks = {"request": [_trace_request], "response": [_trace_response]}
    return httpx.AsyncClient(
        timeout=timeout,
        verify=not insecure,
        event_hooks=event_hooks,
        transport=transport,
    )


class WebhookNotifier:
    """Delivers notification jobs by POSTing JSON to the job's endpoint."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def deliver(self, job: NotificationJob) -> bool:
        """POST *job* to its registration endpoint.

        Returns True on a 2xx response, False otherwise.
        """
        reg = job.registration
        context = {
            "service_name": reg.service_name,
            "endpoint": reg.endpoint,
            "deployment_id": job.payload.deployment_id,
        }
        success = False
        try:
            success = await self._post(job, context)
        finally:
            notifications_total.labels(success="true" if success else "false").inc()
        return success

    async def _post(self, job: NotificationJob, context: dict[str, str]) -> bool:
        try:
            body = encode_notification(job.payload)
        except (TypeError, ValueError) as exc:
            _log.error("notification_encode_failed", error=str(exc), **context)
            return False

        try:
            response = await self._client.post(
                job.registration.endpoint,
                content=body,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException:
            _log.warning("notification_timeout", **context)
            return False
        except httpx.InvalidURL as exc:
            _log.error("notification_invalid_url", error=str(exc), **context)
            return False
        except httpx.HTTPError as exc:
            _log.warning("notification_send_failed", error=str(exc), **context)
            return False

        if response.is_success:
            _log.debug("notification_sent", status_code=response.status_code, **context)
            return True
        _log.warning(
            "notification_non_2xx_response",
            status_code=response.status_code,
            body=response.text[:200],
            **context,
        )
        return False

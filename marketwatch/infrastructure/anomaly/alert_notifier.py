"""
Alert notification dispatcher.

Delivers alert events through two kinds of channel:
    1. HTTP webhook POST to configurable URLs
    2. In-process callback hooks (for logging, metrics, etc.)

Delivery failures are logged and counted, never raised: a failed
notification must not affect the analysis job that produced it.

Usage:
    notifier = AlertNotifier(webhook_urls=["https://hooks.slack.com/..."])
    notifier.add_callback(lambda event: print(event.symbol))
    notifier.publish(event)
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import urlparse

import httpx

from marketwatch.domain.anomaly.alerts import AlertEvent
from marketwatch.domain.anomaly.ports import AlertPublisher

logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    """Result of delivering one event to one channel."""

    channel: str
    success: bool
    error: str | None = None
    latency_ms: float = 0.0


@dataclass
class NotificationSummary:
    """All channel results for one event."""

    event: AlertEvent
    results: list[NotificationResult] = field(default_factory=list)

    @property
    def delivered(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def all_success(self) -> bool:
        return all(r.success for r in self.results)


def alert_to_dict(event: AlertEvent) -> dict:
    """Serialize an AlertEvent for JSON transport."""
    return {
        "job_id": str(event.job_id),
        "symbol": event.symbol,
        "kind": event.kind.value,
        "score": event.score,
        "message": event.message,
        "created_at": event.created_at.isoformat(),
    }


AlertCallback = Callable[[AlertEvent], None]


class AlertNotifier(AlertPublisher):
    """Multi-channel alert dispatcher.

    Args:
        webhook_urls: Initial list of webhook URLs to POST alerts to.
        webhook_timeout: HTTP timeout in seconds for webhook calls.
        client: Optional pre-built httpx client.
    """

    def __init__(
        self,
        webhook_urls: list[str] | None = None,
        webhook_timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._webhook_urls: list[str] = []
        self._callbacks: list[AlertCallback] = []
        self._client = client or httpx.Client(timeout=webhook_timeout)
        self._lock = threading.Lock()
        self._recent: list[NotificationSummary] = []
        self._stats = {
            "total_notifications": 0,
            "webhook_calls": 0,
            "callback_invocations": 0,
            "errors": 0,
        }
        for url in webhook_urls or []:
            self.add_webhook(url)

    @property
    def stats(self) -> dict:
        with self._lock:
            return dict(self._stats)

    def recent(self, limit: int = 20) -> list[NotificationSummary]:
        with self._lock:
            return list(self._recent[-limit:])

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def add_webhook(self, url: str) -> None:
        """Register a webhook URL for alert delivery.

        Raises:
            ValueError: If the URL is not http/https.
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            msg = f"Invalid webhook URL scheme: {parsed.scheme}"
            raise ValueError(msg)
        if url not in self._webhook_urls:
            self._webhook_urls.append(url)
            logger.info("Webhook registered: %s", parsed.netloc)

    def remove_webhook(self, url: str) -> None:
        if url in self._webhook_urls:
            self._webhook_urls.remove(url)

    def add_callback(self, callback: AlertCallback) -> None:
        """Register an in-process callback."""
        self._callbacks.append(callback)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def publish(self, event: AlertEvent) -> None:
        self.notify(event)

    def notify(self, event: AlertEvent) -> NotificationSummary:
        """Deliver one event to every registered channel."""
        summary = NotificationSummary(event=event)
        logger.info(
            "ALERT %s %s score=%d: %s",
            event.kind.value.upper(),
            event.symbol,
            event.score,
            event.message,
        )

        for url in list(self._webhook_urls):
            summary.results.append(self._send_webhook(url, event))
        for callback in list(self._callbacks):
            summary.results.append(self._send_callback(callback, event))

        with self._lock:
            self._stats["total_notifications"] += 1
            self._stats["errors"] += sum(1 for r in summary.results if not r.success)
            self._recent.append(summary)
            del self._recent[:-100]
        return summary

    def _send_webhook(self, url: str, event: AlertEvent) -> NotificationResult:
        start = time.monotonic()
        payload = {
            "event": "anomaly_alert",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "alert": alert_to_dict(event),
        }
        try:
            resp = self._client.post(
                url,
                json=payload,
                headers={"X-MarketWatch-Event": "anomaly_alert"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Webhook POST to %s failed: %s", urlparse(url).netloc, exc)
            return NotificationResult(
                channel=f"webhook:{url}",
                success=False,
                error=str(exc),
                latency_ms=round((time.monotonic() - start) * 1000, 2),
            )

        with self._lock:
            self._stats["webhook_calls"] += 1
        return NotificationResult(
            channel=f"webhook:{url}",
            success=True,
            latency_ms=round((time.monotonic() - start) * 1000, 2),
        )

    def _send_callback(
        self, callback: AlertCallback, event: AlertEvent
    ) -> NotificationResult:
        start = time.monotonic()
        name = getattr(callback, "__name__", repr(callback))
        try:
            callback(event)
        except Exception as exc:
            logger.exception("Alert callback %s failed", name)
            return NotificationResult(
                channel=f"callback:{name}",
                success=False,
                error=str(exc),
                latency_ms=round((time.monotonic() - start) * 1000, 2),
            )

        with self._lock:
            self._stats["callback_invocations"] += 1
        return NotificationResult(
            channel=f"callback:{name}",
            success=True,
            latency_ms=round((time.monotonic() - start) * 1000, 2),
        )

"""Prometheus counters for Telegram delivery outcomes."""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, start_http_server

logger = logging.getLogger(__name__)


class DeliveryMetrics:
    """Send outcome and retry counters on a dedicated registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.send_total = Counter(
            "telegram_alert_send_total",
            "Total number of Telegram send outcomes grouped by result.",
            ["result"],
            registry=self.registry,
        )
        self.send_retry_total = Counter(
            "telegram_alert_send_retry_total",
            "Total number of Telegram send retries.",
            registry=self.registry,
        )

        # Export both result series from the start
        self.send_total.labels(result="success")
        self.send_total.labels(result="failure")

    def increment_success(self) -> None:
        self.send_total.labels(result="success").inc()

    def increment_failure(self) -> None:
        self.send_total.labels(result="failure").inc()

    def increment_retry(self) -> None:
        self.send_retry_total.inc()

    def snapshot(self) -> dict[str, float]:
        """Current counter values, keyed by short name."""
        def sample(name: str, labels: Optional[dict] = None) -> float:
            return self.registry.get_sample_value(name, labels or {}) or 0.0

        return {
            "success": sample("telegram_alert_send_total", {"result": "success"}),
            "failure": sample("telegram_alert_send_total", {"result": "failure"}),
            "retry": sample("telegram_alert_send_retry_total"),
        }

    def serve(self, port: int) -> None:
        """Expose the registry over HTTP for scraping."""
        start_http_server(port, registry=self.registry)
        logger.info(f"Metrics exporter listening on :{port}")

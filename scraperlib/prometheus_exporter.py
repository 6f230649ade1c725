import logging
import threading
from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

from .metrics import Metrics


logger = logging.getLogger(__name__)


class PrometheusExporter:
    def __init__(self, metrics: Metrics, port: int = 8000, registry: CollectorRegistry | None = None) -> None:
        self.metrics = metrics
        self.port = port
        self.registry = registry or CollectorRegistry()
        self._server_thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        self.fetches_total = Counter('scraper_fetches_total', 'Total number of resources fetched', registry=self.registry)
        self.bytes_total = Counter('scraper_bytes_total', 'Total number of bytes downloaded', registry=self.registry)
        self.errors_total = Counter('scraper_fetch_errors_total', 'Total number of failed fetches', registry=self.registry)
        self.duplicates_total = Counter(
            'scraper_duplicate_references_total',
            'References resolved to an already visited resource',
            registry=self.registry,
        )
        self.fetches_per_second = Gauge('scraper_fetches_per_second', 'Current fetch rate', registry=self.registry)
        self.avg_fetch_duration_seconds = Gauge(
            'scraper_avg_fetch_duration_seconds', 'Average fetch duration in seconds', registry=self.registry
        )

        self._last_fetches = 0
        self._last_bytes = 0
        self._last_errors = 0
        self._last_duplicates = 0

    def start(self) -> None:
        start_http_server(self.port, registry=self.registry)
        logger.info("Prometheus metrics server started on port %d", self.port)

        self._server_thread = threading.Thread(
            target=self._update_metrics_loop,
            name="prometheus-updater",
            daemon=True
        )
        self._server_thread.start()

    def _update_metrics_loop(self) -> None:
        while not self._stop_event.is_set():
            self.update()
            self._stop_event.wait(5.0)

    def update(self) -> None:
        totals, elapsed = self.metrics.snapshot()

        for counter, current, attr in (
            (self.fetches_total, totals.fetches, "_last_fetches"),
            (self.bytes_total, totals.bytes, "_last_bytes"),
            (self.errors_total, totals.errors, "_last_errors"),
            (self.duplicates_total, totals.duplicates, "_last_duplicates"),
        ):
            delta = current - getattr(self, attr)
            if delta > 0:
                counter.inc(delta)
            setattr(self, attr, current)

        self.fetches_per_second.set(totals.fetches / elapsed)
        if totals.fetches > 0:
            self.avg_fetch_duration_seconds.set(totals.fetch_ms_sum / totals.fetches / 1000.0)

    def stop(self) -> None:
        self._stop_event.set()
        if self._server_thread:
            self._server_thread.join(timeout=2.0)
        self.update()

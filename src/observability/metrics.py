"""
Prometheus metrics for monitoring the highlighting engine.

Defines and exposes metrics for:
- Scans run, degraded and discarded as stale
- Scan and apply latency
- Apply aborts
- Skipped catalog entries
- Active highlight counts per document

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds); scans run per keystroke burst
LATENCY_BUCKETS = (0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5)


class MetricsCollector:
    """
    Prometheus metrics collector for the highlighting engine.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_scan(latency=0.004, raw=12, resolved=9, degraded=False)
        metrics.record_stale_discard()
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Scan counters
        self.scans_total = Counter(
            "story_bible_scans_total",
            "Total number of scans run",
            ["status"],  # status: full, degraded
        )

        self.stale_results_discarded = Counter(
            "story_bible_stale_results_discarded_total",
            "Scan results dropped because a newer revision existed",
        )

        self.apply_aborts = Counter(
            "story_bible_apply_aborts_total",
            "Apply batches aborted because document offsets went stale",
        )

        self.catalog_entries_skipped = Counter(
            "story_bible_catalog_entries_skipped_total",
            "Catalog entries skipped during index build",
        )

        self.index_builds = Counter(
            "story_bible_index_builds_total",
            "Number of entity index rebuilds",
        )

        # Latency histograms
        self.scan_latency = Histogram(
            "story_bible_scan_latency_seconds",
            "Time spent scanning and resolving one window",
            buckets=LATENCY_BUCKETS,
        )

        self.apply_latency = Histogram(
            "story_bible_apply_latency_seconds",
            "Time spent reconciling marks against the document",
            buckets=LATENCY_BUCKETS,
        )

        # Match sizes
        self.raw_matches = Histogram(
            "story_bible_raw_matches",
            "Raw matches per scan before overlap resolution",
            buckets=(0, 1, 5, 10, 25, 50, 100, 250, 500, 1000),
        )

        self.active_matches = Gauge(
            "story_bible_active_matches",
            "Currently active highlight spans",
            ["document_id"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_scan(
        self,
        latency: float,
        raw: int,
        resolved: int,
        degraded: bool = False,
    ) -> None:
        """
        Record a completed scan.

        Args:
            latency: Scan + resolve latency in seconds
            raw: Number of raw matches
            resolved: Number of matches surviving overlap resolution
            degraded: Whether the window was shrunk to fit the budget
        """
        self.scans_total.labels(status="degraded" if degraded else "full").inc()
        self.scan_latency.observe(latency)
        self.raw_matches.observe(raw)
        logger.debug(f"Scan recorded: {raw} raw, {resolved} resolved")

    def record_stale_discard(self) -> None:
        """Record a scan result dropped by the revision check."""
        self.stale_results_discarded.inc()

    def record_apply(self, document_id: str, latency: float, active: int) -> None:
        """
        Record a successful reconciliation.

        Args:
            document_id: Document the marks belong to
            latency: Apply latency in seconds
            active: Active match count after the apply
        """
        self.apply_latency.observe(latency)
        self.active_matches.labels(document_id=document_id).set(active)

    def record_apply_abort(self) -> None:
        """Record an aborted apply batch."""
        self.apply_aborts.inc()

    def record_index_build(self, skipped: int) -> None:
        """
        Record an index rebuild.

        Args:
            skipped: Entries skipped as invalid
        """
        self.index_builds.inc()
        if skipped:
            self.catalog_entries_skipped.inc(skipped)

    def clear_document(self, document_id: str) -> None:
        """Drop the per-document gauge when a document is detached."""
        try:
            self.active_matches.remove(document_id)
        except KeyError:
            pass


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics

"""Metrics collection for search connections.

Provides a thin convenience wrapper around ``prometheus_client`` so remote
requests, batch documents and operation failures are recorded consistently.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- Each collector owns its registry unless one is injected (e.g. for testing)
"""

import time
from contextlib import contextmanager
from typing import Iterator, Optional
from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest


class SearchMetrics:
    """Centralized metrics for one or more search connections.

    Parameters
    - service_name: Search service name, recorded as a label
    - registry: Optional custom ``CollectorRegistry``
    """

    def __init__(self, service_name: str = "search", registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.requests = Counter(
            'search_toolkit_requests_total',
            'Total remote search service requests',
            ['service', 'operation', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'search_toolkit_request_duration_seconds',
            'Remote search service request duration',
            ['service', 'operation'],
            registry=self.registry
        )

        self.batch_documents = Counter(
            'search_toolkit_batch_documents_total',
            'Documents submitted in index batches',
            ['service', 'action'],
            registry=self.registry
        )

        self.operation_failures = Counter(
            'search_toolkit_operation_failures_total',
            'Connection operations that reported failure',
            ['service', 'operation'],
            registry=self.registry
        )

    def record_request(self, operation: str, status: int, duration: float) -> None:
        """Record one HTTP exchange with the service."""
        self.requests.labels(
            service=self.service_name, operation=operation, status=str(status)
        ).inc()
        self.request_duration.labels(
            service=self.service_name, operation=operation
        ).observe(duration)

    def record_batch_document(self, action: str) -> None:
        self.batch_documents.labels(service=self.service_name, action=action).inc()

    def record_failure(self, operation: str) -> None:
        self.operation_failures.labels(service=self.service_name, operation=operation).inc()

    @contextmanager
    def time_request(self, operation: str) -> Iterator[dict]:
        """Time a request; callers put the HTTP status into the yielded dict.

        A request that raised before producing a status is recorded as ``0``.
        """
        outcome = {"status": 0}
        start = time.perf_counter()
        try:
            yield outcome
        finally:
            self.record_request(operation, outcome["status"], time.perf_counter() - start)

    def get_metrics(self) -> str:
        """Return the Prometheus exposition text for this registry."""
        return generate_latest(self.registry).decode("utf-8")

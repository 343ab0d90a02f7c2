"""Common utilities shared across the toolkit.

Includes:
- ``config``: pydantic-based settings read from environment variables.
- ``logging``: structlog setup and the diagnostic sinks operations log into.
- ``retry``: retry policy with exponential backoff for remote calls.
- ``metrics``: Prometheus counters and histograms for remote operations.
- ``lazy``: compute-once holder used for the shared client handle.
- ``validation``: argument guards raising ``InvalidArgumentError``.

Import pattern:
- from search_toolkit.common.config import SearchToolkitConfig
- from search_toolkit.common.logging import configure_logging
"""

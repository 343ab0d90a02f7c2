"""Configuration management for search connections.

Settings are environment-driven and build on ``pydantic-settings`` so they can
be provided via environment variables (prefixed ``SEARCH_TOOLKIT_``), a
``.env`` file, or defaults.

Usage
- ``config = SearchToolkitConfig()`` then
  ``SearchConnection.from_config(config)``
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .retry import RetryConfig, RetryPolicy


class SearchToolkitConfig(BaseSettings):
    """Settings for a search service connection.

    Notes
    - ``service_name`` and ``service_key`` default to blank; the connection
      rejects blank values when it is constructed.
    - ``endpoint`` overrides the ``https://{service_name}.{endpoint_suffix}``
      address (useful for emulators and proxies).
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_TOOLKIT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    service_name: str = Field(default="")
    service_key: str = Field(default="")
    index_name: Optional[str] = Field(default=None)
    api_version: str = Field(default="2020-06-30")
    endpoint_suffix: str = Field(default="search.windows.net")
    endpoint: Optional[str] = Field(default=None)
    request_timeout: float = Field(default=30.0)

    # Retry
    retry_max_attempts: int = Field(default=3)
    retry_base_delay: float = Field(default=0.5)
    retry_max_delay: float = Field(default=10.0)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    def retry_policy(self) -> Optional[RetryPolicy]:
        """Build the retry policy, or ``None`` when retries are disabled."""
        if self.retry_max_attempts <= 1:
            return None
        return RetryPolicy(
            RetryConfig(
                max_attempts=self.retry_max_attempts,
                base_delay=self.retry_base_delay,
                max_delay=self.retry_max_delay,
            )
        )

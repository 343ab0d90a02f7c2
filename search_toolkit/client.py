"""REST client for the search service.

``SearchServiceClient`` speaks the service's JSON protocol over ``httpx``. It
owns an ``httpx.AsyncClient`` for the async operations and an
``httpx.Client`` for blocking query execution, applies the retry policy to
every request, and translates transport failures and unexpected statuses into
``TransientServiceFault``.
"""

from contextlib import nullcontext
from typing import Any, ContextManager, Dict, List, Mapping, Optional
from urllib.parse import quote
import httpx
import structlog

from .common.metrics import SearchMetrics
from .common.retry import NoRetryPolicy, RetryPolicy
from .errors import PartialBatchFailure, ServiceRequestError, TransientServiceFault
from .models import (
    RETURN_SEARCH_ID_HEADER,
    DocumentIndexResult,
    IndexBatch,
    IndexDefinition,
    IndexStatistics,
    SearchParameters,
    SearchResponse,
)

logger = structlog.get_logger("search_toolkit.client")

DEFAULT_API_VERSION = "2020-06-30"
DEFAULT_ENDPOINT_SUFFIX = "search.windows.net"


class _RetryableStatus(TransientServiceFault):
    """Raised inside a retry loop for a status worth another attempt."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"Service returned {response.status_code}")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.reason_phrase


class SearchServiceClient:
    """Client bound to one search service.

    Args:
        service_name: Search service name, used to build the endpoint
        service_key: Admin or query API key
        retry_policy: Policy applied to every request; single attempt if None
        api_version: REST API version sent with each request
        endpoint: Full base URL overriding ``https://{service_name}.{suffix}``
        endpoint_suffix: DNS suffix of the service
        timeout: Request timeout in seconds
        transport: Optional httpx transport (used by tests)
        metrics: Optional ``SearchMetrics`` collector
    """

    def __init__(
        self,
        service_name: str,
        service_key: str,
        retry_policy: Optional[RetryPolicy] = None,
        api_version: str = DEFAULT_API_VERSION,
        endpoint: Optional[str] = None,
        endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX,
        timeout: float = 30.0,
        transport: Optional[Any] = None,
        metrics: Optional[SearchMetrics] = None,
    ):
        self.service_name = service_name
        self.api_version = api_version
        self.base_url = (endpoint or f"https://{service_name}.{endpoint_suffix}").rstrip("/")
        self.retry_policy = retry_policy or NoRetryPolicy()
        self.metrics = metrics
        self._closed = False

        headers = {"api-key": service_key, "Accept": "application/json"}
        params = {"api-version": api_version}

        self._async_client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            params=params,
            timeout=timeout,
            transport=transport,
        )
        self._sync_client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            params=params,
            timeout=timeout,
            transport=transport,
        )

        logger.debug("Search service client created", service_name=service_name, base_url=self.base_url)

    @property
    def is_closed(self) -> bool:
        return self._closed

    # Transport

    def _check_response(self, response: httpx.Response) -> httpx.Response:
        if self.retry_policy.is_retryable_status(response.status_code):
            raise _RetryableStatus(response)
        return response

    def _timed(self, operation: str) -> ContextManager[dict]:
        if self.metrics is None:
            return nullcontext({"status": 0})
        return self.metrics.time_request(operation)

    async def _send(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        async def attempt() -> httpx.Response:
            with self._timed(operation) as outcome:
                try:
                    response = await self._async_client.request(method, url, **kwargs)
                except httpx.TransportError as e:
                    raise TransientServiceFault(f"{operation} failed: {e}") from e
                outcome["status"] = response.status_code
            return self._check_response(response)

        try:
            return await self.retry_policy.execute_with_retry(attempt, operation_name=operation)
        except _RetryableStatus as e:
            return e.response

    def _send_sync(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        def attempt() -> httpx.Response:
            with self._timed(operation) as outcome:
                try:
                    response = self._sync_client.request(method, url, **kwargs)
                except httpx.TransportError as e:
                    raise TransientServiceFault(f"{operation} failed: {e}") from e
                outcome["status"] = response.status_code
            return self._check_response(response)

        try:
            return self.retry_policy.execute_with_retry_sync(attempt, operation_name=operation)
        except _RetryableStatus as e:
            return e.response

    @staticmethod
    def _expect(response: httpx.Response, operation: str, *statuses: int) -> httpx.Response:
        if response.status_code not in statuses:
            raise ServiceRequestError(response.status_code, _error_message(response), operation)
        return response

    @staticmethod
    def _index_path(index: str) -> str:
        return f"/indexes('{quote(index, safe='')}')"

    # Index administration

    async def index_exists(self, index: str) -> bool:
        response = await self._send("index_exists", "GET", self._index_path(index))
        if response.status_code == 404:
            return False
        self._expect(response, "index_exists", 200)
        return True

    async def create_index(self, definition: IndexDefinition) -> IndexDefinition:
        response = await self._send("create_index", "POST", "/indexes", json=definition.to_dict())
        self._expect(response, "create_index", 200, 201)
        return IndexDefinition.from_dict(response.json())

    async def delete_index(self, index: str) -> None:
        response = await self._send("delete_index", "DELETE", self._index_path(index))
        self._expect(response, "delete_index", 200, 204, 404)

    async def get_index_statistics(self, index: str) -> IndexStatistics:
        response = await self._send("index_statistics", "GET", f"{self._index_path(index)}/stats")
        self._expect(response, "index_statistics", 200)
        return IndexStatistics.from_dict(response.json())

    async def list_index_names(self) -> List[str]:
        response = await self._send("list_indexes", "GET", "/indexes", params={"$select": "name"})
        self._expect(response, "list_indexes", 200)
        return [item["name"] for item in response.json().get("value", [])]

    # Documents

    async def index_documents(self, index: str, batch: IndexBatch) -> DocumentIndexResult:
        """Submit a batch; raises ``PartialBatchFailure`` on a multi-status reply."""
        response = await self._send(
            "index_documents", "POST", f"{self._index_path(index)}/docs/index", json=batch.to_dict()
        )
        self._expect(response, "index_documents", 200, 207)
        result = DocumentIndexResult.from_dict(response.json())
        if response.status_code == 207:
            raise PartialBatchFailure(result.results or [])
        return result

    def _search_request(
        self,
        index: str,
        search_text: Optional[str],
        parameters: SearchParameters,
        headers: Optional[Mapping[str, str]],
    ) -> Dict[str, Any]:
        return {
            "url": f"{self._index_path(index)}/docs/search.post.search",
            "json": parameters.to_dict(search_text),
            "headers": dict(headers or {}),
        }

    @staticmethod
    def _search_response(response: httpx.Response) -> SearchResponse:
        results: List[Dict[str, Any]] = []
        count = None
        if response.is_success:
            body = response.json()
            results = list(body.get("value", []))
            count = body.get("@odata.count")
        return SearchResponse(
            status_code=response.status_code,
            reason_phrase=response.reason_phrase,
            headers={key.lower(): value for key, value in response.headers.items()},
            results=results,
            count=count,
        )

    async def search(
        self,
        index: str,
        search_text: Optional[str],
        parameters: SearchParameters,
        headers: Optional[Mapping[str, str]] = None,
    ) -> SearchResponse:
        """Run a search and return the HTTP-level outcome without raising on status."""
        request = self._search_request(index, search_text, parameters, headers)
        response = await self._send("search", "POST", **request)
        return self._search_response(response)

    def search_sync(
        self,
        index: str,
        search_text: Optional[str],
        parameters: SearchParameters,
        headers: Optional[Mapping[str, str]] = None,
    ) -> SearchResponse:
        request = self._search_request(index, search_text, parameters, headers)
        response = self._send_sync("search", "POST", **request)
        return self._search_response(response)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._async_client.aclose()
        self._sync_client.close()
        logger.debug("Search service client closed", service_name=self.service_name)


def search_id_headers() -> Dict[str, str]:
    """Request headers asking the service to return a search id."""
    return {RETURN_SEARCH_ID_HEADER: "true"}


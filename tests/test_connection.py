"""Tests for connection construction, lifecycle and index administration."""

import threading

import httpx
import pytest

from search_toolkit import SearchConnection
from search_toolkit import connection as connection_module
from search_toolkit.client import SearchServiceClient
from search_toolkit.common.config import SearchToolkitConfig
from search_toolkit.common.logging import NullSink, Severity
from search_toolkit.common.metrics import SearchMetrics
from search_toolkit.common.retry import RetryConfig, RetryPolicy
from search_toolkit.errors import InvalidArgumentError, InvalidConfigurationError, SearchToolkitError
from search_toolkit.models import IndexScoringProfiles, IndexStatistics, ScoringProfile, SearchParameters

from .conftest import Hotel, Review, Room


class TestConstruction:
    """Test argument validation and index binding modes."""

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_blank_service_name(self, name):
        with pytest.raises(InvalidArgumentError) as exc_info:
            SearchConnection(name, "key", index="hotels")
        assert exc_info.value.argument == "service_name"

    @pytest.mark.parametrize("key", [None, "", "   "])
    def test_blank_service_key(self, key):
        with pytest.raises(InvalidArgumentError) as exc_info:
            SearchConnection("service", key, index="hotels")
        assert exc_info.value.argument == "service_key"

    def test_empty_indexes(self):
        with pytest.raises(InvalidArgumentError):
            SearchConnection("service", "key", indexes={})

    def test_indexes_with_index_rejected(self):
        with pytest.raises(InvalidArgumentError):
            SearchConnection("service", "key", index="hotels", indexes={Review: "reviews"})

    def test_index_type_requires_index(self):
        with pytest.raises(InvalidArgumentError):
            SearchConnection("service", "key", index_type=Review)

    def test_duplicate_index_names(self):
        with pytest.raises(InvalidConfigurationError):
            SearchConnection("service", "key", indexes={Review: "shared", Room: "shared"})

    def test_single_binding(self, make_connection):
        connection = make_connection(index="reviews", index_type=Review)
        assert connection.get_index(Review) == "reviews"
        assert connection.get_index(Hotel) == "hotels"

    def test_placeholder_binding(self, make_connection):
        connection = make_connection(index="default")
        assert connection.get_index(Review) == "default"
        assert connection.get_index(Hotel) == "hotels"

    @pytest.fixture
    def logging_calls(self, monkeypatch):
        calls = []
        monkeypatch.setattr(connection_module, "configure_logging", lambda *args: calls.append(args))
        return calls

    def test_from_config(self, service, logging_calls):
        config = SearchToolkitConfig(
            service_name="contoso",
            service_key="abc",
            index_name="default",
            retry_max_attempts=1,
            log_level="DEBUG",
            log_format="console",
        )
        connection = SearchConnection.from_config(config, transport=service.transport)

        assert connection.service_name == "contoso"
        assert connection.get_index(Review) == "default"
        assert connection.client.base_url == "https://contoso.search.windows.net"
        assert connection.client.api_version == "2020-06-30"
        assert logging_calls == [("contoso", "DEBUG", "console")]

    def test_from_config_with_indexes(self, logging_calls):
        config = SearchToolkitConfig(service_name="contoso", service_key="abc", index_name="ignored")
        connection = SearchConnection.from_config(config, indexes={Review: "reviews"})
        assert connection.registry.placeholder is None
        assert connection.get_index(Review) == "reviews"

    def test_from_config_index_overrides_setting(self, service, logging_calls):
        config = SearchToolkitConfig(service_name="contoso", service_key="abc", index_name="default")
        connection = SearchConnection.from_config(
            config, index="explicit", timeout=5.0, transport=service.transport
        )

        assert connection.get_index(Review) == "explicit"
        assert connection.get_index(Hotel) == "hotels"

    def test_default_sink(self):
        connection = SearchConnection("service", "key", index="hotels")
        assert isinstance(connection.sink, NullSink)


class TestClientLifecycle:
    """Test the lazily built client."""

    def test_client_not_built_on_construction(self, make_connection):
        connection = make_connection()
        assert not connection.is_client_created

    @pytest.mark.asyncio
    async def test_client_built_on_first_use(self, make_connection):
        connection = make_connection()
        await connection.list_indexes()
        assert connection.is_client_created
        assert connection.client is connection.client
        await connection.aclose()

    def test_client_built_once_across_threads(self, make_connection, monkeypatch):
        built = []

        class CountingClient(SearchServiceClient):
            def __init__(self, *args, **kwargs):
                built.append(1)
                super().__init__(*args, **kwargs)

        monkeypatch.setattr(connection_module, "SearchServiceClient", CountingClient)
        connection = make_connection()
        barrier = threading.Barrier(6)
        clients = []

        def worker():
            barrier.wait()
            clients.append(connection.client)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(built) == 1
        assert len({id(client) for client in clients}) == 1

    @pytest.mark.asyncio
    async def test_close_before_use(self, make_connection):
        connection = make_connection()
        await connection.aclose()
        await connection.aclose()
        assert connection.is_closed
        assert not connection.is_client_created

    @pytest.mark.asyncio
    async def test_close_after_use(self, make_connection):
        async with make_connection() as connection:
            await connection.list_indexes()
            client = connection.client

        assert client.is_closed
        assert not connection.is_client_created
        with pytest.raises(SearchToolkitError):
            connection.client
        await connection.aclose()

    def test_request_headers(self, make_connection, service):
        connection = make_connection()
        connection.client.search_sync("hotels", None, SearchParameters())

        request = service.requests[0]
        assert request.headers["api-key"] == "secret-key"
        assert request.url.params["api-version"] == "2020-06-30"
        assert request.url.host == "test-search.search.windows.net"


class TestEnsureIndex:
    """Test index creation."""

    @pytest.mark.asyncio
    async def test_creates_missing_index(self, make_connection, service):
        connection = make_connection()

        result = await connection.ensure_index(Hotel)

        assert result
        assert result.succeeded
        assert "hotels" in service.indexes
        fields = {f["name"]: f for f in service.indexes["hotels"]["fields"]}
        assert fields["hotel_id"]["key"] is True
        assert fields["tags"]["type"] == "Collection(Edm.String)"

    @pytest.mark.asyncio
    async def test_existing_index_is_not_recreated(self, make_connection, service):
        connection = make_connection()

        assert await connection.ensure_index(Hotel)
        assert await connection.ensure_index(Hotel)

        assert len(service.calls("POST", "/indexes")) == 1
        assert len(service.calls("GET", "/indexes('hotels')")) == 2

    @pytest.mark.asyncio
    async def test_scoring_profiles(self, make_connection, service):
        connection = make_connection()
        profiles = IndexScoringProfiles(
            profiles=[ScoringProfile(name="boost-name", text_weights={"name": 3.0})],
            default_profile="boost-name",
        )

        assert await connection.ensure_index(Hotel, profiles)

        definition = service.indexes["hotels"]
        assert definition["defaultScoringProfile"] == "boost-name"
        assert definition["scoringProfiles"][0]["text"] == {"weights": {"name": 3.0}}

    @pytest.mark.asyncio
    async def test_existence_check_fault(self, make_connection, service, sink):
        service.queue("GET", "/indexes('hotels')", httpx.ConnectError("refused"))
        connection = make_connection(sink=sink)

        result = await connection.ensure_index(Hotel)

        assert not result
        assert result.reason == "Error on checking if hotels exists!"
        [event] = sink.of(Severity.ERROR)
        assert event.message == "Error on checking if hotels exists!"
        assert event.context["index_name"] == "hotels"
        assert event.error is result.error
        assert not service.calls("POST", "/indexes")

    @pytest.mark.asyncio
    async def test_create_rejected(self, make_connection, service, sink):
        service.queue("POST", "/indexes", httpx.Response(400, json={"error": {"message": "bad field"}}))
        connection = make_connection(sink=sink)

        result = await connection.ensure_index(Hotel)

        assert not result
        assert sink.of(Severity.ERROR)[0].message == "Index hotels was not created!"
        assert "bad field" in str(result.error)

    @pytest.mark.asyncio
    async def test_sink_override(self, make_connection, service, sink):
        service.queue("GET", "/indexes('hotels')", httpx.ConnectError("refused"))
        connection = make_connection()

        assert not await connection.ensure_index(Hotel, sink=sink)
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_unresolvable_type(self, make_connection, service, sink):
        connection = make_connection(sink=sink)

        result = await connection.ensure_index(Review)

        assert not result
        assert "Review" in sink.of(Severity.ERROR)[0].message
        assert not service.requests

    @pytest.mark.asyncio
    async def test_index_claimed_by_another_type(self, make_connection, service, sink):
        connection = make_connection(index="hotels", sink=sink)
        assert connection.get_index(Review) == "hotels"

        result = await connection.ensure_index(Hotel)

        assert not result
        [event] = sink.of(Severity.ERROR)
        assert isinstance(event.error, InvalidConfigurationError)
        assert "already bound" in event.message
        assert not service.requests


class TestIndexAdministration:
    """Test deletion, statistics and listing."""

    @pytest.mark.asyncio
    async def test_delete_existing_and_missing(self, make_connection, service):
        connection = make_connection()
        await connection.ensure_index(Hotel)

        assert await connection.delete_index(Hotel)
        assert "hotels" not in service.indexes
        assert await connection.delete_index(Hotel)

    @pytest.mark.asyncio
    async def test_delete_fault(self, make_connection, service, sink):
        service.queue("DELETE", "/indexes('hotels')", httpx.Response(403, json={"error": {"message": "denied"}}))
        connection = make_connection(sink=sink)

        result = await connection.delete_index(Hotel)

        assert not result
        assert sink.of(Severity.ERROR)[0].message == "Error on deleting hotels!"

    @pytest.mark.asyncio
    async def test_statistics(self, make_connection, service):
        connection = make_connection()
        await connection.ensure_index(Hotel)
        service.documents["hotels"] = [{"hotel_id": "1"}, {"hotel_id": "2"}]

        stats = await connection.get_index_statistics(Hotel)

        assert stats == IndexStatistics(document_count=2, storage_size=2048)

    @pytest.mark.asyncio
    async def test_statistics_of_missing_index(self, make_connection, sink):
        connection = make_connection(sink=sink)

        assert await connection.get_index_statistics(Hotel) is None
        assert sink.of(Severity.ERROR)[0].message == "Error on getting hotels statistics!"

    @pytest.mark.asyncio
    async def test_index_claimed_by_another_type(self, make_connection, service, sink):
        connection = make_connection(index="hotels", sink=sink)
        connection.get_index(Review)

        assert not await connection.delete_index(Hotel)
        assert await connection.get_index_statistics(Hotel) is None

        errors = sink.of(Severity.ERROR)
        assert [e.context["operation"] for e in errors] == ["delete_index", "index_statistics"]
        assert all(isinstance(e.error, InvalidConfigurationError) for e in errors)
        assert not service.requests

    @pytest.mark.asyncio
    async def test_list_indexes(self, make_connection, service):
        connection = make_connection()
        await connection.ensure_index(Hotel)

        assert await connection.list_indexes() == ["hotels"]
        request = service.calls("GET", "/indexes")[-1]
        assert request.url.params["$select"] == "name"

    @pytest.mark.asyncio
    async def test_list_indexes_fault(self, make_connection, service, sink):
        service.queue("GET", "/indexes", httpx.ConnectError("refused"))
        connection = make_connection(sink=sink)

        assert await connection.list_indexes() == []
        assert sink.of(Severity.ERROR)[0].message == "Error on listing indexes!"


class TestRetryAndMetrics:
    """Test retry of transient statuses and request metrics."""

    @pytest.mark.asyncio
    async def test_transient_status_is_retried(self, make_connection, service):
        service.queue("GET", "/indexes('hotels')", httpx.Response(503), httpx.Response(429))
        policy = RetryPolicy(RetryConfig(max_attempts=3, base_delay=0.0, jitter=False))
        connection = make_connection(retry_policy=policy)

        assert await connection.ensure_index(Hotel)
        assert len(service.calls("GET", "/indexes('hotels')")) == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, make_connection, service, sink):
        service.queue("GET", "/indexes('hotels')", httpx.Response(503), httpx.Response(503))
        policy = RetryPolicy(RetryConfig(max_attempts=2, base_delay=0.0, jitter=False))
        connection = make_connection(retry_policy=policy, sink=sink)

        assert not await connection.ensure_index(Hotel)
        assert len(service.calls("GET", "/indexes('hotels')")) == 2
        assert sink.of(Severity.ERROR)[0].error.status_code == 503

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, make_connection, service):
        metrics = SearchMetrics("test-search")
        service.queue("DELETE", "/indexes('hotels')", httpx.ConnectError("refused"))
        connection = make_connection(metrics=metrics)

        await connection.ensure_index(Hotel)
        await connection.delete_index(Hotel)

        registry = metrics.registry
        labels = {"service": "test-search", "operation": "create_index", "status": "201"}
        assert registry.get_sample_value("search_toolkit_requests_total", labels) == 1.0
        failures = {"service": "test-search", "operation": "delete_index"}
        assert registry.get_sample_value("search_toolkit_operation_failures_total", failures) == 1.0
        refused = {"service": "test-search", "operation": "delete_index", "status": "0"}
        assert registry.get_sample_value("search_toolkit_requests_total", refused) == 1.0
        durations = {"service": "test-search", "operation": "create_index"}
        assert registry.get_sample_value("search_toolkit_request_duration_seconds_count", durations) == 1.0

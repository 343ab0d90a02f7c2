"""Pytest configuration and shared fixtures.

``FakeSearchService`` stands in for the remote service behind an
``httpx.MockTransport``: it keeps index definitions and documents in memory,
records every request, and lets tests queue canned responses or errors for a
route.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote

import httpx
import pytest
from pydantic import BaseModel, ConfigDict

from search_toolkit import SearchConnection, search_index
from search_toolkit.common.logging import DiagnosticSink, Severity


# =============================================================================
# Entities
# =============================================================================

@search_index("hotels", key="hotel_id")
class Hotel(BaseModel):
    # frozen so instances can key a change_documents mapping
    model_config = ConfigDict(frozen=True)

    hotel_id: str
    name: str
    rating: Optional[float] = None
    tags: Tuple[str, ...] = ()


class Review(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str


@dataclass
class Room:
    id: str
    beds: int


# =============================================================================
# Diagnostic sink
# =============================================================================

@dataclass
class LogEvent:
    severity: Severity
    message: str
    error: Optional[BaseException] = None
    context: Dict[str, Any] = field(default_factory=dict)


class RecordingSink(DiagnosticSink):
    """Sink keeping every event for assertions."""

    def __init__(self):
        self.events: List[LogEvent] = []

    def log(self, severity, message, error=None, context=None):
        self.events.append(LogEvent(severity, message, error, dict(context or {})))

    def of(self, severity: Severity) -> List[LogEvent]:
        return [event for event in self.events if event.severity == severity]


# =============================================================================
# Fake service
# =============================================================================

class FakeSearchService:
    """In-memory search service speaking just enough of the REST protocol."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.indexes: Dict[str, Dict[str, Any]] = {}
        self.documents: Dict[str, List[Dict[str, Any]]] = {}
        self.search_id = "search-id-1"
        self.cancelled = False
        self.started = asyncio.Event()
        self._queued: Dict[Tuple[str, str], List[Any]] = {}
        self._hanging: set = set()

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def queue(self, method: str, path: str, *responses: Any) -> None:
        """Serve ``responses`` (``httpx.Response`` or exceptions) in order for a route."""
        self._queued.setdefault((method, path), []).extend(responses)

    def hang(self, method: str, path: str) -> None:
        """Make a route block until the request is cancelled (async clients only)."""
        self._hanging.add((method, path))

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and unquote(r.url.path) == path]

    def body(self, request: httpx.Request) -> Any:
        return json.loads(request.content)

    def handle(self, request: httpx.Request):
        self.requests.append(request)
        path = unquote(request.url.path)
        route = (request.method, path)

        if route in self._hanging:
            return self._hang()

        queued = self._queued.get(route)
        if queued:
            item = queued.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        return self._default(request, path)

    async def _hang(self) -> httpx.Response:
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return httpx.Response(500)

    @staticmethod
    def _index_name(path: str) -> str:
        return path.split("('", 1)[1].split("')", 1)[0]

    def _key_field(self, index: str) -> str:
        for item in self.indexes.get(index, {}).get("fields", []):
            if item.get("key"):
                return item["name"]
        return "hotel_id" if index == "hotels" else "id"

    def _default(self, request: httpx.Request, path: str) -> httpx.Response:
        method = request.method

        if path == "/indexes" and method == "GET":
            return httpx.Response(200, json={"value": [{"name": name} for name in self.indexes]})

        if path == "/indexes" and method == "POST":
            definition = self.body(request)
            self.indexes[definition["name"]] = definition
            return httpx.Response(201, json=definition)

        index = self._index_name(path)

        if path.endswith("/stats"):
            if index not in self.indexes:
                return httpx.Response(404, json={"error": {"message": "Index not found"}})
            return httpx.Response(
                200, json={"documentCount": len(self.documents.get(index, [])), "storageSize": 2048}
            )

        if path.endswith("/docs/index"):
            key_field = self._key_field(index)
            actions = self.body(request)["value"]
            results = [
                {"key": action[key_field], "status": True, "statusCode": 200, "errorMessage": None}
                for action in actions
            ]
            return httpx.Response(200, json={"value": results})

        if path.endswith("/docs/search.post.search"):
            body = self.body(request)
            documents = [{"@search.score": 1.0, **doc} for doc in self.documents.get(index, [])]
            if body.get("select"):
                selected = {"@search.score", *body["select"].split(",")}
                documents = [{k: v for k, v in doc.items() if k in selected} for doc in documents]
            page = documents[body.get("skip", 0):]
            top = body.get("top")
            payload: Dict[str, Any] = {"value": page if top is None else page[:top]}
            if body.get("count"):
                payload["@odata.count"] = len(documents)
            headers = {}
            if request.headers.get("x-ms-azs-return-searchid") == "true":
                headers["x-ms-azs-searchid"] = self.search_id
            return httpx.Response(200, json=payload, headers=headers)

        if method == "GET":
            if index in self.indexes:
                return httpx.Response(200, json=self.indexes[index])
            return httpx.Response(404, json={"error": {"message": "Index not found"}})

        if method == "DELETE":
            existed = self.indexes.pop(index, None) is not None
            return httpx.Response(204 if existed else 404)

        return httpx.Response(400, json={"error": {"message": f"Unexpected {method} {path}"}})


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def service() -> FakeSearchService:
    return FakeSearchService()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_connection(service):
    """Factory for connections wired to the fake service."""

    def factory(*args: Any, **kwargs: Any) -> SearchConnection:
        kwargs.setdefault("transport", service.transport)
        if not args and "index" not in kwargs and "indexes" not in kwargs:
            kwargs["indexes"] = {Hotel: "hotels"}
        return SearchConnection("test-search", "secret-key", *args, **kwargs)

    return factory

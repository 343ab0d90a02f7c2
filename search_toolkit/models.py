"""Wire models exchanged with the search service.

Models are plain dataclasses with ``to_dict``/``from_dict`` helpers producing
the camelCase JSON shapes the REST protocol expects.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar

T = TypeVar("T")

SEARCH_ID_HEADER = "x-ms-azs-searchid"
RETURN_SEARCH_ID_HEADER = "x-ms-azs-return-searchid"


class IndexActionType(Enum):
    """Mutation applied to one document of a batch."""
    UPLOAD = "upload"
    DELETE = "delete"
    MERGE = "merge"
    MERGE_OR_UPLOAD = "mergeOrUpload"

    @classmethod
    def coerce(cls, value: Any) -> "IndexActionType":
        """Map a kind to an action; anything unrecognized becomes MERGE_OR_UPLOAD."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if value == member.value or value.upper() == member.name:
                    return member
        return cls.MERGE_OR_UPLOAD


@dataclass
class IndexAction:
    """A single document paired with the action to apply."""
    action_type: IndexActionType
    document: Dict[str, Any]
    key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"@search.action": self.action_type.value, **self.document}


@dataclass
class IndexBatch:
    """Ordered actions submitted in one request."""
    actions: List[IndexAction] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.actions)

    def to_dict(self) -> Dict[str, Any]:
        return {"value": [action.to_dict() for action in self.actions]}


@dataclass
class IndexingResult:
    """Service acknowledgement for one document of a batch."""
    key: str
    succeeded: bool
    status_code: int = 200
    error_message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IndexingResult":
        return cls(
            key=str(data.get("key")),
            succeeded=bool(data.get("status", False)),
            status_code=int(data.get("statusCode", 0)),
            error_message=data.get("errorMessage"),
        )


@dataclass
class DocumentIndexResult:
    """Per-document results of a batch submission."""
    results: Optional[List[IndexingResult]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DocumentIndexResult":
        value = data.get("value")
        if value is None:
            return cls(results=None)
        return cls(results=[IndexingResult.from_dict(item) for item in value])

    @property
    def failed(self) -> List[IndexingResult]:
        return [result for result in self.results or [] if not result.succeeded]


@dataclass
class SearchField:
    """Field schema entry of an index definition."""
    name: str
    type: str
    key: bool = False
    searchable: bool = False
    filterable: bool = False
    sortable: bool = False
    facetable: bool = False
    retrievable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "type": self.type,
            "key": self.key,
            "searchable": self.searchable,
            "filterable": self.filterable,
            "facetable": self.facetable,
            "retrievable": self.retrievable,
        }
        # Collections cannot be sorted on; the service rejects the attribute.
        if not self.type.startswith("Collection("):
            data["sortable"] = self.sortable
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SearchField":
        return cls(
            name=data["name"],
            type=data["type"],
            key=bool(data.get("key", False)),
            searchable=bool(data.get("searchable", False)),
            filterable=bool(data.get("filterable", False)),
            sortable=bool(data.get("sortable", False)),
            facetable=bool(data.get("facetable", False)),
            retrievable=bool(data.get("retrievable", True)),
        )


@dataclass
class ScoringProfile:
    """Named ranking configuration for an index.

    ``functions`` are passed through verbatim in the service's JSON shape
    (``freshness``, ``magnitude``, ``distance`` or ``tag`` functions).
    """
    name: str
    text_weights: Dict[str, float] = field(default_factory=dict)
    functions: List[Dict[str, Any]] = field(default_factory=list)
    function_aggregation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.text_weights:
            data["text"] = {"weights": dict(self.text_weights)}
        if self.functions:
            data["functions"] = list(self.functions)
        if self.function_aggregation:
            data["functionAggregation"] = self.function_aggregation
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScoringProfile":
        return cls(
            name=data["name"],
            text_weights=dict((data.get("text") or {}).get("weights") or {}),
            functions=list(data.get("functions") or []),
            function_aggregation=data.get("functionAggregation"),
        )


@dataclass
class IndexScoringProfiles:
    """Scoring profiles to apply when an index is created."""
    profiles: List[ScoringProfile] = field(default_factory=list)
    default_profile: Optional[str] = None


@dataclass
class IndexDefinition:
    """Index name, field schema and optional scoring profiles."""
    name: str
    fields: List[SearchField] = field(default_factory=list)
    scoring_profiles: Optional[List[ScoringProfile]] = None
    default_scoring_profile: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.scoring_profiles:
            data["scoringProfiles"] = [p.to_dict() for p in self.scoring_profiles]
        if self.default_scoring_profile:
            data["defaultScoringProfile"] = self.default_scoring_profile
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IndexDefinition":
        return cls(
            name=data["name"],
            fields=[SearchField.from_dict(f) for f in data.get("fields") or []],
            scoring_profiles=[
                ScoringProfile.from_dict(p) for p in data.get("scoringProfiles") or []
            ] or None,
            default_scoring_profile=data.get("defaultScoringProfile"),
        )


@dataclass
class IndexStatistics:
    """Document count and storage size of an index."""
    document_count: int
    storage_size: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IndexStatistics":
        return cls(
            document_count=int(data.get("documentCount", 0)),
            storage_size=int(data.get("storageSize", 0)),
        )


@dataclass
class SearchParameters:
    """Query options sent alongside the search text."""
    filter: Optional[str] = None
    select: Optional[List[str]] = None
    order_by: Optional[List[str]] = None
    skip: Optional[int] = None
    top: Optional[int] = None
    include_total_count: bool = False
    search_fields: Optional[List[str]] = None
    search_mode: Optional[str] = None
    query_type: Optional[str] = None
    scoring_profile: Optional[str] = None
    facets: Optional[List[str]] = None
    highlight_fields: Optional[List[str]] = None

    def to_dict(self, search_text: Optional[str] = None) -> Dict[str, Any]:
        """Request body for ``docs/search.post.search``."""
        data: Dict[str, Any] = {"search": search_text if search_text is not None else "*"}
        if self.filter:
            data["filter"] = self.filter
        if self.select:
            data["select"] = ",".join(self.select)
        if self.order_by:
            data["orderby"] = ",".join(self.order_by)
        if self.skip is not None:
            data["skip"] = self.skip
        if self.top is not None:
            data["top"] = self.top
        if self.include_total_count:
            data["count"] = True
        if self.search_fields:
            data["searchFields"] = ",".join(self.search_fields)
        if self.search_mode:
            data["searchMode"] = self.search_mode
        if self.query_type:
            data["queryType"] = self.query_type
        if self.scoring_profile:
            data["scoringProfile"] = self.scoring_profile
        if self.facets:
            data["facets"] = list(self.facets)
        if self.highlight_fields:
            data["highlight"] = ",".join(self.highlight_fields)
        return data

    def __str__(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


@dataclass
class SearchResponse:
    """Raw HTTP-level outcome of a search request."""
    status_code: int
    reason_phrase: str
    headers: Dict[str, str] = field(default_factory=dict)
    results: List[Dict[str, Any]] = field(default_factory=list)
    count: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def search_id(self) -> Optional[str]:
        return self.headers.get(SEARCH_ID_HEADER)


@dataclass
class SearchResults(Generic[T]):
    """Typed documents returned by a search."""
    results: List[T] = field(default_factory=list)
    count: Optional[int] = None

    def __iter__(self):
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

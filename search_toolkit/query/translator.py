"""Translate query expressions into search requests."""

from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import InvalidArgumentError
from ..models import SearchParameters
from .expressions import Expression, calls_of, root_of

ORDERING_METHODS = ("order_by", "order_by_descending")
THEN_METHODS = ("then_by", "then_by_descending")


@dataclass
class TranslatedQuery:
    """Search text and parameters for one expression.

    ``terminal`` is ``None`` for sequence queries, else ``"count"`` or
    ``"first"``.
    """
    source_type: type
    result_type: type
    search_text: Optional[str] = None
    parameters: SearchParameters = field(default_factory=SearchParameters)
    terminal: Optional[str] = None


class QueryTranslator:
    """Folds operator calls, in application order, into ``SearchParameters``.

    - ``where`` filters are AND-combined in order
    - ``order_by*`` starts a new ordering, ``then_by*`` extends it
    - ``skip``/``take`` compose like their sequence counterparts
    - the last ``search`` text wins
    """

    def translate(self, expression: Expression) -> TranslatedQuery:
        root = root_of(expression)
        query = TranslatedQuery(source_type=root.element_type, result_type=root.element_type)
        parameters = query.parameters
        filters: List[str] = []
        order_by: List[str] = []

        for call in calls_of(expression):
            method, args = call.method, call.arguments

            if method == "search":
                query.search_text = args[0]
            elif method == "where":
                filters.append(args[0])
            elif method == "select":
                parameters.select = list(args)
                query.result_type = call.element_type
            elif method in ORDERING_METHODS:
                order_by = [self._order_clause(args[0], method.endswith("descending"))]
            elif method in THEN_METHODS:
                if not order_by:
                    raise InvalidArgumentError("expression", f"{method} requires a preceding order_by")
                order_by.append(self._order_clause(args[0], method.endswith("descending")))
            elif method == "skip":
                parameters.skip = (parameters.skip or 0) + args[0]
                if parameters.top is not None:
                    parameters.top = max(parameters.top - args[0], 0)
            elif method == "take":
                parameters.top = args[0] if parameters.top is None else min(parameters.top, args[0])
            elif method == "with_scoring_profile":
                parameters.scoring_profile = args[0]
            elif method == "search_fields":
                parameters.search_fields = list(args)
            elif method == "include_total_count":
                parameters.include_total_count = True
            elif method == "count":
                query.terminal = "count"
                parameters.include_total_count = True
                parameters.top = 0
            elif method == "first":
                query.terminal = "first"
                parameters.top = 1 if parameters.top is None else min(parameters.top, 1)
            else:
                raise InvalidArgumentError("expression", f"Unsupported query method {method}")

        if filters:
            parameters.filter = filters[0] if len(filters) == 1 else " and ".join(f"({f})" for f in filters)
        if order_by:
            parameters.order_by = order_by

        return query

    @staticmethod
    def _order_clause(field_name: str, descending: bool) -> str:
        return f"{field_name} desc" if descending else f"{field_name} asc"

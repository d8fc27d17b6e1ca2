"""
CaproneSearch Aggregation — Nested Aggregation Builder
======================================================

The object handed to ``aggregate(..., block)``. It speaks the filtering,
sorting, source, highlight, pagination and custom vocabulary of a criteria,
but nothing that only makes sense for a top-level search request.

Example:
    query = OrderIndex().aggregate("user_id", lambda agg: (
        agg.where(state="paid")
           .aggregate({"revenue": {"sum": {"field": "price"}}})
    ))
"""

from dataclasses import dataclass
from typing import Any, Dict

from .constraints import Constraints, bool_section, defined_on_class
from .exceptions import NotSupportedError

# Criteria fields that must never leak into an aggregation scope
UNSUPPORTED_FIELDS = (
    "profile_value",
    "failsafe_value",
    "terminate_after_value",
    "timeout_value",
    "scroll_args",
    "suggest_values",
    "includes_values",
    "eager_load_values",
    "preload_values",
    "post_must_values",
    "post_must_not_values",
    "post_filter_values",
    "preference_value",
    "search_type_value",
    "routing_value",
    "http_timeout_value",
    "explain_value",
    "track_total_hits_value",
)


def _is_set(value: Any) -> bool:
    return value is not None and value != ()


@dataclass(frozen=True)
class Aggregation(Constraints):

    def to_dict(self) -> Dict[str, Any]:
        """
        Compile the aggregation into the keys merged into its parent entry.

        Returns:
            Dict with any of aggregations, filter, from/size, sort,
            highlight, _source and custom sections
        """
        res: Dict[str, Any] = {}

        if self.aggregation_values:
            res["aggregations"] = self.aggregation_values

        query = bool_section(self.must_values, self.must_not_values, self.filter_values)
        if query is not None:
            res["filter"] = query

        if self.offset_value is not None or self.limit_value is not None:
            res["from"] = self.offset_value_with_default
            res["size"] = self.limit_value_with_default

        if self.sort_values is not None:
            res["sort"] = list(self.sort_values)
        if self.highlight_values is not None:
            res["highlight"] = self.highlight_values
        if self.source_value is not None:
            res["_source"] = self.source_value

        if self.custom_value:
            res.update(self.custom_value)

        return res

    def merge(self, other) -> "Aggregation":
        """
        Merge the constraints of a criteria (or another aggregation) into this
        aggregation. Raises NotSupportedError if ``other`` carries settings
        that only apply to top-level search requests.
        """
        if not isinstance(other, Constraints):
            other = other.criteria()

        unsupported = [name for name in UNSUPPORTED_FIELDS if _is_set(getattr(other, name, None))]
        if unsupported:
            raise NotSupportedError(
                f"Can't merge {', '.join(unsupported)} into an aggregation"
            )

        return self._merge_constraints(other)

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        if defined_on_class(self, name):
            return object.__getattribute__(self, name)

        target = self.target
        resolver = getattr(target, "resolve_scope", None)
        scope = resolver(name) if resolver is not None else None

        if scope is None:
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

        def call_scope(*args, **kwargs):
            return self.merge(scope(target.criteria(), *args, **kwargs))

        return call_scope

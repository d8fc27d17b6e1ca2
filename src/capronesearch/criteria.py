"""
CaproneSearch Criteria — Chainable Query Builder
================================================

A Criteria accumulates filters, queries, aggregations, sorting, pagination and
request settings through chained calls. Each call returns a new criteria; a
terminal call (``execute``, ``records``, ``results``, ``total_count``, ...)
compiles the request, sends it to Elasticsearch once and decodes the answer.

Example:
    products = ProductIndex()

    products.where(available=True).sort({"id": "desc"}).limit(1_000).records
    products.range("created_at", lt="2024-01-01").delete()
    products.search("hello world").total_count
    products.exists("user_id").paginate(page=1, per_page=100)
    products.sort("_doc").find_each()

Request compilation:
    query          bool of must / must_not / filter (omitted when empty)
    from, size     always present, default 0 / 30
    post_filter    bool of the post_* clauses, applied after aggregations
    ...            sort, aggregations, highlight, suggest, _source, explain,
                   profile, timeout, terminate_after, track_total_hits
    custom         merged last, overriding anything above
"""

from dataclasses import dataclass
from functools import cached_property
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import structlog

from .constraints import Constraints, bool_section, defined_on_class, merge_dicts, where_clauses
from .exceptions import NotSupportedError, TransportError
from .response import Response

logger = structlog.get_logger(__name__)

# Single-valued settings: merge takes the other criteria's value if set
SCALAR_FIELDS = (
    "profile_value",
    "failsafe_value",
    "terminate_after_value",
    "timeout_value",
    "scroll_args",
    "preference_value",
    "search_type_value",
    "routing_value",
    "track_total_hits_value",
    "explain_value",
    "http_timeout_value",
)

# Multi-valued settings: merge concatenates, self first
SEQUENCE_FIELDS = (
    "includes_values",
    "eager_load_values",
    "preload_values",
    "post_must_values",
    "post_must_not_values",
    "post_filter_values",
)

UNSCOPABLE = ("search", "post_search", "sort", "highlight", "suggest", "custom", "aggregate")


def _empty_response() -> dict:
    return {"took": 0, "hits": {"total": 0, "hits": []}}


def _is_query_string(clause: Any) -> bool:
    return isinstance(clause, Mapping) and set(clause) == {"query_string"}


def _response_property(name: str) -> property:
    def getter(self):
        return getattr(self.response, name)

    getter.__name__ = name
    getter.__doc__ = f"Shortcut for ``response.{name}``."
    return property(getter)


@dataclass(frozen=True)
class Criteria(Constraints):
    post_must_values: Tuple[Any, ...] = ()
    post_must_not_values: Tuple[Any, ...] = ()
    post_filter_values: Tuple[Any, ...] = ()

    suggest_values: Optional[Dict[str, Any]] = None
    scroll_args: Optional[Dict[str, Any]] = None

    profile_value: Optional[bool] = None
    explain_value: Optional[bool] = None
    failsafe_value: Optional[bool] = None
    timeout_value: Optional[str] = None
    terminate_after_value: Optional[int] = None
    preference_value: Optional[str] = None
    search_type_value: Optional[str] = None
    routing_value: Optional[str] = None
    track_total_hits_value: Any = None
    http_timeout_value: Optional[float] = None

    includes_values: Tuple[Any, ...] = ()
    eager_load_values: Tuple[Any, ...] = ()
    preload_values: Tuple[Any, ...] = ()

    def criteria(self) -> "Criteria":
        return self

    @property
    def connection(self):
        return self.target.connection

    # Post filters, applied after aggregations have been calculated

    def post_search(self, q: Optional[str], **options) -> "Criteria":
        if not (q or "").strip():
            return self.fresh()

        return self.post_must({"query_string": {"query": q, "default_operator": "AND", **options}})

    def post_where(self, mapping: Optional[Mapping[str, Any]] = None, **fields) -> "Criteria":
        """
        Post filter version of ``where``.

        Example:
            query = ProductIndex().aggregate("category").post_where(price=Range(20, 50))
        """
        criteria = self.fresh()

        for excluded, clause in where_clauses(mapping, fields):
            criteria = criteria.post_must_not(clause) if excluded else criteria.post_filter(clause)

        return criteria

    def post_where_not(self, mapping: Optional[Mapping[str, Any]] = None, **fields) -> "Criteria":
        criteria = self.fresh()

        for excluded, clause in where_clauses(mapping, fields, negate=True):
            criteria = criteria.post_must_not(clause) if excluded else criteria.post_filter(clause)

        return criteria

    def post_filter(self, *clauses) -> "Criteria":
        return self.fresh(post_filter_values=self.post_filter_values + clauses)

    def post_must(self, *clauses) -> "Criteria":
        return self.fresh(post_must_values=self.post_must_values + clauses)

    def post_must_not(self, *clauses) -> "Criteria":
        return self.fresh(post_must_not_values=self.post_must_not_values + clauses)

    def post_should(self, clauses, **options) -> "Criteria":
        return self.post_must({"bool": {"should": list(clauses), **options}})

    def post_range(self, field: str, **options) -> "Criteria":
        return self.post_filter({"range": {field: options}})

    def post_exists(self, field: str) -> "Criteria":
        return self.post_filter({"exists": {"field": field}})

    def post_exists_not(self, field: str) -> "Criteria":
        return self.post_must_not({"exists": {"field": field}})

    # Request settings

    def suggest(self, name: str, **options) -> "Criteria":
        """
        Add a named suggestion section.

        Example:
            index.suggest("suggestion", text="helo", term={"field": "message"})
        """
        return self.fresh(suggest_values={**(self.suggest_values or {}), name: options})

    def scroll(self, id: Optional[str] = None, timeout: str = "1m") -> "Criteria":
        """
        Request a new scroll cursor (``id=None``) or continue an existing one.

        Example:
            query = index.scroll(timeout="5m")
            while query.records:
                ...
                query = query.scroll(id=query.scroll_id, timeout="5m")
        """
        return self.fresh(scroll_args={"id": id, "timeout": timeout})

    def profile(self, value: bool = True) -> "Criteria":
        return self.fresh(profile_value=value)

    def explain(self, value: bool = True) -> "Criteria":
        return self.fresh(explain_value=value)

    def failsafe(self, value: bool = True) -> "Criteria":
        """
        Return an empty response instead of raising when Elasticsearch is
        unreachable, times out or rejects the request.
        """
        return self.fresh(failsafe_value=value)

    def timeout(self, value: str) -> "Criteria":
        return self.fresh(timeout_value=value)

    def terminate_after(self, value: int) -> "Criteria":
        return self.fresh(terminate_after_value=value)

    def preference(self, value: str) -> "Criteria":
        return self.fresh(preference_value=value)

    def search_type(self, value: str) -> "Criteria":
        return self.fresh(search_type_value=value)

    def routing(self, value: str) -> "Criteria":
        return self.fresh(routing_value=value)

    def track_total_hits(self, value: Any) -> "Criteria":
        return self.fresh(track_total_hits_value=value)

    def http_timeout(self, value: float) -> "Criteria":
        return self.fresh(http_timeout_value=value)

    def includes(self, *args) -> "Criteria":
        return self.fresh(includes_values=self.includes_values + args)

    def eager_load(self, *args) -> "Criteria":
        return self.fresh(eager_load_values=self.eager_load_values + args)

    def preload(self, *args) -> "Criteria":
        return self.fresh(preload_values=self.preload_values + args)

    def with_settings(self, **kwargs) -> "Criteria":
        """Query a different index name and/or connection, see Index.with_settings."""
        return self.fresh(target=self.target.with_settings(**kwargs))

    def unscope(self, *scopes: str) -> "Criteria":
        """
        Remove search, post_search, sort, highlight, suggest, custom and/or
        aggregate settings.
        """
        unknown = [scope for scope in scopes if scope not in UNSCOPABLE]
        if unknown:
            raise ValueError(f"Can't unscope {', '.join(unknown)}")

        changes: Dict[str, Any] = {}
        if "search" in scopes:
            changes["must_values"] = tuple(c for c in self.must_values if not _is_query_string(c))
        if "post_search" in scopes:
            changes["post_must_values"] = tuple(c for c in self.post_must_values if not _is_query_string(c))
        if "sort" in scopes:
            changes["sort_values"] = None
        if "highlight" in scopes:
            changes["highlight_values"] = None
        if "suggest" in scopes:
            changes["suggest_values"] = None
        if "custom" in scopes:
            changes["custom_value"] = None
        if "aggregate" in scopes:
            changes["aggregation_values"] = None

        return self.fresh(**changes)

    def merge(self, other) -> "Criteria":
        """
        Combine two criterias. Single-valued settings of ``other`` win when
        set, clause lists and sort orders are concatenated, mappings are
        merged key-wise with ``other`` winning.

        Example:
            index.where(approved=True).merge(index.range("created_at", gt="2015-01-01"))
        """
        if not isinstance(other, Constraints):
            other = other.criteria()

        changes: Dict[str, Any] = {}
        for name in SCALAR_FIELDS:
            value = getattr(other, name, None)
            if value is not None:
                changes[name] = value
        for name in SEQUENCE_FIELDS:
            changes[name] = getattr(self, name) + getattr(other, name, ())

        changes["suggest_values"] = merge_dicts(self.suggest_values, getattr(other, "suggest_values", None))

        return self._merge_constraints(other, **changes)

    # Compilation

    def to_query(self) -> Dict[str, Any]:
        """
        All constraints, post filters included, as a single query, e.g. for
        use as a sub-query of another request.
        """
        query = bool_section(
            must=self.must_values + self.filter_values + self.post_must_values + self.post_filter_values,
            must_not=self.must_not_values + self.post_must_not_values
        )
        return query or {"match_all": {}}

    def to_filter(self) -> Dict[str, Any]:
        """Same as ``to_query``, but in filter context, i.e. without scoring."""
        query = bool_section(
            filter=self.must_values + self.filter_values + self.post_must_values + self.post_filter_values,
            must_not=self.must_not_values + self.post_must_not_values
        )
        return query or {"match_all": {}}

    @cached_property
    def request(self) -> Dict[str, Any]:
        """The compiled request document."""
        res: Dict[str, Any] = {}

        query = bool_section(self.must_values, self.must_not_values, self.filter_values)
        if query is not None:
            res["query"] = query

        res["from"] = self.offset_value_with_default
        res["size"] = self.limit_value_with_default

        if self.timeout_value is not None:
            res["timeout"] = self.timeout_value
        if self.terminate_after_value is not None:
            res["terminate_after"] = self.terminate_after_value
        if self.highlight_values is not None:
            res["highlight"] = self.highlight_values
        if self.suggest_values is not None:
            res["suggest"] = self.suggest_values
        if self.sort_values is not None:
            res["sort"] = list(self.sort_values)
        if self.aggregation_values is not None:
            res["aggregations"] = self.aggregation_values

        post_filter = bool_section(self.post_must_values, self.post_must_not_values, self.post_filter_values)
        if post_filter is not None:
            res["post_filter"] = post_filter

        if self.source_value is not None:
            res["_source"] = self.source_value
        if self.explain_value is not None:
            res["explain"] = self.explain_value
        if self.profile_value:
            res["profile"] = True
        if self.track_total_hits_value is not None:
            res["track_total_hits"] = self.track_total_hits_value

        if self.custom_value:
            res.update(self.custom_value)

        return res

    # Execution

    def execute(self) -> Response:
        """
        Send the request (once per criteria) and return the response. Failsafe
        criterias return an empty response on transport errors.
        """
        return self.response

    @cached_property
    def response(self) -> Response:
        try:
            raw = self._perform()
        except TransportError as e:
            if not self.failsafe_value:
                raise

            logger.warning(
                "Failsafe search failed, returning empty response",
                index=self.target.index_name_with_prefix,
                error=str(e)
            )
            raw = _empty_response()

        return Response(self, raw)

    def _perform(self) -> dict:
        connection = self.connection

        if self.track_total_hits_value is not None and connection.major_version < 7:
            raise NotSupportedError("track_total_hits requires Elasticsearch 7 or later")

        if self.scroll_args and self.scroll_args.get("id"):
            return connection.scroll(
                scroll_id=self.scroll_args["id"],
                scroll=self.scroll_args["timeout"],
                request_timeout=self.http_timeout_value
            )

        return connection.search(
            index=self.target.index_name_with_prefix,
            body=self.request,
            request_timeout=self.http_timeout_value,
            scroll=self.scroll_args["timeout"] if self.scroll_args else None,
            routing=self.routing_value,
            preference=self.preference_value,
            search_type=self.search_type_value
        )

    def delete(self, **params) -> dict:
        """
        Delete all documents matching the criteria via delete-by-query.

        Args:
            **params: URL parameters for the delete-by-query request

        Returns:
            The raw delete-by-query response
        """
        connection = self.connection
        if connection.major_version < 5:
            raise NotSupportedError("delete_by_query requires Elasticsearch 5 or later")

        body = dict(self.request)
        body.pop("from", None)
        body.pop("size", None)

        params.setdefault("routing", self.routing_value)
        params = {key: value for key, value in params.items() if value is not None}

        response = connection.delete_by_query(index=self.target.index_name_with_prefix, body=body, **params)

        if self.target.settings.auto_refresh:
            self.target.refresh()

        return response

    # Response shortcuts

    total_count = _response_property("total_count")
    total_entries = _response_property("total_entries")
    current_page = _response_property("current_page")
    total_pages = _response_property("total_pages")
    previous_page = _response_property("previous_page")
    prev_page = _response_property("prev_page")
    next_page = _response_property("next_page")
    first_page = _response_property("first_page")
    last_page = _response_property("last_page")
    out_of_range = _response_property("out_of_range")
    hits = _response_property("hits")
    ids = _response_property("ids")
    took = _response_property("took")
    scroll_id = _response_property("scroll_id")
    raw_response = _response_property("raw_response")
    results = _response_property("results")
    records = _response_property("records")
    scope = _response_property("scope")

    def aggregations(self, name: Optional[str] = None) -> Any:
        return self.response.aggregations(name)

    def suggestions(self, name: Optional[str] = None) -> Any:
        return self.response.suggestions(name)

    # Scrolling

    def find_in_batches(self, batch_size: int = 1_000, timeout: str = "1m") -> Iterator[List[Any]]:
        """
        Iterate the matching records in batches using the scroll API.

        Args:
            batch_size: Records per batch, applied as limit
            timeout: How long Elasticsearch keeps the scroll cursor open

        Example:
            for batch in index.search("hello").find_in_batches(batch_size=100):
                ...
        """
        for response in self._responses_in_batches(batch_size, timeout):
            records = response.records
            if records:
                yield records

    def find_results_in_batches(self, batch_size: int = 1_000, timeout: str = "1m") -> Iterator[List[Any]]:
        for response in self._responses_in_batches(batch_size, timeout):
            yield response.results

    def find_each(self, batch_size: int = 1_000, timeout: str = "1m") -> Iterator[Any]:
        for batch in self.find_in_batches(batch_size=batch_size, timeout=timeout):
            yield from batch

    def find_each_result(self, batch_size: int = 1_000, timeout: str = "1m") -> Iterator[Any]:
        for batch in self.find_results_in_batches(batch_size=batch_size, timeout=timeout):
            yield from batch

    def _responses_in_batches(self, batch_size: int, timeout: str) -> Iterator[Response]:
        criteria = self.limit(batch_size).scroll(timeout=timeout)

        while criteria.ids:
            yield criteria.response
            criteria = criteria.scroll(id=criteria.scroll_id, timeout=timeout)

    # Named scopes

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        if defined_on_class(self, name):
            return object.__getattribute__(self, name)

        resolver = getattr(self.target, "resolve_scope", None)
        scope = resolver(name) if resolver is not None else None

        if scope is None:
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

        def call_scope(*args, **kwargs):
            return scope(self, *args, **kwargs)

        return call_scope

"""
CaproneSearch Constraints — Shared Chaining Vocabulary
======================================================

The constraint store (must / must_not / filter clauses) and the chaining
methods that Criteria and Aggregation have in common: filtering, sorting,
pagination, source filtering, highlighting, custom sections and nested
aggregations.

Every chaining method returns a new object; nothing is ever mutated in place,
so a criteria can be shared and reused as the prefix of many queries:

    base = ProductIndex().where(available=True)
    cheap = base.range("price", lt=10)
    tagged = base.where(tags=["sale", "new"])
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Range:
    """
    Inclusive range value for ``where`` style filters.

    Example:
        index.where(price=Range(100, 200))
        index.where(created_at=Range(date(2024, 1, 1), date(2024, 12, 31)))
    """

    gte: Any
    lte: Any


def _bounds(value: Any) -> Tuple[Any, Any]:
    if isinstance(value, Range):
        return value.gte, value.lte
    if len(value) == 0:
        raise ValueError("Can't filter on an empty range")
    return value[0], value[-1]


def _fields(mapping: Optional[Mapping[str, Any]], fields: Dict[str, Any]) -> Iterable[Tuple[str, Any]]:
    if mapping:
        yield from mapping.items()
    yield from fields.items()


def where_clauses(
    mapping: Optional[Mapping[str, Any]],
    fields: Dict[str, Any],
    negate: bool = False
) -> Iterator[Tuple[bool, dict]]:
    """
    Build the clauses for a field-to-value mapping.

    Yields:
        (excluded, clause) pairs; ``excluded`` clauses belong in must_not,
        the others in filter
    """
    for key, value in _fields(mapping, fields):
        if isinstance(value, (list, tuple, set, frozenset)):
            clause = {"terms": {key: list(value)}}
        elif isinstance(value, (Range, range)):
            low, high = _bounds(value)
            if negate:
                # a python range already ends exclusively at stop
                clause = {"range": {key: {"gte": low, "lt": value.stop if isinstance(value, range) else high}}}
            else:
                clause = {"range": {key: {"gte": low, "lte": high}}}
        elif value is None:
            clause = {"exists": {"field": key}}
        else:
            clause = {"term": {key: value}}

        yield negate != (value is None), clause


def bool_section(must=(), must_not=(), filter=(), **extra) -> Optional[dict]:
    """
    Wrap clause sequences in a bool query, leaving out empty arms.

    Returns:
        {"bool": {...}} or None if every arm is empty
    """
    section: Dict[str, Any] = {}
    if must:
        section["must"] = list(must)
    if must_not:
        section["must_not"] = list(must_not)
    if filter:
        section["filter"] = list(filter)
    if not section:
        return None
    section.update(extra)
    return {"bool": section}


def defined_on_class(obj: Any, name: str) -> bool:
    """
    Whether ``name`` is defined on the class of ``obj``.

    A property raising AttributeError makes Python fall back to
    ``__getattr__``. For such names ``__getattr__`` repeats the regular lookup
    so the property's own error propagates.
    """
    return any(name in vars(klass) for klass in type(obj).__mro__)


def merge_dicts(left: Optional[dict], right: Optional[dict]) -> Optional[dict]:
    if right is None:
        return left
    return {**(left or {}), **right}


@dataclass(frozen=True)
class Constraints:
    target: Any = None

    must_values: Tuple[Any, ...] = ()
    must_not_values: Tuple[Any, ...] = ()
    filter_values: Tuple[Any, ...] = ()

    sort_values: Optional[Tuple[Any, ...]] = None
    source_value: Any = None
    offset_value: Optional[int] = None
    limit_value: Optional[int] = None
    highlight_values: Optional[Dict[str, Any]] = None
    custom_value: Optional[Dict[str, Any]] = None
    aggregation_values: Optional[Dict[str, Any]] = None

    def fresh(self, **changes):
        """
        Return a copy with ``changes`` applied. Cached requests and responses
        are kept in the instance dict only, so the copy starts without them.
        """
        return dataclasses.replace(self, **changes)

    # Filtering

    def search(self, q: Optional[str], **options):
        """
        Add a query string query, using AND as default operator.

        Example:
            index.search("message:hello OR message:worl*")

        Args:
            q: Query string; blank strings leave the criteria unchanged
            **options: Extra query_string options, e.g. default_field
        """
        if not (q or "").strip():
            return self.fresh()

        return self.must({"query_string": {"query": q, "default_operator": "AND", **options}})

    def where(self, mapping: Optional[Mapping[str, Any]] = None, **fields):
        """
        Add filters for a field-to-value mapping. The filter type depends on
        the value: lists become terms filters, ranges become range filters,
        None requires the field to be missing, anything else is a term filter.

        Example:
            index.where(id=[1, 2, 3], state="approved")
            index.where(price=Range(100, 200))
            index.where({"user.id": 1}, deleted_at=None)
        """
        criteria = self.fresh()

        for excluded, clause in where_clauses(mapping, fields):
            criteria = criteria.must_not(clause) if excluded else criteria.filter(clause)

        return criteria

    def where_not(self, mapping: Optional[Mapping[str, Any]] = None, **fields):
        """
        Exclude documents matching a field-to-value mapping, see ``where``.
        Ranges are excluded up to, but not including, their upper end.
        """
        criteria = self.fresh()

        for excluded, clause in where_clauses(mapping, fields, negate=True):
            criteria = criteria.must_not(clause) if excluded else criteria.filter(clause)

        return criteria

    def filter(self, *clauses):
        return self.fresh(filter_values=self.filter_values + clauses)

    def must(self, *clauses):
        return self.fresh(must_values=self.must_values + clauses)

    def must_not(self, *clauses):
        return self.fresh(must_not_values=self.must_not_values + clauses)

    def should(self, clauses, **options):
        """
        Add a bool query of should clauses to the must clauses.

        Example:
            index.should([{"term": {"state": "new"}}, {"term": {"state": "open"}}],
                         minimum_should_match=1)
        """
        return self.must({"bool": {"should": list(clauses), **options}})

    def range(self, field: str, **options):
        """
        Add a range filter with any of gt, gte, lt, lte.

        Example:
            index.range("likes_count", gt=10, lt=100)
        """
        return self.filter({"range": {field: options}})

    def match_all(self, **options):
        return self.filter({"match_all": options})

    def exists(self, field: str):
        return self.filter({"exists": {"field": field}})

    def exists_not(self, field: str):
        return self.must_not({"exists": {"field": field}})

    # Sorting

    def sort(self, *args):
        """
        Append sort orders, passed to Elasticsearch unmodified.

        Example:
            index.sort("user_id", {"id": "desc"})
        """
        return self.fresh(sort_values=(self.sort_values or ()) + args)

    order = sort

    def resort(self, *args):
        """Replace all existing sort orders."""
        return self.fresh(sort_values=args)

    reorder = resort

    # Pagination

    def offset(self, value) -> "Constraints":
        return self.fresh(offset_value=int(value))

    def limit(self, value) -> "Constraints":
        return self.fresh(limit_value=int(value))

    @property
    def offset_value_with_default(self) -> int:
        return int(self.offset_value or 0)

    @property
    def limit_value_with_default(self) -> int:
        return int(self.limit_value if self.limit_value is not None else 30)

    def paginate(self, page=1, per_page=None):
        """
        Set offset and limit for a page number.

        Args:
            page: Page number, values below 1 are treated as 1
            per_page: Results per page (default: current limit)
        """
        page = max(int(page), 1)
        per_page = int(per_page if per_page is not None else self.limit_value_with_default)

        return self.offset((page - 1) * per_page).limit(per_page)

    def page(self, value):
        return self.paginate(page=value)

    def per(self, value):
        current = self.offset_value_with_default // self.limit_value_with_default + 1
        return self.paginate(page=current, per_page=value)

    # Source, highlighting, custom sections

    def source(self, value):
        """
        Restrict the returned source fields.

        Example:
            index.source(["id", "message"])
            index.source({"excludes": ["description"]})
            index.source(False)
        """
        return self.fresh(source_value=value)

    def highlight(self, fields, **options):
        """
        Highlight the given fields.

        Example:
            index.highlight(["title", "message"])
            index.highlight("title", require_field_match=False)
            index.highlight({"title": {"type": "fvh"}})
        """
        if isinstance(fields, Mapping):
            added = dict(fields)
        elif isinstance(fields, (list, tuple)):
            added = {field: {} for field in fields}
        else:
            added = {fields: {}}

        values = {**(self.highlight_values or {}), **options}
        values["fields"] = {**values.get("fields", {}), **added}

        return self.fresh(highlight_values=values)

    def custom(self, mapping: Optional[Mapping[str, Any]] = None, **sections):
        """
        Add raw sections to the request. Custom sections are applied last and
        override anything compiled under the same key.
        """
        added = {**(mapping or {}), **sections}
        return self.fresh(custom_value={**(self.custom_value or {}), **added})

    # Aggregations

    def aggregate(
        self,
        field_or_mapping,
        block: Optional[Callable[[Any], Any]] = None,
        **options
    ):
        """
        Add an aggregation. A field name becomes a terms aggregation on that
        field; a mapping is used as is. The optional ``block`` receives an
        empty Aggregation and returns it extended with sub-aggregations
        and/or filters.

        Example:
            index.aggregate("user_id", size=100)
            index.aggregate({"revenue": {"sum": {"field": "price"}}})
            index.aggregate("category", lambda agg: agg.aggregate(
                {"price": {"sum": {"field": "price"}}}
            ))
        """
        from .aggregation import Aggregation

        if isinstance(field_or_mapping, Mapping):
            added = {key: dict(value) for key, value in field_or_mapping.items()}
            name = next(iter(field_or_mapping))
        else:
            name = field_or_mapping
            added = {name: {"terms": {"field": name, **options}}}

        if block is not None:
            aggregation = block(Aggregation(target=self.target))
            added[name] = {**added[name], **aggregation.to_dict()}

        return self.fresh(aggregation_values={**(self.aggregation_values or {}), **added})

    # Merging

    def _merge_constraints(self, other: "Constraints", **changes):
        """Merge the fields shared by Criteria and Aggregation."""
        changes.update(
            must_values=self.must_values + other.must_values,
            must_not_values=self.must_not_values + other.must_not_values,
            filter_values=self.filter_values + other.filter_values,
            highlight_values=merge_dicts(self.highlight_values, other.highlight_values),
            custom_value=merge_dicts(self.custom_value, other.custom_value),
            aggregation_values=merge_dicts(self.aggregation_values, other.aggregation_values)
        )

        if other.sort_values is not None:
            changes["sort_values"] = (self.sort_values or ()) + other.sort_values
        for name in ("source_value", "offset_value", "limit_value"):
            if getattr(other, name) is not None:
                changes[name] = getattr(other, name)

        return self.fresh(**changes)

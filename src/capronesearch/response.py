"""
CaproneSearch Response — Search Response Decoder
================================================

Wraps the decoded JSON of a search request and exposes pagination metadata,
hit ids, results, database records and post-processed aggregations.

Example:
    response = ProductIndex().search("harry potter").paginate(page=2).execute()
    response.total_count     # 113
    response.current_page    # 2
    response.next_page       # 3
    response.records         # records in the order Elasticsearch returned them
"""

import math
from functools import cached_property
from typing import Any, Dict, List, Optional

from .result import Result


class Response:
    """
    Decoded search response for the criteria that produced it. Derived values
    are computed at most once per instance.
    """

    def __init__(self, criteria, response: Dict[str, Any]):
        self.criteria = criteria
        self.response = response
        self._aggregations: Dict[str, Any] = {}

    @property
    def raw_response(self) -> Dict[str, Any]:
        return self.response

    # Pagination

    @property
    def total_count(self) -> int:
        """
        Total number of matching documents, for both the scalar and the
        ``{"value": ..., "relation": ...}`` shapes of ``hits.total``.
        """
        total = self.hits.get("total", 0)
        if isinstance(total, dict):
            return total["value"]
        return total

    total_entries = total_count

    @property
    def current_page(self) -> int:
        return 1 + self.criteria.offset_value_with_default // self.criteria.limit_value_with_default

    @property
    def total_pages(self) -> int:
        return max(math.ceil(self.total_count / self.criteria.limit_value_with_default), 1)

    @property
    def previous_page(self) -> Optional[int]:
        if self.current_page <= 1:
            return None
        if self.current_page > self.total_pages:
            return self.total_pages
        return self.current_page - 1

    prev_page = previous_page

    @property
    def next_page(self) -> Optional[int]:
        if self.current_page >= self.total_pages:
            return None
        if self.current_page < 1:
            return 1
        return self.current_page + 1

    @property
    def first_page(self) -> bool:
        return self.current_page == 1

    @property
    def last_page(self) -> bool:
        return self.current_page == self.total_pages

    @property
    def out_of_range(self) -> bool:
        return self.current_page < 1 or self.current_page > self.total_pages

    # Hits

    @property
    def hits(self) -> Dict[str, Any]:
        return self.response.get("hits", {})

    @property
    def took(self) -> Optional[int]:
        return self.response.get("took")

    @property
    def scroll_id(self) -> Optional[str]:
        """The cursor to pass to the next ``scroll(id=...)`` request."""
        return self.response.get("_scroll_id")

    @cached_property
    def ids(self) -> List[Any]:
        return [hit["_id"] for hit in self.hits.get("hits", [])]

    def __len__(self) -> int:
        return len(self.ids)

    @cached_property
    def results(self) -> List[Result]:
        """
        Hits as Result objects: source fields as keys, hit metadata on
        ``result._hit``.
        """
        return [Result.from_hit(hit) for hit in self.hits.get("hits", [])]

    @property
    def scope(self) -> Any:
        """
        The record collection for the current ids as returned by the index's
        ``fetch_records``, in whatever order the record store chose.
        """
        criteria = self.criteria
        options = {}
        if criteria.includes_values:
            options["includes"] = criteria.includes_values
        if criteria.eager_load_values:
            options["eager_load"] = criteria.eager_load_values
        if criteria.preload_values:
            options["preload"] = criteria.preload_values

        return criteria.target.fetch_records(self.ids, **options)

    @cached_property
    def records(self) -> List[Any]:
        """
        The database records for the current ids, sorted in the order
        Elasticsearch returned the hits.
        """
        if not self.ids:
            return []

        target = self.criteria.target
        positions = {str(id): position for position, id in enumerate(self.ids)}

        return sorted(
            self.scope,
            key=lambda record: positions.get(str(target.record_id(record)), len(positions))
        )

    # Aggregations and suggestions

    def aggregations(self, name: Optional[str] = None) -> Any:
        """
        All raw aggregations, or a single post-processed one.

        Args:
            name: Aggregation name. Bucket lists are turned into a mapping of
                bucket key to bucket, keyed buckets are returned as they are,
                metric aggregations are returned unchanged.

        Example:
            query.aggregations()
            # {"user_id": {"buckets": [{"key": 4922, "doc_count": 1129}, ...]}}

            query.aggregations("user_id")[4922].doc_count
            # 1129
        """
        raw = self.response.get("aggregations") or {}

        if name is None:
            return raw

        key = str(name)
        if key not in self._aggregations:
            aggregation = raw.get(key)

            if aggregation is None:
                normalized = Result()
            elif isinstance(aggregation.get("buckets"), list):
                normalized = Result({bucket["key"]: bucket for bucket in aggregation["buckets"]})
            elif isinstance(aggregation.get("buckets"), dict):
                normalized = Result(aggregation["buckets"])
            else:
                normalized = Result(aggregation)

            self._aggregations[key] = normalized

        return self._aggregations[key]

    def suggestions(self, name: Optional[str] = None) -> Any:
        """
        All suggestions, or the options of the first entry of a named one.

        Example:
            query = index.suggest("suggestion", text="helo", term={"field": "message"})
            query.suggestions("suggestion")[0]["text"]  # "hello"
        """
        suggest = self.response.get("suggest") or {}
        if name is None:
            return suggest
        return suggest[str(name)][0]["options"]

"""
CaproneSearch — Chainable Query Builder for Elasticsearch
=========================================================

Build Elasticsearch search requests by chaining filters, queries,
aggregations, sorting and pagination; decode responses into records,
results and aggregation buckets; write documents in size-bounded bulk
batches.

Key Features:
- Immutable criteria, safe to share and reuse as query prefixes
- Post filters, nested aggregations with their own filters
- Named scopes declared on the index
- Pagination metadata and scroll based batch iteration
- Bulk batching with item count and payload size limits
- Failsafe queries that degrade to empty results

Usage:
    from capronesearch import Index, Range, scope

    class ProductIndex(Index):
        index_name = "products"

        def serialize(self, product):
            return {"id": product.id, "price": product.price, "category": product.category}

        def fetch_records(self, ids, **options):
            return Product.objects.filter(id__in=ids)

        @scope
        def cheap(criteria):
            return criteria.where(price=Range(0, 10))

    products = ProductIndex()
    products.import_records(Product.objects.all())

    query = products.cheap().search("book").sort({"price": "asc"}).paginate(page=2)
    query.records
    query.total_pages

Reference:
    - Elasticsearch: https://www.elastic.co/elasticsearch/

License: MIT
"""

__version__ = "0.1.0"

from .aggregation import Aggregation
from .bulk import Bulk
from .config import Settings
from .connection import Connection
from .constraints import Range
from .criteria import Criteria
from .exceptions import (
    BulkItemError,
    CaproneSearchError,
    ConnectionError,
    NotSupportedError,
    ResponseError,
    TimeoutError,
    TransportError,
)
from .index import Index, Scope, scope
from .response import Response
from .result import Result

__all__ = [
    "Aggregation",
    "Bulk",
    "BulkItemError",
    "CaproneSearchError",
    "Connection",
    "ConnectionError",
    "Criteria",
    "Index",
    "NotSupportedError",
    "Range",
    "Response",
    "ResponseError",
    "Result",
    "Scope",
    "Settings",
    "TimeoutError",
    "TransportError",
    "scope",
]

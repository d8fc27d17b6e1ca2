"""
CaproneSearch Exceptions
========================

Error hierarchy raised by the query builder, the connection wrapper and the
bulk batcher.

    CaproneSearchError
    ├── TransportError        (caught by failsafe criterias)
    │   ├── ConnectionError
    │   ├── TimeoutError
    │   └── ResponseError
    ├── BulkItemError
    └── NotSupportedError
"""

from typing import Any, Optional


class CaproneSearchError(Exception):
    """Base class for all errors raised by capronesearch."""


class TransportError(CaproneSearchError):
    """A request did not produce a usable response."""


class ConnectionError(TransportError):
    """Elasticsearch could not be reached."""


class TimeoutError(TransportError):
    """A request exceeded the configured deadline."""


class ResponseError(TransportError):
    """Elasticsearch answered with a non-2xx status."""

    def __init__(self, status_code: Optional[int], body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Elasticsearch responded with status {status_code}: {body!r}")


class BulkItemError(CaproneSearchError):
    """A single item of a bulk request failed with a status not being ignored."""

    def __init__(self, item: dict, action: Optional[str] = None):
        self.item = item
        self.action = action
        self.status_code = item.get("status")
        super().__init__(f"Bulk {action or 'item'} failed: {item!r}")


class NotSupportedError(CaproneSearchError):
    """Illegal field combination or an operation the engine version lacks."""

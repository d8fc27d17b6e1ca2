"""
CaproneSearch Bulk — Batched Write Operations
=============================================

Collects index/create/update/delete operations and sends them to the
Elasticsearch bulk API in batches bounded by item count and payload size.

    with Bulk(connection, "products", ignore_errors=[409]) as bulk:
        bulk.create(1, {"title": "Harry Potter"})
        bulk.index(2, {"title": "Hobbit"}, {"routing": "books"})
        bulk.update(3, {"doc": {"price": 10}})
        bulk.delete(4)

A batch is sent:
    - before an operation is added, if it would push the payload to or past
      ``bulk_max_mb``
    - after an operation is added, if ``bulk_limit`` items or ``bulk_max_mb``
      are reached
    - when the ``with`` block exits cleanly and operations are still buffered
"""

from typing import Any, Iterable, List, Optional

import structlog

from .config import Settings, resolve
from .exceptions import BulkItemError
from .serialization import dumps

logger = structlog.get_logger(__name__)


class Bulk:
    """
    Buffer for bulk operations against a single index.

    Not thread-safe; use one Bulk per writer.
    """

    def __init__(
        self,
        connection,
        index: str,
        bulk_limit: Optional[int] = None,
        bulk_max_mb: Optional[int] = None,
        ignore_errors: Optional[Iterable[int]] = None,
        raise_on_error: bool = True,
        settings: Optional[Settings] = None
    ):
        """
        Initialize the buffer.

        Args:
            connection: Connection to send batches through
            index: Target index name, prefix included
            bulk_limit: Max operations per batch (default: Settings.bulk_limit)
            bulk_max_mb: Max payload megabytes per batch (default: Settings.bulk_max_mb)
            ignore_errors: Item status codes that don't raise, e.g. [409]
            raise_on_error: Set to False to never inspect item results. Request
                errors like connection failures still raise.
            settings: Settings to take the defaults from
        """
        self.connection = connection
        self.index_name = index
        self.ignore_errors = frozenset(ignore_errors or ())
        self.raise_on_error = raise_on_error

        if settings is None:
            settings = getattr(connection, "settings", None)

        self.bulk_limit = resolve(bulk_limit, settings, "bulk_limit")
        self.bulk_max_mb = resolve(bulk_max_mb, settings, "bulk_max_mb")
        self.bulk_max_bytes = self.bulk_max_mb * 1024 * 1024

        self.flushes = 0
        self._reset()

    def __enter__(self) -> "Bulk":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None and self._num > 0:
            self.flush()

    @property
    def pending(self) -> int:
        return self._num

    @property
    def pending_bytes(self) -> int:
        return self._bytes

    def index(self, id: Any, document: Any, options: Optional[dict] = None):
        self._perform("index", id, document, options)

    def create(self, id: Any, document: Any, options: Optional[dict] = None):
        """Like ``index``, but the item fails with 409 if the document exists."""
        self._perform("create", id, document, options)

    def update(self, id: Any, payload: Any, options: Optional[dict] = None):
        """
        Add an update operation. ``payload`` is the update body, e.g.
        ``{"doc": {...}}`` or ``{"script": {...}}``.
        """
        self._perform("update", id, payload, options)

    def delete(self, id: Any, options: Optional[dict] = None):
        self._perform("delete", id, None, options)

    def flush(self) -> Optional[dict]:
        """
        Send all buffered operations as one bulk request. The buffer is empty
        afterwards, whether or not the request or any of its items failed.

        Returns:
            The decoded bulk response, None if nothing was buffered

        Raises:
            BulkItemError: For the first failed item whose status is not ignored
        """
        if self._num == 0:
            return None

        lines, num, size = self._lines, self._num, self._bytes

        try:
            logger.info("Sending bulk request", index=self.index_name, items=num, bytes=size)
            response = self.connection.bulk(self.index_name, lines)
            self.flushes += 1
        finally:
            self._reset()

        if self.raise_on_error and response.get("errors"):
            self._check_items(response.get("items", []))

        return response

    def _check_items(self, items: List[dict]):
        for item in items:
            for action, element in item.items():
                status = element.get("status")

                if status is not None and 200 <= status <= 299:
                    continue
                if status in self.ignore_errors:
                    continue

                raise BulkItemError(element, action)

    def _reset(self):
        self._lines: List[str] = []
        self._num = 0
        self._bytes = 0

    def _perform(self, action: str, id: Any, payload: Any, options: Optional[dict]):
        entry = [dumps({action: {**(options or {}), "_id": id}})]
        if payload is not None:
            entry.append(payload if isinstance(payload, str) else dumps(payload))

        size = sum(len(line.encode("utf-8")) + 1 for line in entry)

        if self._num > 0 and self._bytes + size >= self.bulk_max_bytes:
            self.flush()

        self._lines.extend(entry)
        self._num += 1
        self._bytes += size

        if self._num >= self.bulk_limit or self._bytes >= self.bulk_max_bytes:
            self.flush()

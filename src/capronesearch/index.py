"""
CaproneSearch Index — Index Descriptor
======================================

Subclass ``Index`` once per Elasticsearch index. The subclass names the
index, describes its settings and mapping, tells capronesearch how to turn
records into documents and back, and declares named scopes. Instances are
the entry point for queries and writes:

    class CommentIndex(Index):
        index_name = "comments"
        mapping = {"properties": {"user_id": {"type": "long"}}}

        def serialize(self, comment):
            return {"id": comment.id, "user_id": comment.user_id, "message": comment.message}

        def fetch_records(self, ids, **options):
            return Comment.objects.filter(id__in=ids)

        @scope
        def by_user(criteria, user_id):
            return criteria.where(user_id=user_id)

    comments = CommentIndex()
    comments.create_index(include_mapping=True)
    comments.import_records(Comment.objects.all())
    comments.by_user(1).search("hello").records
"""

import threading
from contextlib import contextmanager
from functools import partial, update_wrapper
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from .bulk import Bulk
from .config import Settings
from .connection import Connection
from .constraints import defined_on_class
from .criteria import Criteria

# Criteria methods and properties reachable directly on an index
DELEGATED = frozenset((
    "search", "where", "where_not", "filter", "must", "must_not", "should",
    "range", "match_all", "exists", "exists_not",
    "post_search", "post_where", "post_where_not", "post_filter", "post_must",
    "post_must_not", "post_should", "post_range", "post_exists", "post_exists_not",
    "sort", "order", "resort", "reorder", "offset", "limit", "paginate", "page", "per",
    "source", "highlight", "suggest", "custom", "aggregate", "scroll",
    "profile", "explain", "failsafe", "timeout", "terminate_after", "preference",
    "search_type", "routing", "track_total_hits", "http_timeout",
    "includes", "eager_load", "preload",
    "find_in_batches", "find_results_in_batches", "find_each", "find_each_result",
    "execute", "total_count", "total_entries", "records", "results", "ids",
))


class Scope:
    """
    A named query fragment. Called with a criteria (plus any arguments) and
    returns a derived criteria. Accessed on an index instance it is bound to
    a fresh criteria of that index.
    """

    def __init__(self, fn: Callable[..., Any], name: Optional[str] = None):
        update_wrapper(self, fn)
        self.fn = fn
        self.name = name or fn.__name__

    def __call__(self, criteria, *args, **kwargs):
        return self.fn(criteria, *args, **kwargs)

    def __get__(self, instance, owner):
        if instance is None:
            return self
        return partial(self.fn, instance.criteria())


def scope(fn: Callable[..., Any]) -> Scope:
    """
    Declare a named scope within an Index subclass.

    Example:
        class CommentIndex(Index):
            @scope
            def approved(criteria):
                return criteria.where(state="approved")

        CommentIndex().approved().where(user_id=1)
        CommentIndex().where(user_id=1).approved()
    """
    return Scope(fn)


class Index:
    """Base class for index descriptors."""

    index_name: Optional[str] = None
    index_settings: Dict[str, Any] = {}
    mapping: Dict[str, Any] = {}

    _scopes: Dict[str, Scope] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        declared = {value.name: value for value in vars(cls).values() if isinstance(value, Scope)}
        cls._scopes = {**cls._scopes, **declared}

    def __init__(
        self,
        connection: Optional[Connection] = None,
        settings: Optional[Settings] = None,
        index_name: Optional[str] = None
    ):
        """
        Initialize the index.

        Args:
            connection: Connection to use (default: created lazily from settings)
            settings: Settings (default: the connection's, else read from the environment)
            index_name: Override the class level index_name
        """
        if settings is None:
            settings = connection.settings if connection is not None else Settings()

        self.settings = settings
        self._connection = connection
        self._connection_lock = threading.Lock()

        if index_name is not None:
            self.index_name = index_name

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.index_name!r}>"

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            with self._connection_lock:
                if self._connection is None:
                    self._connection = Connection(settings=self.settings)
        return self._connection

    @property
    def index_name_with_prefix(self) -> str:
        if not self.index_name:
            raise NotImplementedError(f"{type(self).__name__} must define index_name")
        return f"{self.settings.index_prefix}{self.index_name}"

    def with_settings(self, index_name: Optional[str] = None, connection: Optional[Connection] = None) -> "Index":
        """
        A copy of this index with a different index name and/or connection,
        e.g. to fill a new index before switching an alias over.

        Example:
            new_index = comments.with_settings(index_name="comments_v2")
            new_index.create_index(include_mapping=True)
            new_index.import_records(Comment.objects.all())
        """
        return type(self)(
            connection=connection if connection is not None else self._connection,
            settings=self.settings,
            index_name=index_name if index_name is not None else self.index_name
        )

    # Hooks

    def serialize(self, record: Any) -> Dict[str, Any]:
        """Override to return the document for ``record``."""
        raise NotImplementedError(f"{type(self).__name__} must implement serialize(record)")

    def record_id(self, record: Any) -> Any:
        """Override if records don't expose their primary key as ``id``."""
        return record.id

    def fetch_records(self, ids: List[Any], **options) -> Iterable[Any]:
        """
        Override to load the records for ``ids`` from the primary datastore.
        Order doesn't matter; responses sort records by hit order. ``options``
        carries any includes, eager_load and preload values of the criteria.
        """
        raise NotImplementedError(f"{type(self).__name__} must implement fetch_records(ids)")

    def index_options(self, record: Any) -> Dict[str, Any]:
        """
        Override to pass bulk options like routing or versioning per record.

        Example:
            def index_options(self, comment):
                return {"routing": comment.user_id, "version": comment.version,
                        "version_type": "external_gte"}
        """
        return {}

    def index_scope(self, records: Any) -> Any:
        """Override to e.g. eager load associations of records to be indexed."""
        return records

    # Querying

    def criteria(self) -> Criteria:
        return Criteria(target=self)

    @classmethod
    def add_scope(cls, name: str, fn: Callable[..., Any]):
        """
        Register a named scope after class creation.

        Example:
            CommentIndex.add_scope("recent", lambda criteria, days=7: criteria.range(
                "created_at", gt=f"now-{days}d"
            ))
        """
        added = Scope(fn, name=name)
        cls._scopes = {**cls._scopes, name: added}
        setattr(cls, name, added)

    def resolve_scope(self, name: str) -> Optional[Scope]:
        return self._scopes.get(name)

    def __getattr__(self, name: str):
        if defined_on_class(self, name):
            return object.__getattribute__(self, name)
        if name in DELEGATED:
            return getattr(self.criteria(), name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    # Index management

    def create_index(self, include_mapping: bool = False) -> dict:
        body: Dict[str, Any] = {}
        if self.index_settings:
            body["settings"] = self.index_settings
        if include_mapping:
            body["mappings"] = self.mapping

        return self.connection.create_index(self.index_name_with_prefix, body)

    def delete_index(self) -> dict:
        return self.connection.delete_index(self.index_name_with_prefix)

    def index_exists(self) -> bool:
        return self.connection.index_exists(self.index_name_with_prefix)

    def refresh(self) -> dict:
        return self.connection.refresh(self.index_name_with_prefix)

    def get_index_settings(self) -> dict:
        return self.connection.get_index_settings(self.index_name_with_prefix)

    def update_index_settings(self) -> dict:
        """Send ``index_settings`` to an existing index."""
        return self.connection.update_index_settings(self.index_name_with_prefix, self.index_settings)

    def get_mapping(self) -> dict:
        return self.connection.get_mapping(self.index_name_with_prefix)

    def update_mapping(self) -> dict:
        """Send ``mapping`` to an existing index."""
        return self.connection.update_mapping(self.index_name_with_prefix, self.mapping)

    def get(self, id: Any, **params) -> dict:
        return self.connection.get(self.index_name_with_prefix, id, **params)

    # Writing

    @contextmanager
    def bulk(self, **options) -> Iterator[Bulk]:
        """
        Open a bulk buffer for this index. Refreshes the index afterwards if
        ``auto_refresh`` is enabled.

        Args:
            **options: bulk_limit, bulk_max_mb, ignore_errors, raise_on_error

        Example:
            with comments.bulk(ignore_errors=[409]) as bulk:
                bulk.create(comment.id, comments.serialize(comment),
                            {"version": comment.version, "version_type": "external_gte"})
                bulk.delete(other.id, {"routing": other.user_id})
        """
        with Bulk(self.connection, self.index_name_with_prefix, settings=self.settings, **options) as indexer:
            yield indexer

        if self.settings.auto_refresh:
            self.refresh()

    def index(self, records: Any, options: Optional[dict] = None, additional_index_options: Optional[dict] = None):
        """
        Index a single record, a list of records or any iterable of records.

        Args:
            records: What to index
            options: Bulk options, e.g. {"ignore_errors": [409]}
            additional_index_options: Merged into every record's index options

        Returns:
            ``records``, unchanged
        """
        with self.bulk(**(options or {})) as indexer:
            for record in self._each_record(records, index_scope=True):
                indexer.index(self.record_id(record), self.serialize(record),
                              self._options_for(record, additional_index_options))

        return records

    import_records = index

    def create(self, records: Any, options: Optional[dict] = None, additional_index_options: Optional[dict] = None):
        """Like ``index``, but items fail with 409 for documents that already exist."""
        with self.bulk(**(options or {})) as indexer:
            for record in self._each_record(records, index_scope=True):
                indexer.create(self.record_id(record), self.serialize(record),
                               self._options_for(record, additional_index_options))

        return records

    def update(self, records: Any, options: Optional[dict] = None, additional_index_options: Optional[dict] = None):
        """Like ``index``, but items fail with 404 for documents that don't exist."""
        with self.bulk(**(options or {})) as indexer:
            for record in self._each_record(records, index_scope=True):
                indexer.update(self.record_id(record), {"doc": self.serialize(record)},
                               self._options_for(record, additional_index_options))

        return records

    def delete(self, records: Any, options: Optional[dict] = None, additional_index_options: Optional[dict] = None):
        with self.bulk(**(options or {})) as indexer:
            for record in self._each_record(records):
                indexer.delete(self.record_id(record), self._options_for(record, additional_index_options))

        return records

    def _options_for(self, record: Any, additional: Optional[dict]) -> dict:
        return {**self.index_options(record), **(additional or {})}

    def _each_record(self, records: Any, index_scope: bool = False) -> Iterator[Any]:
        if index_scope:
            records = self.index_scope(records)

        if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
            yield records
        else:
            yield from records

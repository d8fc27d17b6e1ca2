"""
CaproneSearch Connection — Elasticsearch Transport Wrapper
==========================================================

Thin layer over the official ``elasticsearch`` client. Every call made by the
query builder, the response decoder and the bulk batcher goes through here,
so this is the one place where client exceptions are translated into the
capronesearch error hierarchy:

    elasticsearch.ConnectionTimeout  →  capronesearch.TimeoutError
    elasticsearch.ConnectionError    →  capronesearch.ConnectionError
    elasticsearch.ApiError           →  capronesearch.ResponseError

Cluster and index administration helpers live here as well, useful for
production deployments.
"""

import functools
import threading
from typing import Any, Dict, List, Optional, Sequence

import elasticsearch
import structlog
from elasticsearch import Elasticsearch

from .config import Settings
from .exceptions import ConnectionError, ResponseError, TimeoutError

logger = structlog.get_logger(__name__)


def translate_errors(fn):
    """Re-raise client exceptions as capronesearch transport errors."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except elasticsearch.ConnectionTimeout as e:
            raise TimeoutError(str(e)) from e
        except elasticsearch.ConnectionError as e:
            raise ConnectionError(str(e)) from e
        except elasticsearch.ApiError as e:
            raise ResponseError(e.status_code, e.body) from e

    return wrapper


def _body(response: Any) -> Any:
    """Unwrap an ``ObjectApiResponse`` into its decoded body."""
    return getattr(response, "body", response)


class Connection:
    """
    Elasticsearch connection shared by all criterias of an index.

    Example:
        connection = Connection(hosts=["http://localhost:9200"])
        print(connection.health())
        print(connection.version)
    """

    def __init__(
        self,
        hosts: Optional[List[str]] = None,
        api_key: Optional[str] = None,
        basic_auth: Optional[tuple] = None,
        verify_certs: Optional[bool] = None,
        settings: Optional[Settings] = None,
        client: Optional[Elasticsearch] = None
    ):
        """
        Initialize the connection.

        Args:
            hosts: List of ES node URLs (default: Settings.hosts)
            api_key: API key for authentication
            basic_auth: Tuple of (username, password)
            verify_certs: Verify SSL certificates
            settings: Settings to fall back to for anything not passed
            client: Pre-built client, skips client construction entirely
        """
        self.settings = settings if settings is not None else Settings()
        self._version: Optional[str] = None
        self._version_lock = threading.Lock()

        if client is not None:
            self._client = client
            return

        conn_kwargs = self.settings.client_kwargs()

        if hosts:
            conn_kwargs["hosts"] = hosts
        if verify_certs is not None:
            conn_kwargs["verify_certs"] = verify_certs
        if api_key:
            conn_kwargs.pop("basic_auth", None)
            conn_kwargs["api_key"] = api_key
        elif basic_auth:
            conn_kwargs.pop("api_key", None)
            conn_kwargs["basic_auth"] = basic_auth

        self._client = Elasticsearch(**conn_kwargs)

    @property
    def client(self) -> Elasticsearch:
        return self._client

    @property
    def version(self) -> str:
        """
        The Elasticsearch server version, fetched once per connection.

        Returns:
            Version string, e.g. "8.11.1"
        """
        if self._version is None:
            with self._version_lock:
                if self._version is None:
                    self._version = self.info()["version"]["number"]
        return self._version

    @property
    def major_version(self) -> int:
        return int(self.version.split(".")[0])

    # Search

    @translate_errors
    def search(
        self,
        index: str,
        body: dict,
        request_timeout: Optional[float] = None,
        **params
    ) -> dict:
        """
        Run a search request.

        Args:
            index: Index name
            body: Compiled request document
            request_timeout: Per-request HTTP timeout in seconds
            **params: URL parameters (scroll, routing, preference, search_type)

        Returns:
            Decoded response body
        """
        params = {key: value for key, value in params.items() if value is not None}
        logger.debug("Searching", index=index, params=params)

        client = self._client_for(request_timeout)
        return _body(client.search(index=index, body=body, **params))

    @translate_errors
    def scroll(self, scroll_id: str, scroll: str, request_timeout: Optional[float] = None) -> dict:
        """Fetch the next page of an open scroll cursor."""
        logger.debug("Scrolling", scroll=scroll)

        client = self._client_for(request_timeout)
        return _body(client.scroll(scroll_id=scroll_id, scroll=scroll))

    @translate_errors
    def delete_by_query(self, index: str, body: dict, **params) -> dict:
        """Delete every document of ``index`` matching ``body``."""
        logger.debug("Deleting by query", index=index, params=params)
        return _body(self._client.delete_by_query(index=index, body=body, **params))

    @translate_errors
    def msearch(self, criterias: Sequence[Any]) -> list:
        """
        Execute several criterias within a single multi-search request.

        Args:
            criterias: Criterias to execute, possibly targeting different indices

        Returns:
            List of Response objects, in the order of ``criterias``
        """
        from .response import Response

        searches: List[dict] = []
        for criteria in criterias:
            searches.append({"index": criteria.target.index_name_with_prefix})
            searches.append(criteria.request)

        raw = _body(self._client.msearch(searches=searches))

        return [
            Response(criteria, response)
            for criteria, response in zip(criterias, raw["responses"])
        ]

    @translate_errors
    def get(self, index: str, id: Any, **params) -> dict:
        """Fetch a single document by id."""
        return _body(self._client.get(index=index, id=id, **params))

    # Writes

    @translate_errors
    def bulk(self, index: str, operations: Sequence[str], **params) -> dict:
        """
        Send pre-serialized NDJSON entries to the bulk API.

        Args:
            index: Default index for entries without ``_index``
            operations: Serialized action/payload entries
            **params: URL parameters, e.g. refresh

        Returns:
            Decoded bulk response including per-item results
        """
        return _body(self._client.bulk(index=index, operations=list(operations), **params))

    # Cluster

    @translate_errors
    def health(self) -> dict:
        """
        Get cluster health status.

        Returns:
            Dict with cluster health information
        """
        return _body(self._client.cluster.health())

    @translate_errors
    def info(self) -> dict:
        """
        Get cluster information.

        Returns:
            Dict with cluster info (version, name, etc.)
        """
        return _body(self._client.info())

    @translate_errors
    def indices(self) -> List[dict]:
        """
        List all indices with stats.

        Returns:
            List of index info dicts
        """
        cat_indices = _body(self._client.cat.indices(format="json"))
        return [
            {
                "name": idx["index"],
                "health": idx.get("health", "unknown"),
                "status": idx.get("status", "unknown"),
                "docs_count": int(idx.get("docs.count", 0) or 0),
                "size": idx.get("store.size", "0b")
            }
            for idx in cat_indices
            if not idx["index"].startswith(".")  # Skip system indices
        ]

    # Indices

    @translate_errors
    def create_index(self, name: str, body: Optional[dict] = None) -> dict:
        """
        Create a new index.

        Args:
            name: Index name
            body: Settings and mappings

        Returns:
            Creation response
        """
        return _body(self._client.indices.create(index=name, body=body or {}))

    @translate_errors
    def delete_index(self, name: str) -> dict:
        return _body(self._client.indices.delete(index=name))

    @translate_errors
    def index_exists(self, name: str) -> bool:
        return bool(self._client.indices.exists(index=name))

    @translate_errors
    def refresh(self, index: str) -> dict:
        """Force refresh an index (makes recent changes searchable)."""
        return _body(self._client.indices.refresh(index=index))

    @translate_errors
    def get_index_settings(self, name: str) -> dict:
        return _body(self._client.indices.get_settings(index=name))

    @translate_errors
    def update_index_settings(self, name: str, settings: dict) -> dict:
        return _body(self._client.indices.put_settings(index=name, settings=settings))

    @translate_errors
    def get_mapping(self, name: str) -> dict:
        return _body(self._client.indices.get_mapping(index=name))

    @translate_errors
    def update_mapping(self, name: str, mapping: dict) -> dict:
        return _body(self._client.indices.put_mapping(index=name, body=mapping))

    # Aliases

    @translate_errors
    def get_aliases(self, index_name: str = "*", alias_name: str = "*") -> dict:
        return _body(self._client.indices.get_alias(index=index_name, name=alias_name))

    @translate_errors
    def update_aliases(self, actions: List[dict]) -> dict:
        """
        Add and remove index aliases atomically.

        Args:
            actions: Alias actions, e.g. [{"add": {"index": "a", "alias": "b"}}]
        """
        return _body(self._client.indices.update_aliases(actions=actions))

    def alias_exists(self, alias_name: str) -> bool:
        try:
            self.get_aliases(alias_name=alias_name)
        except ResponseError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def close(self):
        """Close the Elasticsearch client connection."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _client_for(self, request_timeout: Optional[float]) -> Elasticsearch:
        if request_timeout is None:
            return self._client
        return self._client.options(request_timeout=request_timeout)

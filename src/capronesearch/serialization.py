"""JSON encoding shared by bulk payloads and request logging."""

from typing import Any

from elasticsearch.serializer import JsonSerializer

_serializer = JsonSerializer()


def dumps(obj: Any) -> str:
    """
    Serialize ``obj`` the same way the Elasticsearch client does, so dates,
    decimals and UUIDs inside documents are encoded consistently.
    """
    data = _serializer.dumps(obj)
    if isinstance(data, bytes):
        return data.decode("utf-8")
    return data

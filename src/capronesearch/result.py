"""Attribute-access wrapper for hits and aggregation buckets."""

from typing import Any, Mapping, Optional


def _wrap(value: Any) -> Any:
    if isinstance(value, Result):
        return value
    if isinstance(value, Mapping):
        return Result(value)
    if isinstance(value, list):
        return [_wrap(item) for item in value]
    return value


class Result(dict):
    """
    A dict whose keys are also readable as attributes, recursively.

    Hits carry their metadata (``_id``, ``_score``, ``highlight``,
    ``_explanation``, ...) on ``_hit`` instead of mixing it into the source
    fields.

    Example:
        result = query.results[0]
        result.title              # source field
        result._hit._score         # hit metadata
        result._hit.highlight.title
    """

    def __init__(self, *args, hit: Optional[Mapping[str, Any]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._hit = Result(hit) if hit is not None else None

    @classmethod
    def from_hit(cls, hit: Mapping[str, Any]) -> "Result":
        """
        Build a result from a raw hit, e.g. of a top_hits aggregation.
        """
        return cls(
            hit.get("_source") or {},
            hit={key: value for key, value in hit.items() if key != "_source"}
        )

    def __getattr__(self, name: str) -> Any:
        try:
            return _wrap(self[name])
        except KeyError:
            raise AttributeError(name) from None

    def __getitem__(self, key: Any) -> Any:
        return _wrap(super().__getitem__(key))

    def get(self, key: Any, default: Any = None) -> Any:
        return _wrap(super().get(key, default))

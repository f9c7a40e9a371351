"""
Middlestack — Request Value
============================

What:  An immutable mapping describing one incoming request.
How:   Every stage derives a new Request with ``assoc``/``assoc_in``/``update``;
       keys it does not touch are carried over untouched.

Reserved keys:
    method, path, query_string, headers (lower-cased), cookies, body
    params, body_params, path_params, query_params, form_params, multipart_params
    parameters            {"body": ..., "path": ..., "query": ..., "form": ..., "multipart": ...}
    all_params            filled in by the parameter unifier
    route                 data of the matched route
    request_id            correlation id assigned by the host
"""

from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence

_MISSING = object()


class Request(Mapping[str, Any]):
    """Immutable request mapping. Mutation methods return a new Request."""

    __slots__ = ("_data",)

    def __init__(self, data: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        merged: Dict[str, Any] = dict(data or {})
        merged.update(kwargs)
        self._data = merged

    # ── Mapping protocol ──────────────────────────────────────────────────

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Request({self._data!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Request):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    # ── Derivation ────────────────────────────────────────────────────────

    def assoc(self, key: str, value: Any) -> "Request":
        """Return a copy with ``key`` set to ``value``."""
        data = dict(self._data)
        data[key] = value
        return Request(data)

    def update(self, **kwargs: Any) -> "Request":
        data = dict(self._data)
        data.update(kwargs)
        return Request(data)

    def dissoc(self, key: str) -> "Request":
        data = dict(self._data)
        data.pop(key, None)
        return Request(data)

    def get_in(self, path: Sequence[str], default: Any = None) -> Any:
        """
        Look up a nested value.

        Any missing or non-mapping step along ``path`` yields ``default``.
        """
        current: Any = self._data
        for key in path:
            if not isinstance(current, Mapping):
                return default
            current = current.get(key, _MISSING)
            if current is _MISSING:
                return default
        return current

    def assoc_in(self, path: Sequence[str], value: Any) -> "Request":
        """Return a copy with the nested ``path`` set, copying each mapping on the way down."""
        if not path:
            raise ValueError("assoc_in requires a non-empty path")
        head, rest = path[0], path[1:]
        if not rest:
            return self.assoc(head, value)
        return self.assoc(head, _assoc_in(self._data.get(head), rest, value))

    # ── Convenience accessors ─────────────────────────────────────────────

    @property
    def headers(self) -> Mapping[str, str]:
        return MappingProxyType(dict(self._data.get("headers") or {}))

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return (self._data.get("headers") or {}).get(name.lower(), default)

    @property
    def method(self) -> str:
        return str(self._data.get("method", "GET")).upper()

    @property
    def path(self) -> str:
        return str(self._data.get("path", "/"))


def _assoc_in(node: Any, path: Sequence[str], value: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = dict(node) if isinstance(node, Mapping) else {}
    head, rest = path[0], path[1:]
    data[head] = value if not rest else _assoc_in(data.get(head), rest, value)
    return data

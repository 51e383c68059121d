"""
Dotted-path value resolution for loosely-typed external payloads.

External systems return either flat scalars or "reference" objects in
place of scalars (ServiceNow returns ``{"display_value": ..., "link": ...}``
for relation fields). Every value found at the end of a path is
classified into a small tagged union and then unwrapped to a scalar:

    Scalar(value)                 -> value
    Reference(display, name, value) -> first non-empty of the three,
                                     else compact JSON of the raw object
    Unknown(raw)                  -> compact JSON of raw
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

_MISSING = object()

_REFERENCE_KEYS = ("display_value", "name", "value")


@dataclass(frozen=True)
class Scalar:
    value: Any


@dataclass(frozen=True)
class Reference:
    display: Any
    name: Any
    value: Any
    raw: Mapping[str, Any]


@dataclass(frozen=True)
class Unknown:
    raw: Any


Resolved = Union[Scalar, Reference, Unknown]


def _compact(raw: Any) -> str:
    return json.dumps(raw, separators=(",", ":"), default=str)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def classify(value: Any) -> Resolved:
    """Tag a raw value as Scalar, Reference or Unknown."""
    if isinstance(value, Mapping):
        if any(key in value for key in _REFERENCE_KEYS):
            return Reference(
                display=value.get("display_value"),
                name=value.get("name"),
                value=value.get("value"),
                raw=value,
            )
        return Unknown(value)
    if isinstance(value, (list, tuple)):
        return Unknown(value)
    return Scalar(value)


def unwrap(resolved: Resolved) -> Any:
    """Reduce a tagged value to a display scalar."""
    if isinstance(resolved, Scalar):
        return resolved.value
    if isinstance(resolved, Reference):
        for candidate in (resolved.display, resolved.name, resolved.value):
            if not _is_empty(candidate):
                return candidate
        return _compact(dict(resolved.raw))
    return _compact(resolved.raw)


def _step(node: Any, segment: str) -> Any:
    if isinstance(node, Mapping):
        return node.get(segment, _MISSING)
    if isinstance(node, Sequence) and not isinstance(node, (str, bytes)):
        try:
            return node[int(segment)]
        except (ValueError, IndexError):
            return _MISSING
    return _MISSING


def resolve(record: Any, path: Optional[str]) -> Any:
    """
    Resolve ``path`` (e.g. ``"cmdb_ci.name"``) inside ``record``.

    Returns None when any segment is absent; never raises. Integer
    segments index into lists (``"components.0.status"``). A literal
    dotted key (table APIs return dot-walked fields flattened, e.g.
    ``{"cmdb_ci.name": ...}``) takes precedence over walking.
    """
    if record is None or not path:
        return None

    if "." in path and isinstance(record, Mapping) and path in record:
        node = record[path]
        return None if node is None else unwrap(classify(node))

    node = record
    for segment in path.split("."):
        node = _step(node, segment)
        if node is _MISSING or node is None:
            return None

    return unwrap(classify(node))

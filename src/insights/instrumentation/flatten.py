"""Flattening of nested JSON documents into single-level event fields."""
from __future__ import annotations

from typing import Any, Dict, Iterable, Literal, Mapping, Tuple

FlattenStyle = Literal["dot", "rails"]


def flatten(nested: Mapping[str, Any], prefix: str = "", style: FlattenStyle = "dot") -> Dict[str, Any]:
    """Flatten nested mappings and lists into compound keys.

    ``{"a": {"b": [1, {"c": 2}]}}`` becomes ``{"a.b.0": 1, "a.b.1.c": 2}`` in dot
    style and ``{"a[b][0]": 1, "a[b][1][c]": 2}`` in rails style. ``prefix`` is
    prepended to top-level keys. Empty containers are kept as values.
    """

    if style not in ("dot", "rails"):
        raise ValueError(f"unknown flatten style {style!r}")
    flat: Dict[str, Any] = {}
    _flatten_into(flat, nested, prefix, style, top=True)
    return flat


def _children(value: Any) -> Iterable[Tuple[str, Any]]:
    if isinstance(value, Mapping):
        return ((str(key), item) for key, item in value.items())
    return ((str(index), item) for index, item in enumerate(value))


def _join(parent: str, key: str, style: FlattenStyle, top: bool) -> str:
    if top:
        return parent + key
    if style == "rails":
        return f"{parent}[{key}]"
    return f"{parent}.{key}"


def _flatten_into(flat: Dict[str, Any], value: Any, parent: str, style: FlattenStyle, *, top: bool) -> None:
    for key, item in _children(value):
        name = _join(parent, key, style, top)
        if isinstance(item, (Mapping, list)) and item:
            _flatten_into(flat, item, name, style, top=False)
        else:
            flat[name] = item

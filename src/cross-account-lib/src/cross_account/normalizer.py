"""
cross_account.normalizer — Rewrite key field names between PK/SK and pk/sk.

Callers always write PK/SK.  Private-tier tables are keyed on lower-case
pk/sk, so items, keys, expressions and attribute-name maps are rewritten
on the way in and items are rewritten back to PK/SK on the way out.
Upper casing leaves expressions and name maps untouched.

Expression rewriting is token-based: only standalone identifiers are
touched.  ":pk", "#PK", "a.PK", "PKG" and "SK_PREFIX" are left alone.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from cross_account.exceptions import NormalizationError
from cross_account.models import KeyCasing

_TO_LOWER = {"PK": "pk", "SK": "sk"}
_TO_UPPER = {"pk": "PK", "sk": "SK"}

# Identifier boundaries: not preceded by a word char or one of # : . and
# not followed by a word char.
_UPPER_TOKEN = re.compile(r"(?<![\w#:.])(PK|SK)(?!\w)")


def _mapping_for(casing: KeyCasing) -> dict[str, str]:
    return _TO_LOWER if casing is KeyCasing.LOWER else _TO_UPPER


def normalize_item(item: Mapping[str, Any], casing: KeyCasing) -> dict[str, Any]:
    """Return a copy of item with its reserved key fields in the given casing.

    Field order and every other field are preserved exactly.
    """
    if not isinstance(item, Mapping):
        raise NormalizationError(f"item must be a mapping, got {type(item).__name__}")
    mapping = _mapping_for(casing)
    for source, target in mapping.items():
        if source in item and target in item:
            raise NormalizationError(f"item contains both {source!r} and {target!r}")
    return {mapping.get(name, name): value for name, value in item.items()}


def normalize_key(key: Mapping[str, Any], casing: KeyCasing) -> dict[str, Any]:
    """Like normalize_item, but the result must hold both key fields."""
    normalized = normalize_item(key, casing)
    missing = [f for f in (casing.partition_key, casing.sort_key) if f not in normalized]
    if missing:
        raise NormalizationError(f"key is missing {', '.join(missing)}: {dict(key)!r}")
    return normalized


def normalize_expression(expression: str | None, casing: KeyCasing) -> str | None:
    if expression is None:
        return None
    if not isinstance(expression, str):
        raise NormalizationError(
            f"expression must be a string, got {type(expression).__name__}"
        )
    if casing is KeyCasing.UPPER:
        return expression
    return _UPPER_TOKEN.sub(lambda m: _TO_LOWER[m.group(1)], expression)


def normalize_names(
    names: Mapping[str, str] | None, casing: KeyCasing
) -> dict[str, str] | None:
    """Rewrite ExpressionAttributeNames values that name a key field."""
    if names is None:
        return None
    if casing is KeyCasing.UPPER:
        return dict(names)
    return {placeholder: _TO_LOWER.get(name, name) for placeholder, name in names.items()}


def denormalize_item(item: Mapping[str, Any]) -> dict[str, Any]:
    return normalize_item(item, KeyCasing.UPPER)

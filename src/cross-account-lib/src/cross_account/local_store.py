"""
cross_account.local_store — In-memory stand-in for DynamoDB.

Enabled only by USE_IN_MEMORY_DYNAMODB=true so the rest of the system can
run with no network at all.  It is deliberately approximate:

  - items live in one dict keyed "{PK}#{SK}", shared by every tenant/table
  - query understands "PK = :x" with an optional "SK = :y" or
    "begins_with(SK, :y)", with "#name" placeholders resolved first;
    anything without a partition equality returns every item.  A filter
    expression is then applied the same way scan applies it
  - scan filters understand "a = :v", "begins_with(a, :v)",
    "contains(a, :v)" and "attribute_exists(a)" joined by AND; other
    clauses are skipped with a warning
  - update_item understands SET assignments only

Unrelated to the FallbackRegistry: a fallback tenant still talks to a
real table.
"""

from __future__ import annotations

import copy
import re
import threading
from collections.abc import Mapping
from typing import Any

from aws_lambda_powertools import Logger

from cross_account.exceptions import NormalizationError
from cross_account.models import KeyCasing
from cross_account.normalizer import denormalize_item, normalize_key

logger = Logger(service="cross-account-lib")

_PK_EQ = re.compile(r"(?<![\w#:.])PK\s*=\s*(:\w+)", re.IGNORECASE)
_SK_EQ = re.compile(r"(?<![\w#:.])SK\s*=\s*(:\w+)", re.IGNORECASE)
_SK_BEGINS = re.compile(r"begins_with\(\s*SK\s*,\s*(:\w+)\s*\)", re.IGNORECASE)
_AND = re.compile(r"\s+AND\s+", re.IGNORECASE)
_NAME_PLACEHOLDER = re.compile(r"#\w+")

_FILTER_EQ = re.compile(r"^(#?\w+)\s*=\s*(:\w+)$")
_FILTER_BEGINS = re.compile(r"^begins_with\(\s*(#?\w+)\s*,\s*(:\w+)\s*\)$", re.IGNORECASE)
_FILTER_CONTAINS = re.compile(r"^contains\(\s*(#?\w+)\s*,\s*(:\w+)\s*\)$", re.IGNORECASE)
_FILTER_EXISTS = re.compile(r"^attribute_exists\(\s*(#?\w+)\s*\)$", re.IGNORECASE)

_SET_PREFIX = re.compile(r"^\s*SET\s+", re.IGNORECASE)
_ASSIGNMENT = re.compile(r"^(#?\w+)\s*=\s*(:\w+)$")


def _storage_key(key: Mapping[str, Any]) -> str:
    normalized = normalize_key(key, KeyCasing.UPPER)
    return f"{normalized['PK']}#{normalized['SK']}"


def _resolve_name(token: str, names: Mapping[str, str] | None) -> str:
    if token.startswith("#"):
        if not names or token not in names:
            raise NormalizationError(f"undefined attribute name placeholder {token!r}")
        return names[token]
    return token


def _value(token: str, values: Mapping[str, Any] | None) -> Any:
    if not values or token not in values:
        raise NormalizationError(f"undefined value placeholder {token!r}")
    return values[token]


def _contains(haystack: Any, needle: Any) -> bool:
    if isinstance(haystack, str | list | set | tuple):
        return needle in haystack
    return False


class LocalStore:
    def __init__(self) -> None:
        self._items: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def put_item(self, item: Mapping[str, Any]) -> None:
        stored = denormalize_item(item)
        storage_key = _storage_key(stored)
        with self._lock:
            self._items[storage_key] = copy.deepcopy(stored)
        logger.debug("In-memory store: PUT", key=storage_key)

    def get_item(self, key: Mapping[str, Any]) -> dict[str, Any] | None:
        storage_key = _storage_key(key)
        with self._lock:
            item = self._items.get(storage_key)
            return copy.deepcopy(item) if item is not None else None

    def delete_item(self, key: Mapping[str, Any]) -> None:
        storage_key = _storage_key(key)
        with self._lock:
            self._items.pop(storage_key, None)
        logger.debug("In-memory store: DELETE", key=storage_key)

    def query(
        self,
        key_condition: str,
        values: Mapping[str, Any] | None,
        names: Mapping[str, str] | None = None,
        filter_expression: str | None = None,
    ) -> list[dict[str, Any]]:
        key_condition = _NAME_PLACEHOLDER.sub(
            lambda m: _resolve_name(m.group(0), names), key_condition
        )
        results = self._snapshot()
        pk_match = _PK_EQ.search(key_condition)
        if pk_match is None:
            logger.debug("In-memory store: QUERY without partition key", count=len(results))
        else:
            pk_value = _value(pk_match.group(1), values)
            results = [item for item in results if item.get("PK") == pk_value]

            sk_eq = _SK_EQ.search(key_condition)
            if sk_eq is not None:
                sk_value = _value(sk_eq.group(1), values)
                results = [item for item in results if item.get("SK") == sk_value]

            sk_begins = _SK_BEGINS.search(key_condition)
            if sk_begins is not None:
                prefix = _value(sk_begins.group(1), values)
                results = [
                    item
                    for item in results
                    if isinstance(item.get("SK"), str) and item["SK"].startswith(prefix)
                ]
        return self._filter(results, filter_expression, values, names)

    def scan(
        self,
        filter_expression: str | None = None,
        values: Mapping[str, Any] | None = None,
        names: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        return self._filter(self._snapshot(), filter_expression, values, names)

    def update_item(
        self,
        key: Mapping[str, Any],
        update_expression: str,
        values: Mapping[str, Any] | None,
        names: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        if not _SET_PREFIX.match(update_expression):
            raise NormalizationError(
                f"in-memory store supports SET updates only, got {update_expression!r}"
            )
        assignments: list[tuple[str, Any]] = []
        body = _SET_PREFIX.sub("", update_expression, count=1)
        for part in body.split(","):
            match = _ASSIGNMENT.match(part.strip())
            if match is None:
                raise NormalizationError(f"unsupported update clause {part.strip()!r}")
            assignments.append(
                (_resolve_name(match.group(1), names), _value(match.group(2), values))
            )

        normalized = normalize_key(key, KeyCasing.UPPER)
        storage_key = _storage_key(normalized)
        with self._lock:
            item = self._items.get(storage_key) or {"PK": normalized["PK"], "SK": normalized["SK"]}
            for name, value in assignments:
                item[name] = copy.deepcopy(value)
            self._items[storage_key] = item
            return copy.deepcopy(item)

    def _snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(item) for item in self._items.values()]

    def _filter(
        self,
        items: list[dict[str, Any]],
        filter_expression: str | None,
        values: Mapping[str, Any] | None,
        names: Mapping[str, str] | None,
    ) -> list[dict[str, Any]]:
        if not filter_expression:
            return items
        for clause in _AND.split(filter_expression.strip()):
            items = self._apply_filter(items, clause.strip(), values, names)
        return items

    def _apply_filter(
        self,
        items: list[dict[str, Any]],
        clause: str,
        values: Mapping[str, Any] | None,
        names: Mapping[str, str] | None,
    ) -> list[dict[str, Any]]:
        if match := _FILTER_EQ.match(clause):
            attr, expected = _resolve_name(match.group(1), names), _value(match.group(2), values)
            return [item for item in items if item.get(attr) == expected]
        if match := _FILTER_BEGINS.match(clause):
            attr, prefix = _resolve_name(match.group(1), names), _value(match.group(2), values)
            return [
                item
                for item in items
                if isinstance(item.get(attr), str) and item[attr].startswith(prefix)
            ]
        if match := _FILTER_CONTAINS.match(clause):
            attr, needle = _resolve_name(match.group(1), names), _value(match.group(2), values)
            return [item for item in items if _contains(item.get(attr), needle)]
        if match := _FILTER_EXISTS.match(clause):
            attr = _resolve_name(match.group(1), names)
            return [item for item in items if attr in item]
        logger.warning("In-memory store: unsupported filter clause ignored", clause=clause)
        return items

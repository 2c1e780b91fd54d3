"""
cross_account.audit — Request-scoped actor identity and audit columns.

The acting user is held in a ContextVar, so each thread and each asyncio
task sees only its own binding; a rebind inside one request never leaks
into a concurrent one.  Bind once near the top of request handling:

    with audit_context(AuditContext(actor_id=user.id, actor_name=user.name)):
        service.create(...)

ItemStore calls augment_for_create / augment_for_update on every put and
update unless the caller passes skip_audit=True.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, TypeVar

from cross_account.exceptions import NormalizationError
from cross_account.models import AuditContext

T = TypeVar("T")

CREATED_BY = "createdBy"
CREATED_AT = "createdAt"
UPDATED_BY = "updatedBy"
UPDATED_AT = "updatedAt"

UPDATED_BY_PLACEHOLDER = ":audit_updatedBy"
UPDATED_AT_PLACEHOLDER = ":audit_updatedAt"

_AUDIT_ASSIGNMENTS = (
    f"{UPDATED_BY} = {UPDATED_BY_PLACEHOLDER}, {UPDATED_AT} = {UPDATED_AT_PLACEHOLDER}"
)
_SET_CLAUSE = re.compile(r"(?<![\w#:.])SET\s+", re.IGNORECASE)

_EMPTY = AuditContext()
_current: ContextVar[AuditContext | None] = ContextVar("cross_account_audit", default=None)


def _iso(dt: datetime) -> str:
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@contextmanager
def audit_context(ctx: AuditContext) -> Iterator[AuditContext]:
    token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(token)


def with_context(ctx: AuditContext, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run fn with ctx bound, restoring the previous binding afterwards."""
    with audit_context(ctx):
        return fn(*args, **kwargs)


def current_context() -> AuditContext:
    return _current.get() or _EMPTY


def augment_for_create(
    item: Mapping[str, Any], *, now: datetime | None = None
) -> dict[str, Any]:
    actor = current_context().actor
    stamp = _iso(now or datetime.now(UTC))
    return {
        **item,
        CREATED_BY: actor,
        CREATED_AT: stamp,
        UPDATED_BY: actor,
        UPDATED_AT: stamp,
    }


def augment_for_update(
    update_expression: str,
    values: Mapping[str, Any] | None,
    *,
    now: datetime | None = None,
) -> tuple[str, dict[str, Any]]:
    """Put updatedBy/updatedAt assignments first in the expression's SET clause.

    Creates the SET clause when the expression has none (e.g. a bare REMOVE).
    Re-applying to an already augmented expression only refreshes the values.
    """
    if not isinstance(update_expression, str):
        raise NormalizationError(
            f"update expression must be a string, got {type(update_expression).__name__}"
        )
    merged = dict(values or {})
    already_augmented = UPDATED_BY_PLACEHOLDER in update_expression
    if not already_augmented:
        clashes = {UPDATED_BY_PLACEHOLDER, UPDATED_AT_PLACEHOLDER} & merged.keys()
        if clashes:
            raise NormalizationError(
                f"expression values use reserved audit placeholders: {sorted(clashes)}"
            )

    merged[UPDATED_BY_PLACEHOLDER] = current_context().actor
    merged[UPDATED_AT_PLACEHOLDER] = _iso(now or datetime.now(UTC))

    if already_augmented:
        return update_expression, merged

    expression = update_expression.strip()
    if not expression:
        return f"SET {_AUDIT_ASSIGNMENTS}", merged
    if _SET_CLAUSE.search(expression):
        return _SET_CLAUSE.sub(f"SET {_AUDIT_ASSIGNMENTS}, ", expression, count=1), merged
    return f"SET {_AUDIT_ASSIGNMENTS} {expression}", merged

"""
cross_account.exceptions — Error taxonomy for the data access layer.

No error raised here is retried inside the library; recovery belongs to
the outer request handler.
"""

from __future__ import annotations

from typing import Any


def _error_code(cause: BaseException | None) -> str | None:
    response: Any = getattr(cause, "response", None)
    if isinstance(response, dict):
        code = response.get("Error", {}).get("Code")
        return str(code) if code else None
    return None


class DataAccessError(Exception):
    """Base class for every error raised by cross_account."""


class AssumptionError(DataAccessError):
    """
    Role assumption failed for a transient reason.

    Surfaced to the caller, who may retry the whole request.

    Attributes:
        tenant_id:        Logical tenant the credentials were requested for.
        cloud_account_id: Target cloud account.
        role_arn:         Role that could not be assumed.
        cause:            Underlying botocore error, if any.
    """

    def __init__(
        self,
        *,
        tenant_id: str,
        cloud_account_id: str,
        role_arn: str,
        cause: BaseException | None = None,
        message: str | None = None,
    ) -> None:
        self.tenant_id = tenant_id
        self.cloud_account_id = cloud_account_id
        self.role_arn = role_arn
        self.cause = cause
        detail = message or (str(cause) if cause is not None else "unknown error")
        super().__init__(
            f"Could not assume {role_arn!r} for tenant {tenant_id!r} "
            f"in account {cloud_account_id!r}: {detail}"
        )


class PermanentAssumptionIncapability(AssumptionError):
    """The base identity cannot assume any role (e.g. root credentials).

    Never escapes CredentialBroker.get_client: it is converted into a
    FallbackRegistry entry and the request proceeds on direct credentials.
    """


class StoreOperationError(DataAccessError):
    """
    An underlying DynamoDB call failed.

    Attributes:
        operation: ItemStore verb that failed ("put", "query", ...).
        tenant_id: Tenant the call was made for.
        cause:     The original botocore exception.
    """

    def __init__(self, *, operation: str, tenant_id: str, cause: BaseException) -> None:
        self.operation = operation
        self.tenant_id = tenant_id
        self.cause = cause
        self.error_code = _error_code(cause)
        code = f" [{self.error_code}]" if self.error_code else ""
        super().__init__(f"{operation} failed for tenant {tenant_id!r}{code}: {cause}")


class NormalizationError(DataAccessError, ValueError):
    """Malformed key, item or expression input. A programming error; never retried."""

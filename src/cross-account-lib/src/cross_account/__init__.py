"""
cross_account — Cross-account, tenant-aware DynamoDB access layer.

The only way domain services read or write tenant data in DynamoDB mode.
Handles STS role assumption and credential caching, table/key-casing
resolution per cloud tier, local fallback, and audit columns.
"""

from cross_account.audit import (
    audit_context,
    augment_for_create,
    augment_for_update,
    current_context,
    with_context,
)
from cross_account.broker import CredentialBroker, CredentialCache, FallbackRegistry
from cross_account.config import Settings
from cross_account.exceptions import (
    AssumptionError,
    DataAccessError,
    NormalizationError,
    PermanentAssumptionIncapability,
    StoreOperationError,
)
from cross_account.local_store import LocalStore
from cross_account.models import (
    ENTITY_MARKER_FIELD,
    AssumedCredentials,
    AuditContext,
    CloudTier,
    KeyCasing,
    TenantAwsConfig,
)
from cross_account.resolver import ResolvedTarget, TableResolver
from cross_account.store import ItemStore, check_connectivity, create_item_store

__all__ = [
    "ENTITY_MARKER_FIELD",
    "AssumedCredentials",
    "AssumptionError",
    "AuditContext",
    "CloudTier",
    "CredentialBroker",
    "CredentialCache",
    "DataAccessError",
    "FallbackRegistry",
    "ItemStore",
    "KeyCasing",
    "LocalStore",
    "NormalizationError",
    "PermanentAssumptionIncapability",
    "ResolvedTarget",
    "Settings",
    "StoreOperationError",
    "TableResolver",
    "TenantAwsConfig",
    "audit_context",
    "augment_for_create",
    "augment_for_update",
    "check_connectivity",
    "create_item_store",
    "current_context",
    "with_context",
]

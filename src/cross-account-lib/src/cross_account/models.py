"""
cross_account.models — Value types shared by the data access layer.

TenantAwsConfig is built by callers once per request.  AssumedCredentials
and CredentialCacheEntry never leave the broker.  Items themselves are
plain dicts: the underlying table is schemaless and logical record types
share one physical table, told apart by ENTITY_MARKER_FIELD.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

# Field distinguishing logical record types stored in one physical table.
ENTITY_MARKER_FIELD = "entity_type"

StoreItem = dict[str, Any]


class CloudTier(StrEnum):
    PUBLIC = "public"
    PRIVATE = "private"

    @classmethod
    def parse(cls, raw: str | CloudTier | None) -> CloudTier:
        """Map loose registry values ("Private Cloud", "PUBLIC", "") onto a tier.

        Anything mentioning "private" is private; everything else, including
        missing values, is public.
        """
        if isinstance(raw, CloudTier):
            return raw
        if raw and "private" in raw.lower():
            return cls.PRIVATE
        return cls.PUBLIC


class KeyCasing(StrEnum):
    UPPER = "upper"  # PK / SK
    LOWER = "lower"  # pk / sk

    @property
    def partition_key(self) -> str:
        return "PK" if self is KeyCasing.UPPER else "pk"

    @property
    def sort_key(self) -> str:
        return "SK" if self is KeyCasing.UPPER else "sk"


@dataclass(frozen=True)
class TenantAwsConfig:
    """Which tenant a request is for and where that tenant's data lives.

    cloud_account_id is None for tenants that have no dedicated cloud
    account registered; those are served from the shared administrative
    table with direct credentials.
    """

    tenant_account_id: str
    cloud_account_id: str | None
    cloud_tier: CloudTier = CloudTier.PUBLIC
    region: str | None = None

    def __post_init__(self) -> None:
        if not self.tenant_account_id:
            raise ValueError("tenant_account_id must be non-empty")
        # Accept raw registry strings for convenience.
        object.__setattr__(self, "cloud_tier", CloudTier.parse(self.cloud_tier))

    @property
    def cache_key(self) -> tuple[str, str]:
        return (self.cloud_account_id or "", self.tenant_account_id)


def as_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True)
class AssumedCredentials:
    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str = field(repr=False)
    expiration: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "expiration", as_utc(self.expiration))

    def is_expired(self, now: datetime) -> bool:
        return self.expiration <= as_utc(now)


@dataclass(frozen=True)
class CredentialCacheEntry:
    credentials: AssumedCredentials
    client: Any  # boto3 DynamoDB service resource built from `credentials`


@dataclass(frozen=True)
class AuditContext:
    """Acting user for the current request; all fields optional."""

    actor_id: str | int | None = None
    actor_name: str | None = None
    actor_email: str | None = None

    @property
    def actor(self) -> str:
        if self.actor_id not in (None, ""):
            return str(self.actor_id)
        if self.actor_name:
            return self.actor_name
        return "system"

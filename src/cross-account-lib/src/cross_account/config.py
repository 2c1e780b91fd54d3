"""
cross_account.config — Environment-driven settings for the data access layer.

Every option is read from the process environment once, at construction,
and carried around as an immutable Settings object so tests can build
isolated instances without touching os.environ.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})

DEFAULT_REGION = "us-east-1"
DEFAULT_ROLE_NAME = "account-admin-cross-account-role"
DEFAULT_ASSUME_ROLE_DURATION = 3600
DEFAULT_WORKSPACE = "dev"
DEFAULT_PRIVATE_TABLE_TEMPLATE = "tenant-{tenant_id}-private"

# Placeholder credentials shipped in local .env files; never valid against AWS.
DUMMY_ACCESS_KEY_ID = "dummy_access_key"
DUMMY_SECRET_ACCESS_KEY = "dummy_secret_key"  # pragma: allowlist secret


def _flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in _TRUE_VALUES


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for CredentialBroker, TableResolver and ItemStore.

    Environment variables:
        AWS_REGION                     region for STS and DynamoDB clients
        CROSS_ACCOUNT_ROLE_NAME        role name template, may contain {tenant_id}
        ASSUME_ROLE_DURATION           assumed session length in seconds
        WORKSPACE                      suffix for the default shared table names
        PUBLIC_TABLE_NAME              shared public-tier table
        FALLBACK_TABLE_NAME            shared administrative / local-fallback table
        PRIVATE_TABLE_TEMPLATE         per-tenant private table, must contain {tenant_id}
        USE_IN_MEMORY_DYNAMODB         serve every call from LocalStore
        SKIP_DYNAMODB_CONNECTION_TEST  skip the startup connectivity probe
        DYNAMODB_ENDPOINT              DynamoDB Local endpoint for direct clients
    """

    region: str = DEFAULT_REGION
    role_name_template: str = DEFAULT_ROLE_NAME
    assume_role_duration: int = DEFAULT_ASSUME_ROLE_DURATION
    public_table: str = f"account-admin-public-{DEFAULT_WORKSPACE}"
    fallback_table: str = f"account-admin-{DEFAULT_WORKSPACE}"
    private_table_template: str = DEFAULT_PRIVATE_TABLE_TEMPLATE
    use_in_memory: bool = False
    skip_connection_test: bool = False
    dynamodb_endpoint: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if "{tenant_id}" not in self.private_table_template:
            raise ValueError(
                "private_table_template must contain '{tenant_id}', "
                f"got {self.private_table_template!r}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        workspace = env.get("WORKSPACE", "").strip() or DEFAULT_WORKSPACE
        return cls(
            region=env.get("AWS_REGION", "").strip() or DEFAULT_REGION,
            role_name_template=env.get("CROSS_ACCOUNT_ROLE_NAME", "").strip() or DEFAULT_ROLE_NAME,
            assume_role_duration=_positive_int(
                env, "ASSUME_ROLE_DURATION", DEFAULT_ASSUME_ROLE_DURATION
            ),
            public_table=env.get("PUBLIC_TABLE_NAME", "").strip()
            or f"account-admin-public-{workspace}",
            fallback_table=env.get("FALLBACK_TABLE_NAME", "").strip()
            or f"account-admin-{workspace}",
            private_table_template=env.get("PRIVATE_TABLE_TEMPLATE", "").strip()
            or DEFAULT_PRIVATE_TABLE_TEMPLATE,
            use_in_memory=_flag(env, "USE_IN_MEMORY_DYNAMODB"),
            skip_connection_test=_flag(env, "SKIP_DYNAMODB_CONNECTION_TEST"),
            dynamodb_endpoint=env.get("DYNAMODB_ENDPOINT", "").strip() or None,
            access_key_id=env.get("AWS_ACCESS_KEY_ID") or None,
            secret_access_key=env.get("AWS_SECRET_ACCESS_KEY") or None,
        )

    @property
    def uses_dummy_credentials(self) -> bool:
        return (
            self.access_key_id == DUMMY_ACCESS_KEY_ID
            or self.secret_access_key == DUMMY_SECRET_ACCESS_KEY
        )

    def role_name_for(self, tenant_id: str) -> str:
        return self.role_name_template.format(tenant_id=tenant_id)

    def private_table_for(self, tenant_id: str) -> str:
        return self.private_table_template.format(tenant_id=tenant_id)

"""
cross_account.resolver — Physical table and key casing for a tenant.

    fallback tenant  ->  settings.fallback_table              PK / SK
    private tier     ->  tenant-{tenant_id}-private (template)  pk / sk
    public tier      ->  settings.public_table                PK / SK

resolve() is pure given the FallbackRegistry contents at call time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from cross_account.broker import CredentialBroker
from cross_account.models import CloudTier, KeyCasing, TenantAwsConfig


@dataclass(frozen=True)
class ResolvedTarget:
    client: Any
    table_name: str
    casing: KeyCasing


class TableResolver:
    def __init__(self, broker: CredentialBroker) -> None:
        self._broker = broker
        self._settings = broker.settings

    @property
    def broker(self) -> CredentialBroker:
        return self._broker

    def resolve(self, tenant_account_id: str, cloud_tier: CloudTier | str) -> tuple[str, KeyCasing]:
        if tenant_account_id in self._broker.fallback:
            return self._settings.fallback_table, KeyCasing.UPPER
        if CloudTier.parse(cloud_tier) is CloudTier.PRIVATE:
            return self._settings.private_table_for(tenant_account_id), KeyCasing.LOWER
        return self._settings.public_table, KeyCasing.UPPER

    def resolve_target(self, config: TenantAwsConfig) -> ResolvedTarget:
        """Obtain the client first so a fallback detected here is reflected in the table."""
        client = self._broker.get_client(config)
        if config.cloud_account_id is None:
            return ResolvedTarget(client, self._settings.fallback_table, KeyCasing.UPPER)
        table_name, casing = self.resolve(config.tenant_account_id, config.cloud_tier)
        return ResolvedTarget(client, table_name, casing)

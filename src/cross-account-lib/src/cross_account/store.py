"""
cross_account.store — ItemStore, the single-table API used by every domain service.

Each call:
  1. resolves (client, table, casing) for the tenant via TableResolver,
  2. rewrites keys, items and expressions into that casing,
  3. merges audit columns into put/update (unless skip_audit=True),
  4. executes one DynamoDB call (paging through query/scan results),
  5. hands items back with PK/SK field names.

Failures from DynamoDB are wrapped in StoreOperationError and raised;
nothing is retried here.  AssumptionError and NormalizationError pass
through unwrapped.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from cross_account.audit import augment_for_create, augment_for_update
from cross_account.broker import CredentialBroker
from cross_account.config import Settings
from cross_account.exceptions import DataAccessError, StoreOperationError
from cross_account.local_store import LocalStore
from cross_account.models import TenantAwsConfig
from cross_account.normalizer import (
    denormalize_item,
    normalize_expression,
    normalize_item,
    normalize_key,
    normalize_names,
)
from cross_account.resolver import ResolvedTarget, TableResolver

logger = Logger(service="cross-account-lib")

T = TypeVar("T")


class ItemStore:
    """
    Tenant-aware put/get/query/update/delete/scan over DynamoDB.

    With a LocalStore attached every verb is served in memory and no
    credentials or table resolution are involved.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        resolver: TableResolver | None = None,
        local_store: LocalStore | None = None,
    ) -> None:
        self._settings = settings
        self._local = local_store
        if resolver is None and local_store is None:
            resolver = TableResolver(CredentialBroker(settings))
        self._resolver = resolver

    @property
    def is_local(self) -> bool:
        return self._local is not None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _target(self, config: TenantAwsConfig) -> ResolvedTarget:
        if self._resolver is None:
            raise DataAccessError("ItemStore was built for in-memory use and has no TableResolver")
        target = self._resolver.resolve_target(config)
        logger.debug(
            "Routing data access",
            tenant_id=config.tenant_account_id,
            table_name=target.table_name,
            casing=str(target.casing),
        )
        return target

    def _execute(self, operation: str, config: TenantAwsConfig, call: Callable[[], T]) -> T:
        try:
            return call()
        except (ClientError, BotoCoreError) as exc:
            logger.exception(
                "DynamoDB operation failed",
                operation=operation,
                tenant_id=config.tenant_account_id,
            )
            raise StoreOperationError(
                operation=operation, tenant_id=config.tenant_account_id, cause=exc
            ) from exc

    @staticmethod
    def _collect_pages(fetch: Callable[..., dict[str, Any]], kwargs: dict[str, Any]) -> list[Any]:
        items: list[Any] = []
        while True:
            response = fetch(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def put(
        self,
        config: TenantAwsConfig,
        item: Mapping[str, Any],
        *,
        skip_audit: bool = False,
        condition_expression: str | None = None,
    ) -> None:
        """Write item. skip_audit is for bookkeeping records with no human actor."""
        payload = dict(item) if skip_audit else augment_for_create(item)
        if self._local is not None:
            self._local.put_item(payload)
            return

        target = self._target(config)
        kwargs: dict[str, Any] = {"Item": normalize_item(payload, target.casing)}
        if condition_expression is not None:
            kwargs["ConditionExpression"] = normalize_expression(
                condition_expression, target.casing
            )
        table = target.client.Table(target.table_name)
        self._execute("put", config, lambda: table.put_item(**kwargs))

    def get(self, config: TenantAwsConfig, key: Mapping[str, Any]) -> dict[str, Any] | None:
        if self._local is not None:
            return self._local.get_item(key)

        target = self._target(config)
        normalized = normalize_key(key, target.casing)
        table = target.client.Table(target.table_name)
        response = self._execute("get", config, lambda: table.get_item(Key=normalized))
        item = response.get("Item")
        return denormalize_item(item) if item is not None else None

    def query(
        self,
        config: TenantAwsConfig,
        key_condition: str,
        values: Mapping[str, Any],
        *,
        names: Mapping[str, str] | None = None,
        filter_expression: str | None = None,
        index_name: str | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query one partition, e.g. "PK = :pk AND begins_with(SK, :sk)".

        Every page is fetched; the result is the full match set.
        """
        if self._local is not None:
            return self._local.query(key_condition, values, names, filter_expression)

        target = self._target(config)
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": normalize_expression(key_condition, target.casing),
            "ExpressionAttributeValues": dict(values),
            "ScanIndexForward": scan_index_forward,
        }
        if names:
            kwargs["ExpressionAttributeNames"] = normalize_names(names, target.casing)
        if filter_expression is not None:
            kwargs["FilterExpression"] = normalize_expression(filter_expression, target.casing)
        if index_name is not None:
            kwargs["IndexName"] = index_name

        table = target.client.Table(target.table_name)
        items = self._execute("query", config, lambda: self._collect_pages(table.query, kwargs))
        return [denormalize_item(item) for item in items]

    def update(
        self,
        config: TenantAwsConfig,
        key: Mapping[str, Any],
        update_expression: str,
        values: Mapping[str, Any] | None,
        names: Mapping[str, str] | None = None,
        *,
        condition_expression: str | None = None,
        skip_audit: bool = False,
    ) -> dict[str, Any]:
        """Apply update_expression and return the item as stored afterwards."""
        if skip_audit:
            expression, merged_values = update_expression, dict(values or {})
        else:
            expression, merged_values = augment_for_update(update_expression, values)

        if self._local is not None:
            return self._local.update_item(key, expression, merged_values, names)

        target = self._target(config)
        kwargs: dict[str, Any] = {
            "Key": normalize_key(key, target.casing),
            "UpdateExpression": normalize_expression(expression, target.casing),
            "ReturnValues": "ALL_NEW",
        }
        if merged_values:
            kwargs["ExpressionAttributeValues"] = merged_values
        if names:
            kwargs["ExpressionAttributeNames"] = normalize_names(names, target.casing)
        if condition_expression is not None:
            kwargs["ConditionExpression"] = normalize_expression(
                condition_expression, target.casing
            )

        table = target.client.Table(target.table_name)
        response = self._execute("update", config, lambda: table.update_item(**kwargs))
        return denormalize_item(response.get("Attributes", {}))

    def delete(self, config: TenantAwsConfig, key: Mapping[str, Any]) -> None:
        if self._local is not None:
            self._local.delete_item(key)
            return

        target = self._target(config)
        normalized = normalize_key(key, target.casing)
        table = target.client.Table(target.table_name)
        self._execute("delete", config, lambda: table.delete_item(Key=normalized))

    def scan(
        self,
        config: TenantAwsConfig,
        filter_expression: str | None = None,
        values: Mapping[str, Any] | None = None,
        *,
        names: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """Full-table scan. Cost is O(table size); admin and debug paths only."""
        if self._local is not None:
            return self._local.scan(filter_expression, values, names)

        target = self._target(config)
        kwargs: dict[str, Any] = {}
        if filter_expression is not None:
            kwargs["FilterExpression"] = normalize_expression(filter_expression, target.casing)
        if values:
            kwargs["ExpressionAttributeValues"] = dict(values)
        if names:
            kwargs["ExpressionAttributeNames"] = normalize_names(names, target.casing)

        table = target.client.Table(target.table_name)
        items = self._execute("scan", config, lambda: self._collect_pages(table.scan, kwargs))
        return [denormalize_item(item) for item in items]

    def replace_key(
        self,
        config: TenantAwsConfig,
        old_key: Mapping[str, Any],
        new_item: Mapping[str, Any],
        *,
        skip_audit: bool = False,
    ) -> None:
        """Move a record to a new key: put new_item, then delete old_key.

        NOT atomic.  A failure between the two calls leaves both records in
        the table; callers that rename must tolerate (or clean up) the old one.
        """
        self.put(config, new_item, skip_audit=skip_audit)
        if _same_key(old_key, new_item):
            return
        self.delete(config, old_key)


def _same_key(key: Mapping[str, Any], item: Mapping[str, Any]) -> bool:
    a, b = denormalize_item(key), denormalize_item(item)
    return a.get("PK") == b.get("PK") and a.get("SK") == b.get("SK")


# ---------------------------------------------------------------------------
# Wiring and startup checks
# ---------------------------------------------------------------------------


def create_item_store(settings: Settings | None = None) -> ItemStore:
    """Production wiring from the environment; in-memory when USE_IN_MEMORY_DYNAMODB is set."""
    settings = settings or Settings.from_env()
    if settings.use_in_memory:
        logger.info("Using in-memory store (USE_IN_MEMORY_DYNAMODB=true)")
        return ItemStore(settings, local_store=LocalStore())
    return ItemStore(settings)


def check_connectivity(settings: Settings, *, dynamodb_resource: Any = None) -> bool:
    """Startup probe: a one-item scan of the fallback table.

    Returns True without any I/O when the probe is disabled, the in-memory
    store is active, or placeholder credentials are configured.
    """
    if settings.use_in_memory:
        logger.info("In-memory store active, skipping DynamoDB connection test")
        return True
    if settings.skip_connection_test or settings.uses_dummy_credentials:
        logger.info("DynamoDB connection test skipped (disabled or dummy credentials)")
        return True

    resource = dynamodb_resource or boto3.resource(
        "dynamodb", region_name=settings.region, endpoint_url=settings.dynamodb_endpoint
    )
    try:
        resource.Table(settings.fallback_table).scan(Limit=1)
    except (ClientError, BotoCoreError):
        logger.exception("DynamoDB connection test failed", table_name=settings.fallback_table)
        return False
    logger.info("DynamoDB connection test successful", table_name=settings.fallback_table)
    return True

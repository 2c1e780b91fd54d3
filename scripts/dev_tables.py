"""
dev_tables.py — Create the data access tables on LocalStack or DynamoDB Local.

Creates:
  - the shared public-tier table          (PK / SK)
  - the shared fallback / admin table     (PK / SK)
  - one private table per tenant id given (pk / sk)

Table names come from the same Settings the library uses, so WORKSPACE,
PUBLIC_TABLE_NAME, FALLBACK_TABLE_NAME and PRIVATE_TABLE_TEMPLATE all apply.

Idempotent: existing tables are left untouched.

Usage:
    uv run python scripts/dev_tables.py
    uv run python scripts/dev_tables.py T2 acme-prod
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any

import boto3
from botocore.exceptions import ClientError
from cross_account import KeyCasing, Settings


def _get_endpoint() -> str | None:
    """LOCALSTACK_ENDPOINT, then DYNAMODB_ENDPOINT; None lets moto intercept in tests."""
    return os.environ.get("LOCALSTACK_ENDPOINT") or os.environ.get("DYNAMODB_ENDPOINT") or None


def _dynamodb_resource(settings: Settings) -> Any:
    return boto3.resource("dynamodb", region_name=settings.region, endpoint_url=_get_endpoint())


def _log(msg: str) -> None:
    print(msg, flush=True)


def planned_tables(settings: Settings, tenant_ids: list[str]) -> list[tuple[str, KeyCasing]]:
    """(table_name, casing) for every table this run should ensure exists."""
    tables = [
        (settings.public_table, KeyCasing.UPPER),
        (settings.fallback_table, KeyCasing.UPPER),
    ]
    tables.extend((settings.private_table_for(t), KeyCasing.LOWER) for t in tenant_ids)
    return tables


def ensure_table(dynamodb: Any, table_name: str, casing: KeyCasing) -> bool:
    """Create table_name with casing's key schema. Returns False if it already existed."""
    pk, sk = casing.partition_key, casing.sort_key
    try:
        dynamodb.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": pk, "KeyType": "HASH"},
                {"AttributeName": sk, "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": pk, "AttributeType": "S"},
                {"AttributeName": sk, "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
    except ClientError as exc:
        code = (exc.response.get("Error") or {}).get("Code", "")
        if code in ("ResourceInUseException", "TableAlreadyExistsException"):
            return False
        raise
    return True


def run(tenant_ids: list[str], *, settings: Settings | None = None) -> list[str]:
    """Ensure every table exists. Returns the names of tables created by this run."""
    settings = settings or Settings.from_env()
    dynamodb = _dynamodb_resource(settings)
    created: list[str] = []

    _log("==> dev_tables: ensuring data access tables")
    for table_name, casing in planned_tables(settings, tenant_ids):
        if ensure_table(dynamodb, table_name, casing):
            created.append(table_name)
            _log(f"  [+] created table {table_name} ({casing.partition_key}/{casing.sort_key})")
        else:
            _log(f"  [=] table {table_name} already exists")
    _log("==> dev_tables: complete")
    return created


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create shared and private data access tables for local development"
    )
    parser.add_argument(
        "tenant_ids",
        nargs="*",
        help="Tenant ids that need a private-tier table",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    try:
        run(args.tenant_ids)
    except (ClientError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

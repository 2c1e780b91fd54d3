"""
cross_account.broker — CredentialBroker, CredentialCache and FallbackRegistry.

Exchanges the process's base identity for tenant-scoped credentials via
STS AssumeRole and hands out DynamoDB resources built from them.

Guarantees:
  - A cached entry whose expiration is at or before now (UTC) is never
    returned; the next request re-assumes exactly once and overwrites it.
  - A base identity that cannot assume any role puts the tenant in the
    FallbackRegistry for the life of the process; later requests for that
    tenant go straight to direct credentials without calling STS.
  - Any other STS failure surfaces as AssumptionError. Nothing is retried.

The cache and registry are plain injectable objects so tests can run in
isolation.  Their locks protect the maps only; the STS call itself is made
outside any lock, so two concurrent misses for one tenant may both assume.
The later write wins, and either set of credentials is valid.
"""

from __future__ import annotations

import re
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from cross_account.config import Settings
from cross_account.exceptions import AssumptionError, PermanentAssumptionIncapability
from cross_account.models import (
    AssumedCredentials,
    CredentialCacheEntry,
    TenantAwsConfig,
)

logger = Logger(service="cross-account-lib")

_SESSION_NAME_MAX = 64
_SESSION_NAME_INVALID = re.compile(r"[^\w+=,.@-]")
_ROOT_CANNOT_ASSUME = "roles may not be assumed by root accounts"
_METRIC_NAMESPACE = "platform/data-access"


def _now_utc() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Shared process state
# ---------------------------------------------------------------------------


class CredentialCache:
    """Process-lifetime map of (cloud_account_id, tenant_id) -> CredentialCacheEntry.

    Entries are replaced in place, never evicted.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], CredentialCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: tuple[str, str]) -> CredentialCacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: tuple[str, str], entry: CredentialCacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class FallbackRegistry:
    """Monotonic set of tenants whose role assumption is permanently impossible."""

    def __init__(self) -> None:
        self._tenants: set[str] = set()
        self._lock = threading.Lock()

    def add(self, tenant_id: str) -> bool:
        """Mark tenant_id; returns True only for the call that added it."""
        with self._lock:
            if tenant_id in self._tenants:
                return False
            self._tenants.add(tenant_id)
            return True

    def __contains__(self, tenant_id: object) -> bool:
        with self._lock:
            return tenant_id in self._tenants

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._tenants)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def session_name_for(tenant_id: str, *, now_ms: int | None = None) -> str:
    """Build an STS RoleSessionName traceable to the tenant and moment of assumption."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    name = _SESSION_NAME_INVALID.sub("-", f"cross-account-{tenant_id}-{stamp}")
    if len(name) <= _SESSION_NAME_MAX:
        return name
    # Keep the timestamp so names stay distinct when the tenant id is long.
    suffix = f"-{stamp}"
    return name[: _SESSION_NAME_MAX - len(suffix)] + suffix


def is_assumption_incapable(error: BaseException) -> bool:
    """True when the error says the base identity cannot assume roles at all.

    Only the root-account AccessDenied qualifies.  Credential resolution
    failures (NoCredentialsError, metadata timeouts) can clear on retry and
    must surface as AssumptionError.
    """
    if isinstance(error, ClientError):
        err = error.response.get("Error", {})
        return (
            err.get("Code") == "AccessDenied"
            and _ROOT_CANNOT_ASSUME in str(err.get("Message", "")).lower()
        )
    return False


def _emit_fallback_metric(cloudwatch_client: Any, *, tenant_id: str) -> None:
    """Publish an AssumptionFallback count metric. Never raises."""
    try:
        cloudwatch_client.put_metric_data(
            Namespace=_METRIC_NAMESPACE,
            MetricData=[
                {
                    "MetricName": "AssumptionFallback",
                    "Value": 1,
                    "Unit": "Count",
                    "Dimensions": [{"Name": "tenant_id", "Value": tenant_id}],
                }
            ],
        )
    except Exception:
        logger.exception("Failed to emit AssumptionFallback metric", tenant_id=tenant_id)


# ---------------------------------------------------------------------------
# CredentialBroker
# ---------------------------------------------------------------------------


class CredentialBroker:
    """
    Hands out DynamoDB resources scoped to a tenant's cloud account.

    get_client() order of precedence:
      1. No cloud account on the config, or tenant in FallbackRegistry:
         direct-credential resource.
      2. Cached, unexpired credentials: cached resource, no STS call.
      3. Otherwise assume the role once and cache the result.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        sts_client: Any = None,
        cloudwatch_client: Any = None,
        cache: CredentialCache | None = None,
        fallback: FallbackRegistry | None = None,
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        self._settings = settings
        self._sts: Any = sts_client or boto3.client("sts", region_name=settings.region)
        self._cloudwatch: Any = cloudwatch_client or boto3.client(
            "cloudwatch", region_name=settings.region
        )
        self.cache = cache if cache is not None else CredentialCache()
        self.fallback = fallback if fallback is not None else FallbackRegistry()
        self._clock = clock
        self._direct_resource: Any = None
        self._direct_lock = threading.Lock()

    @property
    def settings(self) -> Settings:
        return self._settings

    def role_arn_for(self, cloud_account_id: str, tenant_id: str) -> str:
        role_name = self._settings.role_name_for(tenant_id)
        return f"arn:aws:iam::{cloud_account_id}:role/{role_name}"

    def assume(self, cloud_account_id: str, tenant_account_id: str) -> AssumedCredentials:
        """Call STS AssumeRole for the tenant. Does not consult or fill the cache.

        Raises PermanentAssumptionIncapability when the base identity can never
        assume a role, AssumptionError for anything else.
        """
        role_arn = self.role_arn_for(cloud_account_id, tenant_account_id)
        session_name = session_name_for(tenant_account_id)
        logger.info(
            "Assuming cross-account role",
            tenant_id=tenant_account_id,
            role_arn=role_arn,
            session_name=session_name,
        )
        try:
            response = self._sts.assume_role(
                RoleArn=role_arn,
                RoleSessionName=session_name,
                DurationSeconds=self._settings.assume_role_duration,
            )
        except (ClientError, BotoCoreError) as exc:
            error_cls = (
                PermanentAssumptionIncapability
                if is_assumption_incapable(exc)
                else AssumptionError
            )
            if error_cls is AssumptionError:
                logger.exception(
                    "Failed to assume cross-account role",
                    tenant_id=tenant_account_id,
                    role_arn=role_arn,
                )
            raise error_cls(
                tenant_id=tenant_account_id,
                cloud_account_id=cloud_account_id,
                role_arn=role_arn,
                cause=exc,
            ) from exc

        raw = response.get("Credentials")
        if not raw:
            raise AssumptionError(
                tenant_id=tenant_account_id,
                cloud_account_id=cloud_account_id,
                role_arn=role_arn,
                message="No credentials returned from STS AssumeRole",
            )

        credentials = AssumedCredentials(
            access_key_id=raw["AccessKeyId"],
            secret_access_key=raw["SecretAccessKey"],
            session_token=raw["SessionToken"],
            expiration=raw["Expiration"],
        )
        logger.info(
            "Assumed cross-account role",
            tenant_id=tenant_account_id,
            role_arn=role_arn,
            expires_at=credentials.expiration.isoformat(),
        )
        return credentials

    def get_client(self, config: TenantAwsConfig) -> Any:
        """Return a DynamoDB service resource usable for config's tenant."""
        tenant_id = config.tenant_account_id
        if config.cloud_account_id is None or tenant_id in self.fallback:
            return self.direct_client()

        key = config.cache_key
        cached = self.cache.get(key)
        if cached is not None and not cached.credentials.is_expired(self._clock()):
            logger.debug("Using cached credentials", tenant_id=tenant_id)
            return cached.client

        try:
            credentials = self.assume(config.cloud_account_id, tenant_id)
        except PermanentAssumptionIncapability:
            self._enter_fallback(tenant_id)
            return self.direct_client()

        client = self._build_resource(credentials, region=config.region or self._settings.region)
        self.cache.put(key, CredentialCacheEntry(credentials=credentials, client=client))
        return client

    def direct_client(self) -> Any:
        """DynamoDB resource on the base identity, created once per broker."""
        with self._direct_lock:
            if self._direct_resource is None:
                session = boto3.session.Session(region_name=self._settings.region)
                self._direct_resource = session.resource(
                    "dynamodb", endpoint_url=self._settings.dynamodb_endpoint
                )
            return self._direct_resource

    def _build_resource(self, credentials: AssumedCredentials, *, region: str) -> Any:
        session = boto3.session.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            aws_session_token=credentials.session_token,
            region_name=region,
        )
        return session.resource("dynamodb")

    def _enter_fallback(self, tenant_id: str) -> None:
        if not self.fallback.add(tenant_id):
            return
        logger.warning(
            "Role assumption impossible for base identity; tenant switched to local fallback",
            tenant_id=tenant_id,
            fallback_table=self._settings.fallback_table,
        )
        _emit_fallback_metric(self._cloudwatch, tenant_id=tenant_id)

"""Shared fixtures for the cross_account test suite."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest
from aws_helpers import FALLBACK_TABLE, PUBLIC_TABLE, REGION
from cross_account import Settings
from moto import mock_aws


@pytest.fixture(autouse=True)
def aws_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set minimal AWS env vars required by boto3 and moto."""
    monkeypatch.setenv("AWS_REGION", REGION)
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.delenv("DYNAMODB_ENDPOINT", raising=False)


@pytest.fixture
def settings() -> Settings:
    return Settings(region=REGION, public_table=PUBLIC_TABLE, fallback_table=FALLBACK_TABLE)


@pytest.fixture
def mock_cw() -> MagicMock:
    """A MagicMock standing in for a boto3 CloudWatch client."""
    return MagicMock()


@pytest.fixture
def aws() -> Iterator[None]:
    with mock_aws():
        yield

"""tests/test_config.py — Settings defaults and environment parsing."""

from __future__ import annotations

import pytest
from cross_account import Settings


class TestDefaults:
    def test_empty_environment(self) -> None:
        settings = Settings.from_env({})
        assert settings.region == "us-east-1"
        assert settings.role_name_template == "account-admin-cross-account-role"
        assert settings.assume_role_duration == 3600
        assert settings.public_table == "account-admin-public-dev"
        assert settings.fallback_table == "account-admin-dev"
        assert settings.private_table_template == "tenant-{tenant_id}-private"
        assert settings.use_in_memory is False
        assert settings.skip_connection_test is False
        assert settings.dynamodb_endpoint is None

    def test_workspace_drives_shared_table_names(self) -> None:
        settings = Settings.from_env({"WORKSPACE": "prod"})
        assert settings.public_table == "account-admin-public-prod"
        assert settings.fallback_table == "account-admin-prod"

    def test_explicit_table_names_win_over_workspace(self) -> None:
        settings = Settings.from_env(
            {"WORKSPACE": "prod", "PUBLIC_TABLE_NAME": "shared", "FALLBACK_TABLE_NAME": "admin"}
        )
        assert (settings.public_table, settings.fallback_table) == ("shared", "admin")

    def test_reads_process_environment_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CROSS_ACCOUNT_ROLE_NAME", "tenant-{tenant_id}-role")
        monkeypatch.setenv("DYNAMODB_ENDPOINT", "http://localhost:8000")
        settings = Settings.from_env()
        assert settings.role_name_for("T1") == "tenant-T1-role"
        assert settings.dynamodb_endpoint == "http://localhost:8000"


class TestParsing:
    @pytest.mark.parametrize("raw", ["true", "TRUE", "1", "yes", " on "])
    def test_truthy_flags(self, raw: str) -> None:
        settings = Settings.from_env(
            {"USE_IN_MEMORY_DYNAMODB": raw, "SKIP_DYNAMODB_CONNECTION_TEST": raw}
        )
        assert settings.use_in_memory is True
        assert settings.skip_connection_test is True

    @pytest.mark.parametrize("raw", ["false", "0", "", "nope"])
    def test_falsy_flags(self, raw: str) -> None:
        assert Settings.from_env({"USE_IN_MEMORY_DYNAMODB": raw}).use_in_memory is False

    def test_duration(self) -> None:
        assert Settings.from_env({"ASSUME_ROLE_DURATION": "900"}).assume_role_duration == 900

    @pytest.mark.parametrize("raw", ["abc", "0", "-5"])
    def test_invalid_duration(self, raw: str) -> None:
        with pytest.raises(ValueError, match="ASSUME_ROLE_DURATION"):
            Settings.from_env({"ASSUME_ROLE_DURATION": raw})

    def test_private_template_requires_tenant_placeholder(self) -> None:
        with pytest.raises(ValueError, match="tenant_id"):
            Settings.from_env({"PRIVATE_TABLE_TEMPLATE": "static-private"})


class TestDerived:
    def test_private_table_for(self) -> None:
        assert Settings().private_table_for("T2") == "tenant-T2-private"

    def test_static_role_name(self) -> None:
        assert Settings().role_name_for("T2") == "account-admin-cross-account-role"

    @pytest.mark.parametrize(
        ("key", "secret", "expected"),
        [
            ("dummy_access_key", None, True),
            (None, "dummy_secret_key", True),  # pragma: allowlist secret
            ("AKIAEXAMPLE", "real", False),
            (None, None, False),
        ],
    )
    def test_dummy_credentials(self, key: str | None, secret: str | None, expected: bool) -> None:
        settings = Settings(access_key_id=key, secret_access_key=secret)
        assert settings.uses_dummy_credentials is expected

    def test_secret_not_in_repr(self) -> None:
        assert "hunter2" not in repr(Settings(secret_access_key="hunter2"))

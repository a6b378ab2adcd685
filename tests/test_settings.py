"""Tests for environment-driven configuration."""

import logging
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from pocket_ledger.audit import configure_logging
from pocket_ledger.config import get_settings, validate_all_settings
from pocket_ledger.config.settings import AppSettings, FirestoreSettings
from pocket_ledger.ledger import AccountLedger

USER_ID = "user-1"


class TestAppSettings:
    def test_defaults(self, monkeypatch):
        for name in ("DEFAULT_CURRENCY", "STORAGE_BACKEND", "CONFLICT_MAX_ATTEMPTS"):
            monkeypatch.delenv(name, raising=False)

        settings = AppSettings(_env_file=None)

        assert settings.default_currency == "USD"
        assert settings.storage_backend == "memory"
        assert settings.conflict_max_attempts == 5

    def test_currency_is_uppercased(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_CURRENCY", "eur")
        assert AppSettings(_env_file=None).default_currency == "EUR"

    def test_unknown_backend_rejected(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "sqlite")
        with pytest.raises(PydanticValidationError):
            AppSettings(_env_file=None)

    @pytest.mark.asyncio
    async def test_ledger_uses_configured_currency(self, monkeypatch, storage):
        monkeypatch.setenv("DEFAULT_CURRENCY", "gbp")

        account = await AccountLedger(storage).add_account(
            USER_ID, {"name": "Wallet", "type": "CASH"},
        )

        assert account.currency == "GBP"
        assert account.balance == Decimal("0")


class TestFirestoreSettings:
    def test_prefixed_environment(self, monkeypatch, tmp_path):
        credentials = tmp_path / "service-account.json"
        credentials.write_text("{}")
        monkeypatch.setenv("FIRESTORE_CREDENTIALS_PATH", str(credentials))
        monkeypatch.setenv("FIRESTORE_PROJECT_ID", "pocket-ledger-test")
        monkeypatch.setenv("FIRESTORE_MAX_ATTEMPTS", "3")

        settings = FirestoreSettings()

        assert settings.project_id == "pocket-ledger-test"
        assert settings.max_attempts == 3
        assert settings.audit_collection == "audit_log"

    def test_missing_credentials_file_only_warns(self, monkeypatch, tmp_path):
        monkeypatch.setenv("FIRESTORE_CREDENTIALS_PATH", str(tmp_path / "missing.json"))
        monkeypatch.setenv("FIRESTORE_PROJECT_ID", "pocket-ledger-test")

        with pytest.warns(UserWarning, match="credentials file not found"):
            FirestoreSettings()


class TestValidateAllSettings:
    def test_memory_setup_without_firestore(self, monkeypatch):
        for name in ("FIRESTORE_CREDENTIALS_PATH", "FIRESTORE_PROJECT_ID"):
            monkeypatch.delenv(name, raising=False)

        results = validate_all_settings()

        assert results["app"] is True
        assert results["firestore"] is False
        assert "project_id" in results["firestore_error"]

    def test_complete_firestore_setup(self, monkeypatch, tmp_path):
        credentials = tmp_path / "service-account.json"
        credentials.write_text("{}")
        monkeypatch.setenv("FIRESTORE_CREDENTIALS_PATH", str(credentials))
        monkeypatch.setenv("FIRESTORE_PROJECT_ID", "pocket-ledger-test")

        results = validate_all_settings()

        assert results == {"firestore": True, "app": True}


class TestLogging:
    def test_log_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("DEBUG_MODE", "false")

        assert configure_logging() == "WARNING"
        assert logging.getLogger().level == logging.WARNING

    def test_debug_mode_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        monkeypatch.setenv("DEBUG_MODE", "true")

        assert configure_logging() == "DEBUG"

    def test_settings_are_cached(self):
        assert get_settings() is get_settings()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

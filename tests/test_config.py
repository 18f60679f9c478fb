"""Tests for pydantic-settings configuration."""

import pytest

from splitledger.config import AppSettings, LedgerSettings, get_settings, validate_all_settings


class TestSettings:
    """Tests for environment-driven settings."""

    def test_ledger_defaults(self, monkeypatch):
        monkeypatch.delenv("LEDGER_CURRENCY_CODE", raising=False)
        settings = LedgerSettings()
        assert settings.currency_code == "USD"
        assert settings.minor_unit_digits == 2
        assert settings.split_tolerance_minor_units == 1

    def test_ledger_env_override(self, monkeypatch):
        monkeypatch.setenv("LEDGER_CURRENCY_CODE", "EUR")
        monkeypatch.setenv("LEDGER_MAX_GROUP_MEMBERS", "12")
        settings = LedgerSettings()
        assert settings.currency_code == "EUR"
        assert settings.max_group_members == 12

    def test_invalid_storage_backend_rejected(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "postgres")
        with pytest.raises(ValueError):
            AppSettings()

    def test_google_sheets_backend_flag(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "google_sheets")
        assert AppSettings().uses_google_sheets

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_validate_all_settings_reports_missing_sheets(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        results = validate_all_settings()

        assert results["ledger"] is True
        assert results["app"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results

"""Tests for configuration loading."""

import pytest

from workitems.config import AppSettings, GeminiSettings, validate_all_settings


class TestAppSettings:
    """Tests for application defaults and derived values."""

    def test_defaults(self, monkeypatch):
        """Test the table and promotion defaults."""
        for name in ("NEW_ROW_LABEL", "DEFAULT_CONTRACTOR", "DEFAULT_DURATION_DAYS"):
            monkeypatch.delenv(name, raising=False)

        settings = AppSettings(_env_file=None)

        assert settings.new_row_label == "new item"
        assert settings.default_contractor == "Our Company"
        assert settings.default_duration_days == 30

    def test_supported_types_list(self):
        """Test the MIME list is split, trimmed and lowercased."""
        settings = AppSettings(
            _env_file=None,
            supported_document_types=" application/PDF , image/png,,",
        )
        assert settings.supported_types_list == ["application/pdf", "image/png"]

    def test_max_upload_size_bytes(self):
        """Test the MB limit is converted to bytes."""
        settings = AppSettings(_env_file=None, max_upload_size_mb=2)
        assert settings.max_upload_size_bytes == 2 * 1024 * 1024

    def test_env_override(self, monkeypatch):
        """Test environment variables take effect."""
        monkeypatch.setenv("NEW_ROW_LABEL", "新項目")
        assert AppSettings(_env_file=None).new_row_label == "新項目"


class TestValidateAllSettings:
    """Tests for the configuration report."""

    def test_missing_gemini_key_reported(self, monkeypatch, tmp_path):
        """Test a missing API key marks only Gemini as unconfigured."""
        monkeypatch.chdir(tmp_path)  # no .env here
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)

        status = validate_all_settings()

        assert status["gemini"] is False
        assert "gemini_error" in status
        assert status["app"] is True

    def test_gemini_settings_from_env(self, monkeypatch, tmp_path):
        """Test Gemini settings load with their prefix."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        monkeypatch.setenv("GEMINI_TEMPERATURE", "0.3")

        settings = GeminiSettings()

        assert settings.api_key == "test-key"
        assert settings.temperature == 0.3
        assert settings.model_name == "gemini-1.5-flash"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""Tests for environment-driven configuration and logging setup."""
import logging
import os

from core.config import Settings, get_env_var
from core.utils.logger import setup_logging


class TestSettings:
    def test_empty_values_use_defaults(self, monkeypatch):
        monkeypatch.setenv("GENERATION_MODEL", "   ")
        assert get_env_var("GENERATION_MODEL", "fallback") == "fallback"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STORAGE_DIR", "/data")
        monkeypatch.setenv("TEMPLATE_STORE", "SUPABASE")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
        monkeypatch.delenv("SUPABASE_KEY", raising=False)
        monkeypatch.setenv("MAX_TOOL_ITERATIONS", "5")
        monkeypatch.setenv("CORS_ORIGINS", "http://localhost:3000, https://app.example.com")
        monkeypatch.setenv("TEXT_GENERATION_PROVIDER", "Local")

        settings = Settings.from_env()

        assert settings.templates_file == os.path.join("/data", "templates.json")
        assert settings.template_store == "supabase"
        assert settings.supabase_key == "anon"
        assert settings.max_tool_iterations == 5
        assert settings.cors_origins == ["http://localhost:3000", "https://app.example.com"]
        assert settings.text_generation_provider == "local"

    def test_defaults(self):
        settings = Settings()
        assert settings.template_store == "json"
        assert settings.max_tool_iterations == 3
        assert settings.cors_origins == ["*"]


class TestLogging:
    def test_file_handler_written_to_log_dir(self, tmp_path):
        setup_logging("debug", str(tmp_path / "logs"))
        try:
            root = logging.getLogger()
            assert root.level == logging.DEBUG
            assert any(isinstance(handler, logging.FileHandler) for handler in root.handlers)
            assert len(os.listdir(tmp_path / "logs")) == 1
        finally:
            setup_logging("WARNING")

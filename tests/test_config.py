"""
Tests for environment-driven engine settings.
"""

from contrast_boundary.core.config import EngineSettings, get_settings


class TestEngineSettings:
    def test_defaults(self, monkeypatch):
        for name in ("THROTTLE_DELAY_MS", "CALCULATION_TIMEOUT_MS", "READY_TIMEOUT_S", "LOG_LEVEL"):
            monkeypatch.delenv(f"CONTRAST_BOUNDARY_{name}", raising=False)
        settings = EngineSettings(_env_file=None)
        assert settings.throttle_delay_s == 0.1
        assert settings.calculation_timeout_s == 2.0
        assert settings.ready_timeout_s == 5.0
        assert settings.log_level == "INFO"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("CONTRAST_BOUNDARY_THROTTLE_DELAY_MS", "250")
        monkeypatch.setenv("CONTRAST_BOUNDARY_LOG_LEVEL", "DEBUG")
        settings = EngineSettings(_env_file=None)
        assert settings.throttle_delay_s == 0.25
        assert settings.log_level == "DEBUG"

    def test_cached(self):
        assert get_settings() is get_settings()

"""
Engine configuration using Pydantic Settings.

Values come from environment variables prefixed with ``CONTRAST_BOUNDARY_``
(or a local ``.env`` file) and fall back to the defaults below.
"""

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class EngineSettings(BaseSettings):
    """Timing and logging knobs for the boundary engine and its HTTP service."""

    model_config = SettingsConfigDict(
        env_prefix="CONTRAST_BOUNDARY_",
        env_file=".env",
        extra="ignore",
    )

    throttle_delay_ms: int = Field(default=100, ge=0, description="Minimum gap between dispatched computations")
    calculation_timeout_ms: int = Field(default=2000, gt=0, description="In-flight computation timeout")
    ready_timeout_s: float = Field(default=5.0, gt=0, description="How long startup waits for the worker")
    log_level: str = Field(default="INFO", description="Root log level")

    @property
    def throttle_delay_s(self) -> float:
        return self.throttle_delay_ms / 1000.0

    @property
    def calculation_timeout_s(self) -> float:
        return self.calculation_timeout_ms / 1000.0


@lru_cache()
def get_settings() -> EngineSettings:
    return EngineSettings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)

"""
Connector configuration using Pydantic Settings.
All configuration is loaded from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Connector settings loaded from environment variables.

    Per-run inputs (management URL, asset id, credentials) are not settings;
    they arrive with each workflow invocation. Settings only tune how the
    connector talks to the management API.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Core Settings
    # ==========================================================================
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # ==========================================================================
    # EDC Management API
    # ==========================================================================
    edc_http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-call timeout for management API and data-plane requests",
    )
    edc_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Fixed sleep between negotiation/transfer state polls",
    )
    edc_dsp_path: str = Field(
        default="/api/dsp",
        description="Path appended to the provider URL to form the DSP counter-party address",
    )
    edc_protocol: str = Field(default="dataspace-protocol-http")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached connector settings.

    Using lru_cache ensures settings are loaded once and reused,
    avoiding repeated environment variable parsing.
    """
    return Settings()

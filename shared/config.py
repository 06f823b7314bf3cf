"""
Type-safe configuration for Stepflow using Pydantic Settings.

This module provides a centralized, type-safe configuration system
that loads from environment variables and .env files.

Usage:
    from shared.config import config

    if config.is_composio_configured:
        ...
"""
import json
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class StepflowConfig(BaseSettings):
    """
    Central configuration for Stepflow.

    All configuration is loaded from environment variables or .env file.
    Provides type safety and validation at startup.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ============================================================================
    # Composio Integration
    # ============================================================================

    composio_api_key: Optional[str] = Field(default=None, description="Composio API key used for tool execution and connected accounts")
    composio_base_url: str = Field(default="https://backend.composio.dev", description="Composio REST API base URL")
    composio_timeout_seconds: float = Field(default=30.0, description="HTTP timeout for Composio requests")

    # ============================================================================
    # Workflow Compiler
    # ============================================================================

    no_auth_toolkit_slugs: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["browser_tool"],
        description="Toolkits that run without an authorized account and never count as required connections",
    )

    # ============================================================================
    # Logging
    # ============================================================================

    log_level: str = Field(default="INFO", description="Log level for console loggers (DEBUG, INFO, WARNING, ...)")

    @field_validator("no_auth_toolkit_slugs", mode="before")
    @classmethod
    def _split_slugs(cls, value):
        # NO_AUTH_TOOLKIT_SLUGS accepts a JSON list or browser_tool,weather
        if isinstance(value, str):
            if value.strip().startswith("["):
                return json.loads(value)
            return [slug.strip() for slug in value.split(",") if slug.strip()]
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()

    @property
    def is_composio_configured(self) -> bool:
        """Check if the Composio API key is set."""
        return bool(self.composio_api_key)


# ============================================================================
# Global Config Instance
# ============================================================================

config = StepflowConfig()

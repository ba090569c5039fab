from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .contracts import BackoffStrategy


class RetryDefaults(BaseModel):
    """Backoff used by steps that do not declare their own retry policy."""

    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    base_delay_ms: int = Field(default=100, ge=0)
    jitter_ms: float = Field(default=0.0, ge=0)


class EngineConfig(BaseModel):
    """Execution engine settings."""

    default_timeout_ms: int = Field(default=300_000, gt=0)
    persistence_enabled: bool = True
    persistence_timeout_ms: int = Field(default=5_000, gt=0)
    retry: RetryDefaults = Field(default_factory=RetryDefaults)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}


class FlowplaneConfig(BaseModel):
    """Top-level configuration model."""

    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> FlowplaneConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FLOWPLANE_CONFIG env
            variable or 'flowplane.yaml' in the current directory.
    """

    config_path = path or os.getenv("FLOWPLANE_CONFIG", "flowplane.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = FlowplaneConfig(**data)
    else:
        config = FlowplaneConfig()

    env_db_url = os.getenv("FLOWPLANE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_level = os.getenv("FLOWPLANE_LOG_LEVEL")
    if env_level:
        config.logging.level = env_level
    return config

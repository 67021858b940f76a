from __future__ import annotations

import os
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_STAGE_NAMES


class WorkflowDefaults(BaseModel):
    """Defaults applied when a create request leaves values out."""

    default_wait_hours: float = 24.0
    stage_names: List[str] = Field(default_factory=lambda: list(DEFAULT_STAGE_NAMES))


class EffectsConfig(BaseModel):
    """Settings for the simulated side effects."""

    simulated_delay_seconds: float = 0.0


class TidyflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    workflow: WorkflowDefaults = WorkflowDefaults()
    effects: EffectsConfig = EffectsConfig()


def load_config(path: Optional[str] = None) -> TidyflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TIDYFLOW_CONFIG env
            variable or 'tidyflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("TIDYFLOW_CONFIG", "tidyflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = TidyflowConfig(**data)
    else:
        config = TidyflowConfig()

    env_db_url = os.getenv("TIDYFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_log_level = os.getenv("TIDYFLOW_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level.upper()
    return config

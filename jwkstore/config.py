from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


class JwkStoreConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    migrations_dir: Optional[str] = None
    operation_timeout: Optional[float] = Field(default=None, gt=0)
    on_corrupt: Literal["raise", "skip"] = "raise"
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> JwkStoreConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to JWKSTORE_CONFIG env
            variable or 'jwkstore.yaml' in the current directory.
    """

    config_path = path or os.getenv("JWKSTORE_CONFIG", "jwkstore.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = JwkStoreConfig(**data)
    else:
        config = JwkStoreConfig()

    env_db_url = os.getenv("JWKSTORE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config

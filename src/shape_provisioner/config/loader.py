"""YAML deployment file loader."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML

from shape_provisioner.config.schema import Config, Settings

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised for configuration loading / validation errors."""


_ENV_PREFIX = "SHAPE_"


def _resolve_settings(raw_settings: dict[str, Any], config_dir: Path) -> dict[str, Any]:
    """Resolve settings fields from YAML, env vars, and ``.env`` file.

    Priority (highest wins): YAML value > env var > ``.env`` file.
    """
    env_file = config_dir / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    unknown = sorted(set(raw_settings) - set(Settings.model_fields))
    if unknown:
        raise ConfigError(f"Unknown settings: {', '.join(unknown)}")

    resolved: dict[str, Any] = {}
    for field in Settings.model_fields:
        env_key = f"{_ENV_PREFIX}{field.upper()}"
        val = raw_settings.get(field)
        if val is None:
            val = os.environ.get(env_key)
        if val is None:
            val = dotenv_vals.get(env_key)
        if val is not None:
            resolved[field] = val
    return resolved


def load_config(path: Path | str) -> Config:
    """Load a YAML deployment file and return a ``Config`` object.

    Raises:
        ConfigError: On YAML parse errors, missing sections, or validation failures.
    """
    path = Path(path)

    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    try:
        raw["settings"] = Settings.model_validate(
            _resolve_settings(raw.get("settings") or {}, path.parent)
        )
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    config.config_dir = path.parent

    logger.info("Loaded config from %s (%d resources)", path, len(config.resources))
    return config

"""Workflow config loading and write-back.

- :func:`load_config` — parse a workflow YAML into a :class:`ConfigFile`
- :func:`write_config` — serialize a :class:`ConfigFile` back to YAML
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from emrc_workflow.config.models import ConfigFile

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/emrc_workflow.yaml"


def load_config(path: str | Path) -> ConfigFile:
    """Load a workflow config file.

    A missing file yields the defaults.  Raises
    :class:`pydantic.ValidationError` on malformed content and
    :class:`yaml.YAMLError` on unparsable YAML.
    """
    path = Path(path)
    raw: Dict[str, Any] = {}
    if path.exists():
        with open(path, encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    else:
        logger.info("Config %s not found; using defaults.", path)

    if not isinstance(raw, dict):
        raise ValueError(f"Config {path} must contain a mapping at the top level")

    return ConfigFile.model_validate({"workflow": raw.get("workflow") or {}})


def write_config(cfg: ConfigFile, path: str | Path) -> Path:
    """Serialize *cfg* to YAML at *path* and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = cfg.model_dump(mode="json")
    with open(path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=False)
    return path

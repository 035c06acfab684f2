"""Persistent storage for preflight reports and deployment records.

Writes JSON to ``~/.config/emrc-workflow/`` (XDG_CONFIG_HOME / emrc-workflow).

File naming::

    preflight_<stack>_<run_id>.json
    deploy_<stack>_<run_id>.json

All JSON is serialised with **sorted keys** for deterministic, diff-friendly output.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from emrc_workflow.state.models import DeploymentRecord, PreflightReport

logger = logging.getLogger(__name__)

_APP_DIR = "emrc-workflow"


def config_dir() -> Path:
    """Return the XDG config directory, creating it if needed."""
    base = os.environ.get("XDG_CONFIG_HOME", "")
    if not base:
        base = str(Path.home() / ".config")
    path = Path(base) / _APP_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path


def _safe_stack_name(name: Optional[str]) -> str:
    """Sanitise a stack name for use in a filename."""
    if not name:
        return "unknown"
    return "".join(c if (c.isalnum() or c in "-_") else "_" for c in name)


def write_preflight_report(
    report: PreflightReport,
    *,
    directory: Optional[Path] = None,
) -> Path:
    """Persist *report* and return the written path."""
    stack = _safe_stack_name(report.stack_name)
    dest = (directory or config_dir()) / f"preflight_{stack}_{report.run_id}.json"
    dest.write_text(report.to_sorted_json() + "\n", encoding="utf-8")
    logger.info("Preflight report written to %s", dest)
    return dest


def write_deployment_record(
    record: DeploymentRecord,
    *,
    directory: Optional[Path] = None,
) -> Path:
    """Persist *record* and return the written path."""
    stack = _safe_stack_name(record.stack_name)
    dest = (directory or config_dir()) / f"deploy_{stack}_{record.run_id}.json"
    dest.write_text(record.to_sorted_json() + "\n", encoding="utf-8")
    logger.info("Deployment record written to %s", dest)
    return dest


def load_deployment_record(path: str | Path) -> DeploymentRecord:
    """Load a record written by :func:`write_deployment_record`."""
    p = Path(path)
    return DeploymentRecord.model_validate_json(p.read_text(encoding="utf-8"))


def latest_deployment_record(
    stack_name: str,
    *,
    directory: Optional[Path] = None,
) -> Optional[Path]:
    """Return the newest deploy record for *stack_name*, or ``None``.

    Run ids are ``YYYYMMDDHHMMSS`` so lexical order is chronological.
    """
    stack = _safe_stack_name(stack_name)
    matches = sorted((directory or config_dir()).glob(f"deploy_{stack}_*.json"))
    return matches[-1] if matches else None

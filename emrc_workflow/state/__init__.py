"""Preflight reports, deployment records, and their persistence."""

from emrc_workflow.state.models import (
    CheckResult,
    CheckStatus,
    DeploymentRecord,
    PreflightReport,
)
from emrc_workflow.state.store import (
    config_dir,
    latest_deployment_record,
    load_deployment_record,
    write_deployment_record,
    write_preflight_report,
)

__all__ = [
    "CheckResult",
    "CheckStatus",
    "DeploymentRecord",
    "PreflightReport",
    "config_dir",
    "latest_deployment_record",
    "load_deployment_record",
    "write_deployment_record",
    "write_preflight_report",
]

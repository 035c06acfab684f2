"""Preflight report and deployment record models.

Preflight report JSON shape::

    {
      "run_id": "YYYYMMDDHHMMSS",
      "stack_name": "aws-stepfunctions-tasks-emr-containers-all-services-test",
      "region": "us-west-2",
      "aws_profile": "profile",
      "account_id": "123456789012",
      "caller_arn": "arn:aws:iam::...:user/...",
      "checks": [
        {
          "id": "eks.cluster",
          "status": "PASS|WARN|FAIL",
          "details": { ... },
          "remediation": "string"
        }
      ]
    }
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _utc_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")


# ---------------------------------------------------------------------------
# CheckStatus enum
# ---------------------------------------------------------------------------


class CheckStatus(str, Enum):
    """Outcome of a single preflight check."""

    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


# ---------------------------------------------------------------------------
# CheckResult
# ---------------------------------------------------------------------------


class CheckResult(BaseModel):
    """A single preflight check result.

    Attributes:
        id: Dotted identifier, e.g. ``eks.cluster`` or ``cfn.stack_status``.
        status: PASS, WARN, or FAIL.
        details: Arbitrary structured data (cluster status, versions, etc.).
        remediation: Human-readable fix suggestion.  Empty when status is PASS.
    """

    id: str
    status: CheckStatus
    details: Dict[str, Any] = Field(default_factory=dict)
    remediation: str = ""


# ---------------------------------------------------------------------------
# PreflightReport
# ---------------------------------------------------------------------------


class PreflightReport(BaseModel):
    """Preflight report written before a deployment touches CloudFormation."""

    run_id: str = Field(default_factory=_utc_run_id)
    stack_name: Optional[str] = None
    region: str = ""
    aws_profile: str = ""
    account_id: str = ""
    caller_arn: str = ""
    checks: List[CheckResult] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        """True when **no** check has FAIL status."""
        return not any(c.status == CheckStatus.FAIL for c in self.checks)

    @property
    def has_warnings(self) -> bool:
        return any(c.status == CheckStatus.WARN for c in self.checks)

    @property
    def failed_checks(self) -> List[CheckResult]:
        return [c for c in self.checks if c.status == CheckStatus.FAIL]

    @property
    def warned_checks(self) -> List[CheckResult]:
        return [c for c in self.checks if c.status == CheckStatus.WARN]

    def to_sorted_json(self, indent: int = 2) -> str:
        """Serialise with sorted keys for deterministic output."""
        return json.dumps(
            self.model_dump(mode="json"),
            indent=indent,
            sort_keys=True,
        )


# ---------------------------------------------------------------------------
# DeploymentRecord: persisted per successful deploy
# ---------------------------------------------------------------------------


class DeploymentRecord(BaseModel):
    """Per-deploy snapshot written to ``<config_dir>/deploy_<stack>_<ts>.json``.

    Holds everything ``start`` and ``status`` need to find the deployed
    state machine again without re-synthesizing the app.
    """

    run_id: str = Field(default_factory=_utc_run_id)
    stack_name: Optional[str] = None
    region: str = ""
    aws_profile: str = ""
    account_id: str = ""

    eks_cluster_name: str = ""
    state_machine_arn: str = ""
    stack_status: str = ""
    outputs: Dict[str, str] = Field(default_factory=dict)

    template_path: str = ""
    preflight_report_path: str = ""

    last_execution_arn: str = ""

    def to_sorted_json(self, indent: int = 2) -> str:
        """Serialise with sorted keys for deterministic output."""
        return json.dumps(
            self.model_dump(mode="json"),
            indent=indent,
            sort_keys=True,
        )

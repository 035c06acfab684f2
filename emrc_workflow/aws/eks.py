"""EKS cluster checks.

The workflow creates its virtual cluster on an EKS cluster that is
provisioned elsewhere.  Before deploying, preflight confirms the cluster
the stack imports is there, ``ACTIVE``, and on the declared Kubernetes
version.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from emrc_workflow.state.models import CheckResult, CheckStatus, PreflightReport

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "ACTIVE"


def describe_cluster(eks_client: Any, cluster_name: str) -> Optional[Dict[str, Any]]:
    """Return the ``cluster`` block of ``DescribeCluster``, or ``None`` if absent."""
    try:
        resp = eks_client.describe_cluster(name=cluster_name)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code", "")
        if code == "ResourceNotFoundException":
            return None
        raise
    return resp.get("cluster") or None


def check_eks_cluster(
    eks_client: Any,
    cluster_name: str,
    version: Optional[str] = None,
) -> CheckResult:
    """Compare the live cluster against the declared name and Kubernetes *version*.

    A version mismatch is a WARN; a missing or inactive cluster is a FAIL.
    """
    check_id = "eks.cluster"
    try:
        live = describe_cluster(eks_client, cluster_name)
    except (BotoCoreError, ClientError) as exc:
        return CheckResult(
            id=check_id,
            status=CheckStatus.FAIL,
            details={"cluster_name": cluster_name, "error": str(exc)},
            remediation="Could not describe the EKS cluster; check eks:DescribeCluster permission.",
        )

    if live is None:
        return CheckResult(
            id=check_id,
            status=CheckStatus.FAIL,
            details={"cluster_name": cluster_name},
            remediation=(
                f"EKS cluster '{cluster_name}' does not exist. Create it "
                "and enable EMR on EKS access before deploying."
            ),
        )

    details = {
        "cluster_name": cluster_name,
        "status": live.get("status", ""),
        "version": live.get("version", ""),
        "declared_version": version,
    }
    if live.get("status") != STATUS_ACTIVE:
        return CheckResult(
            id=check_id,
            status=CheckStatus.FAIL,
            details=details,
            remediation=(
                f"EKS cluster '{cluster_name}' is {live.get('status')}; "
                f"wait until it is {STATUS_ACTIVE}."
            ),
        )
    if version is not None and live.get("version") != version:
        return CheckResult(
            id=check_id,
            status=CheckStatus.WARN,
            details=details,
            remediation=(
                f"EKS cluster runs Kubernetes {live.get('version')} but "
                f"{version} is declared; update the config or the cluster."
            ),
        )
    return CheckResult(id=check_id, status=CheckStatus.PASS, details=details)


def make_eks_preflight_step(
    eks_client: Any,
    cluster_name: str,
    version: Optional[str] = None,
) -> Callable[[PreflightReport], PreflightReport]:
    """Return a preflight step appending :func:`check_eks_cluster`'s result."""

    def step(report: PreflightReport) -> PreflightReport:
        result = check_eks_cluster(eks_client, cluster_name, version)
        logger.debug("eks.cluster -> %s", result.status.value)
        report.checks.append(result)
        return report

    return step

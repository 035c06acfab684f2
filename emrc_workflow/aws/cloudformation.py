"""CloudFormation deployment of a synthesized stack.

:func:`deploy_stack` is idempotent: a missing stack is created, a
complete one is updated (a no-op update is not an error), and one that
is mid-operation is waited on first.

The ``rollback`` flag maps to ``DisableRollback``: with ``rollback=True``
(the integration-test default) a failed deploy returns the stack to its
previous state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from botocore.exceptions import ClientError, WaiterError

from emrc_workflow.state.models import CheckResult, CheckStatus, PreflightReport

logger = logging.getLogger(__name__)

CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM"]

#: Stack statuses that mean "done, safe to update".
COMPLETE_STATUSES = frozenset({
    "CREATE_COMPLETE",
    "UPDATE_COMPLETE",
    "UPDATE_ROLLBACK_COMPLETE",
    "IMPORT_COMPLETE",
})

#: Stack statuses that are actively in progress, keyed to the waiter that ends them.
IN_PROGRESS_WAITERS: Dict[str, str] = {
    "CREATE_IN_PROGRESS": "stack_create_complete",
    "UPDATE_IN_PROGRESS": "stack_update_complete",
    "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS": "stack_update_complete",
    "UPDATE_ROLLBACK_IN_PROGRESS": "stack_rollback_complete",
    "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS": "stack_rollback_complete",
    "ROLLBACK_IN_PROGRESS": "stack_rollback_complete",
    "DELETE_IN_PROGRESS": "stack_delete_complete",
}

#: Stack statuses a deploy cannot recover from without deleting the stack.
FAILED_STATUSES = frozenset({
    "CREATE_FAILED",
    "ROLLBACK_COMPLETE",
    "ROLLBACK_FAILED",
    "DELETE_FAILED",
    "UPDATE_ROLLBACK_FAILED",
})

_NO_UPDATES = "No updates are to be performed"


@dataclass
class DeployResult:
    """Outcome of :func:`deploy_stack`."""

    stack_name: str
    operation: str
    status: Optional[str]
    outputs: Dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# describe / outputs
# ---------------------------------------------------------------------------


def describe_stack_status(cfn_client: Any, stack_name: str) -> Optional[str]:
    """Return the StackStatus string, or None if the stack doesn't exist."""
    try:
        resp = cfn_client.describe_stacks(StackName=stack_name)
    except ClientError as exc:
        if "does not exist" in str(exc):
            return None
        raise
    stacks = resp.get("Stacks", [])
    if not stacks:
        return None
    status = stacks[0].get("StackStatus")
    # A deleted stack is only visible by id; by name it is gone.
    return None if status == "DELETE_COMPLETE" else status


def get_stack_outputs(cfn_client: Any, stack_name: str) -> Dict[str, str]:
    """Return ``{OutputKey: OutputValue}`` for *stack_name*."""
    resp = cfn_client.describe_stacks(StackName=stack_name)
    stacks = resp.get("Stacks", [])
    if not stacks:
        return {}
    return {
        o["OutputKey"]: o["OutputValue"]
        for o in stacks[0].get("Outputs", [])
    }


def _wait(cfn_client: Any, waiter_name: str, stack_name: str) -> None:
    waiter = cfn_client.get_waiter(waiter_name)
    try:
        waiter.wait(StackName=stack_name)
    except WaiterError as exc:
        final_status = describe_stack_status(cfn_client, stack_name)
        raise RuntimeError(
            f"CFN stack {stack_name} did not settle (status={final_status}): {exc}"
        ) from exc


# ---------------------------------------------------------------------------
# deploy / destroy
# ---------------------------------------------------------------------------


def deploy_stack(
    cfn_client: Any,
    stack_name: str,
    template_body: str,
    *,
    rollback: bool = True,
) -> DeployResult:
    """Create or update *stack_name* from *template_body* and wait for it.

    Raises:
        RuntimeError: If the stack is in an unrecoverable state or the
            operation does not finish in a ``*_COMPLETE`` state.
    """
    status = describe_stack_status(cfn_client, stack_name)

    if status in IN_PROGRESS_WAITERS:
        logger.info("Stack %s is %s — waiting before deploying.", stack_name, status)
        _wait(cfn_client, IN_PROGRESS_WAITERS[status], stack_name)
        status = describe_stack_status(cfn_client, stack_name)

    if status in FAILED_STATUSES:
        raise RuntimeError(
            f"CFN stack {stack_name} is {status}; delete it before deploying again"
        )

    if status is None:
        logger.info("Creating CFN stack %s (rollback=%s) ...", stack_name, rollback)
        cfn_client.create_stack(
            StackName=stack_name,
            TemplateBody=template_body,
            Capabilities=CAPABILITIES,
            DisableRollback=not rollback,
        )
        _wait(cfn_client, "stack_create_complete", stack_name)
        operation = "CREATE"
    else:
        logger.info("Updating CFN stack %s (rollback=%s) ...", stack_name, rollback)
        try:
            cfn_client.update_stack(
                StackName=stack_name,
                TemplateBody=template_body,
                Capabilities=CAPABILITIES,
                DisableRollback=not rollback,
            )
        except ClientError as exc:
            if _NO_UPDATES not in str(exc):
                raise RuntimeError(
                    f"CFN stack {stack_name} update failed: {exc}"
                ) from exc
            logger.info("Stack %s is already up to date.", stack_name)
            operation = "NOOP"
        else:
            _wait(cfn_client, "stack_update_complete", stack_name)
            operation = "UPDATE"

    final_status = describe_stack_status(cfn_client, stack_name)
    if final_status not in COMPLETE_STATUSES:
        raise RuntimeError(
            f"CFN stack {stack_name} ended in unexpected status: {final_status}"
        )

    logger.info("Stack %s %s succeeded (%s).", stack_name, operation, final_status)
    return DeployResult(
        stack_name=stack_name,
        operation=operation,
        status=final_status,
        outputs=get_stack_outputs(cfn_client, stack_name),
    )


def destroy_stack(cfn_client: Any, stack_name: str) -> bool:
    """Delete *stack_name* and wait.  Returns ``False`` if it did not exist."""
    if describe_stack_status(cfn_client, stack_name) is None:
        logger.info("Stack %s does not exist — nothing to destroy.", stack_name)
        return False
    cfn_client.delete_stack(StackName=stack_name)
    _wait(cfn_client, "stack_delete_complete", stack_name)
    logger.info("Stack %s deleted.", stack_name)
    return True


# ---------------------------------------------------------------------------
# Preflight step factory
# ---------------------------------------------------------------------------


def make_stack_preflight_step(
    cfn_client: Any,
    stack_name: str,
) -> Callable[[PreflightReport], PreflightReport]:
    """Return a preflight step that checks the stack can be deployed.

    - PASS if the stack is absent or complete.
    - WARN if an operation is in progress (deploy will wait for it).
    - FAIL if the stack needs deleting first, or cannot be described.
    """

    def step(report: PreflightReport) -> PreflightReport:
        check_id = "cfn.stack_status"
        try:
            status = describe_stack_status(cfn_client, stack_name)
        except ClientError as exc:
            report.checks.append(
                CheckResult(
                    id=check_id,
                    status=CheckStatus.FAIL,
                    details={"stack_name": stack_name, "error": str(exc)},
                    remediation="Could not describe the stack; check cloudformation permissions.",
                )
            )
            return report

        details = {"stack_name": stack_name, "status": status or "ABSENT"}
        if status in FAILED_STATUSES:
            report.checks.append(
                CheckResult(
                    id=check_id,
                    status=CheckStatus.FAIL,
                    details=details,
                    remediation=f"Stack is {status}; run 'emrc-workflow destroy' first.",
                )
            )
        elif status in IN_PROGRESS_WAITERS:
            report.checks.append(
                CheckResult(
                    id=check_id,
                    status=CheckStatus.WARN,
                    details=details,
                    remediation=f"Stack is {status}; deploy will wait for it to finish.",
                )
            )
        else:
            report.checks.append(
                CheckResult(id=check_id, status=CheckStatus.PASS, details=details)
            )
        return report

    return step

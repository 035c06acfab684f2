"""Start and watch state machine executions.

Thin helpers over the Step Functions ``StartExecution`` and
``DescribeExecution`` APIs plus a polling loop in the style of the
cluster-creation monitor: poll until the execution leaves ``RUNNING``,
tolerate a bounded number of consecutive describe failures.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

STATUS_RUNNING = "RUNNING"
STATUS_SUCCEEDED = "SUCCEEDED"
STATUS_PENDING_REDRIVE = "PENDING_REDRIVE"
TERMINAL_STATUSES = frozenset({
    "SUCCEEDED", "FAILED", "TIMED_OUT", "ABORTED", STATUS_PENDING_REDRIVE,
})

PENDING_REDRIVE_MESSAGE = (
    "Execution stopped unsuccessfully and is pending redrive; "
    "redrive it or start a new execution"
)

#: Maximum consecutive describe failures before giving up.
MAX_CONSECUTIVE_FAILURES: int = 5

#: Default seconds between status polls.
DEFAULT_POLL_INTERVAL: float = 15.0


@dataclass
class ExecutionResult:
    """Outcome of :func:`wait_for_execution`."""

    execution_arn: str
    final_status: Optional[str]
    elapsed_seconds: float
    success: bool
    consecutive_failures: int = 0
    output: Optional[Any] = None
    error: str = ""
    cause: str = ""


def start_execution(
    sfn_client: Any,
    state_machine_arn: str,
    *,
    execution_input: Optional[Dict[str, Any]] = None,
    name: Optional[str] = None,
) -> str:
    """Start an execution and return its ARN.

    Raises :class:`RuntimeError` when the API call fails.
    """
    kwargs: Dict[str, Any] = {
        "stateMachineArn": state_machine_arn,
        "input": json.dumps(execution_input or {}),
    }
    if name:
        kwargs["name"] = name
    try:
        resp = sfn_client.start_execution(**kwargs)
    except (BotoCoreError, ClientError) as exc:
        raise RuntimeError(
            f"Could not start execution of {state_machine_arn}: {exc}"
        ) from exc
    arn = resp["executionArn"]
    logger.info("Started execution %s", arn)
    return arn


def describe_execution(sfn_client: Any, execution_arn: str) -> Optional[Dict[str, Any]]:
    """Return the ``DescribeExecution`` response, or ``None`` on failure."""
    try:
        return sfn_client.describe_execution(executionArn=execution_arn)
    except (BotoCoreError, ClientError) as exc:
        logger.warning("describe_execution failed for %s: %s", execution_arn, exc)
        return None


def _parse_output(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return raw


def failure_message(desc: Dict[str, Any]) -> str:
    """Error text for a finished execution described by *desc*."""
    error = desc.get("error", "")
    if desc.get("status") == STATUS_PENDING_REDRIVE:
        if error:
            return f"{PENDING_REDRIVE_MESSAGE} (last error: {error})"
        return PENDING_REDRIVE_MESSAGE
    return error


def wait_for_execution(
    sfn_client: Any,
    execution_arn: str,
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    max_failures: int = MAX_CONSECUTIVE_FAILURES,
    _sleep_fn: Any = None,
) -> ExecutionResult:
    """Block until *execution_arn* reaches a terminal status.

    * ``RUNNING`` keeps polling.
    * ``SUCCEEDED`` → success, with the parsed execution output.
    * ``FAILED`` / ``TIMED_OUT`` / ``ABORTED`` → failure with error/cause.
    * ``PENDING_REDRIVE`` → failure; the execution will not move again
      unless someone redrives it.
    * A failed describe increments the consecutive-failure counter; the
      loop aborts after *max_failures* in a row.

    The *_sleep_fn* parameter is for test injection (avoids real sleeps).
    """
    sleep = _sleep_fn or time.sleep
    start = time.time()
    consecutive_failures = 0

    while True:
        desc = describe_execution(sfn_client, execution_arn)

        if desc is None:
            consecutive_failures += 1
            if consecutive_failures >= max_failures:
                return ExecutionResult(
                    execution_arn=execution_arn,
                    final_status=None,
                    elapsed_seconds=time.time() - start,
                    success=False,
                    consecutive_failures=consecutive_failures,
                    error=(
                        f"Describe failed {consecutive_failures} "
                        "consecutive times. Aborting."
                    ),
                )
            sleep(poll_interval)
            continue

        consecutive_failures = 0
        status = desc.get("status")

        if status == STATUS_RUNNING:
            logger.info(
                "Execution %s still running (%.0fs elapsed)",
                execution_arn,
                time.time() - start,
            )
            sleep(poll_interval)
            continue

        if status in TERMINAL_STATUSES:
            return ExecutionResult(
                execution_arn=execution_arn,
                final_status=status,
                elapsed_seconds=time.time() - start,
                success=status == STATUS_SUCCEEDED,
                output=_parse_output(desc.get("output")),
                error=failure_message(desc),
                cause=desc.get("cause", ""),
            )

        return ExecutionResult(
            execution_arn=execution_arn,
            final_status=status,
            elapsed_seconds=time.time() - start,
            success=False,
            error=f"Execution entered unexpected status: {status}",
        )

"""Tests for emrc_workflow.aws.stepfunctions — start and watch executions."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from emrc_workflow.aws.stepfunctions import (
    DEFAULT_POLL_INTERVAL,
    MAX_CONSECUTIVE_FAILURES,
    PENDING_REDRIVE_MESSAGE,
    ExecutionResult,
    describe_execution,
    failure_message,
    start_execution,
    wait_for_execution,
)

SM_ARN = "arn:aws:states:us-east-1:123456789012:stateMachine:StateMachine"
EXEC_ARN = "arn:aws:states:us-east-1:123456789012:execution:StateMachine:run-1"


# ── helpers ──────────────────────────────────────────────────────────


def _noop_sleep(_: float) -> None:
    """Replacement for time.sleep in tests."""


def _error() -> ClientError:
    return ClientError({"Error": {"Code": "Throttling", "Message": "slow down"}}, "DescribeExecution")


# ── constants / result ───────────────────────────────────────────────


class TestConstants:
    def test_max_failures(self):
        assert MAX_CONSECUTIVE_FAILURES == 5

    def test_poll_interval(self):
        assert DEFAULT_POLL_INTERVAL == 15.0

    def test_result_defaults(self):
        r = ExecutionResult(execution_arn="x", final_status=None, elapsed_seconds=0.0, success=False)
        assert r.output is None
        assert r.error == ""


# ── start_execution ──────────────────────────────────────────────────


class TestStartExecution:
    def test_start(self):
        sfn = MagicMock()
        sfn.start_execution.return_value = {"executionArn": EXEC_ARN}
        assert start_execution(sfn, SM_ARN, execution_input={"a": 1}, name="run-1") == EXEC_ARN
        sfn.start_execution.assert_called_once_with(
            stateMachineArn=SM_ARN, input=json.dumps({"a": 1}), name="run-1",
        )

    def test_default_input(self):
        sfn = MagicMock()
        sfn.start_execution.return_value = {"executionArn": EXEC_ARN}
        start_execution(sfn, SM_ARN)
        assert sfn.start_execution.call_args.kwargs == {"stateMachineArn": SM_ARN, "input": "{}"}

    def test_failure(self):
        sfn = MagicMock()
        sfn.start_execution.side_effect = ClientError(
            {"Error": {"Code": "StateMachineDoesNotExist", "Message": "gone"}}, "StartExecution",
        )
        with pytest.raises(RuntimeError, match="Could not start execution"):
            start_execution(sfn, SM_ARN)


# ── describe_execution ───────────────────────────────────────────────


class TestDescribeExecution:
    def test_error_returns_none(self):
        sfn = MagicMock()
        sfn.describe_execution.side_effect = _error()
        assert describe_execution(sfn, EXEC_ARN) is None


# ── wait_for_execution ───────────────────────────────────────────────


class TestWaitForExecution:
    def test_running_then_succeeded(self):
        sfn = MagicMock()
        sfn.describe_execution.side_effect = [
            {"status": "RUNNING"},
            {"status": "RUNNING"},
            {"status": "SUCCEEDED", "output": '{"job": {"State": "COMPLETED"}}'},
        ]
        sleeps = []
        result = wait_for_execution(sfn, EXEC_ARN, poll_interval=1.0, _sleep_fn=sleeps.append)
        assert result.success
        assert result.final_status == "SUCCEEDED"
        assert result.output == {"job": {"State": "COMPLETED"}}
        assert sleeps == [1.0, 1.0]

    def test_failed(self):
        sfn = MagicMock()
        sfn.describe_execution.return_value = {
            "status": "FAILED", "error": "EMRContainers.ValidationException", "cause": "bad role",
        }
        result = wait_for_execution(sfn, EXEC_ARN, _sleep_fn=_noop_sleep)
        assert not result.success
        assert result.final_status == "FAILED"
        assert result.error == "EMRContainers.ValidationException"
        assert result.cause == "bad role"

    def test_timed_out(self):
        sfn = MagicMock()
        sfn.describe_execution.return_value = {"status": "TIMED_OUT"}
        result = wait_for_execution(sfn, EXEC_ARN, _sleep_fn=_noop_sleep)
        assert result.final_status == "TIMED_OUT"
        assert not result.success

    def test_transient_errors_recover(self):
        sfn = MagicMock()
        sfn.describe_execution.side_effect = [_error(), _error(), {"status": "SUCCEEDED"}]
        result = wait_for_execution(sfn, EXEC_ARN, _sleep_fn=_noop_sleep)
        assert result.success
        assert result.consecutive_failures == 0

    def test_consecutive_failures_abort(self):
        sfn = MagicMock()
        sfn.describe_execution.side_effect = _error()
        result = wait_for_execution(sfn, EXEC_ARN, max_failures=3, _sleep_fn=_noop_sleep)
        assert not result.success
        assert result.final_status is None
        assert result.consecutive_failures == 3
        assert sfn.describe_execution.call_count == 3

    def test_non_json_output_kept_raw(self):
        sfn = MagicMock()
        sfn.describe_execution.return_value = {"status": "SUCCEEDED", "output": "not json"}
        result = wait_for_execution(sfn, EXEC_ARN, _sleep_fn=_noop_sleep)
        assert result.output == "not json"

    def test_pending_redrive_stops_polling(self):
        sfn = MagicMock()
        sfn.describe_execution.side_effect = [
            {"status": "RUNNING"},
            {"status": "PENDING_REDRIVE", "error": "States.TaskFailed", "cause": "job failed"},
        ]
        result = wait_for_execution(sfn, EXEC_ARN, _sleep_fn=_noop_sleep)
        assert not result.success
        assert result.final_status == "PENDING_REDRIVE"
        assert result.error.startswith(PENDING_REDRIVE_MESSAGE)
        assert "last error: States.TaskFailed" in result.error
        assert result.cause == "job failed"
        assert sfn.describe_execution.call_count == 2


# ── failure_message ──────────────────────────────────────────────────


class TestFailureMessage:
    def test_failed_returns_error(self):
        assert failure_message({"status": "FAILED", "error": "E"}) == "E"

    def test_pending_redrive_without_error(self):
        assert failure_message({"status": "PENDING_REDRIVE"}) == PENDING_REDRIVE_MESSAGE

    def test_pending_redrive_with_error(self):
        msg = failure_message({"status": "PENDING_REDRIVE", "error": "States.Timeout"})
        assert "pending redrive" in msg
        assert msg.endswith("(last error: States.Timeout)")

"""Orchestrators behind the CLI: synth, deploy, start, destroy.

Deploy follows a three-phase model:

1. **Assemble** — load config, build the app, synthesize templates.
   No AWS calls; validation errors stop here.
2. **Preflight** — AWS identity, EKS cluster, stack status.
   A FAIL aborts before anything is mutated; WARN aborts unless
   ``--pass-on-warn`` is set.
3. **Deploy** — create/update the CloudFormation stack and record the
   resulting state machine ARN.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from aws_cdk.cx_api import CloudAssembly, CloudFormationStackArtifact
from botocore.exceptions import ClientError
from pydantic import ValidationError

from emrc_workflow import ui
from emrc_workflow.config.loader import DEFAULT_CONFIG_PATH, load_config
from emrc_workflow.errors import WorkflowValidationError
from emrc_workflow.state.models import DeploymentRecord, PreflightReport
from emrc_workflow.state.store import (
    latest_deployment_record,
    load_deployment_record,
    write_deployment_record,
    write_preflight_report,
)
from emrc_workflow.workflow.job_submission import JobSubmissionApp, build_app
from emrc_workflow.workflow.state_machine import DEFAULT_OUTPUT_NAME, render_definition

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_VALIDATION_FAILURE = 1
EXIT_AWS_FAILURE = 2
EXIT_EXECUTION_FAILURE = 3

DEFAULT_OUTDIR = "cdk.out"

# Each preflight step is a callable: (PreflightReport) -> PreflightReport
PreflightStep = Callable[[PreflightReport], PreflightReport]


# ---------------------------------------------------------------------------
# Preflight runner
# ---------------------------------------------------------------------------


def run_preflight(
    report: PreflightReport,
    *,
    steps: List[PreflightStep],
    pass_on_warn: bool = False,
) -> PreflightReport:
    """Run *steps* in order, stopping at the first FAIL."""
    for step in steps:
        report = step(report)
        if not report.passed:
            logger.error("Preflight FAIL detected — aborting.")
            for chk in report.failed_checks:
                logger.error("  [FAIL] %s: %s", chk.id, chk.remediation)
            return report

    if report.has_warnings and not pass_on_warn:
        logger.warning("Preflight WARN detected and --pass-on-warn not set.")
        for chk in report.warned_checks:
            logger.warning("  [WARN] %s: %s", chk.id, chk.remediation)
        return report

    logger.info("Preflight passed — %d checks OK.", len(report.checks))
    return report


def should_abort(report: PreflightReport, *, pass_on_warn: bool = False) -> bool:
    if not report.passed:
        return True
    return report.has_warnings and not pass_on_warn


def exit_code_for(report: PreflightReport) -> int:
    if not report.passed or report.has_warnings:
        return EXIT_VALIDATION_FAILURE
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Assemble
# ---------------------------------------------------------------------------


def assemble(
    config_path: Optional[str],
    outdir: str | Path,
) -> tuple[JobSubmissionApp, CloudAssembly]:
    """Load config, build the app, and synthesize it to *outdir*.

    Raises :class:`WorkflowValidationError`, also for bad config content
    and for constructs CDK rejects.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    try:
        cfg = load_config(path)
    except (ValidationError, yaml.YAMLError, ValueError) as exc:
        raise WorkflowValidationError(f"Invalid config {path}: {exc}") from exc
    try:
        built = build_app(cfg.workflow, outdir=str(outdir))
        return built, built.app.synth()
    except RuntimeError as exc:
        # jsii surfaces errors thrown by CDK as RuntimeError.
        raise WorkflowValidationError(f"CDK rejected the app: {exc}") from exc


def stack_artifact(
    built: JobSubmissionApp,
    assembly: CloudAssembly,
) -> CloudFormationStackArtifact:
    """The synthesized artifact of the workflow stack."""
    return assembly.get_stack_by_name(built.stack.stack_name)


def run_synth(
    *,
    config_path: Optional[str] = None,
    outdir: str = DEFAULT_OUTDIR,
) -> int:
    """Synthesize templates only.  Returns an ``EXIT_*`` code."""
    ui.phase("SYNTH")
    try:
        built, assembly = assemble(config_path, outdir)
    except WorkflowValidationError as exc:
        ui.fail(str(exc))
        logger.error("Assembly failed: %s", exc)
        return EXIT_VALIDATION_FAILURE

    artifact = stack_artifact(built, assembly)
    ui.ok(f"{artifact.stack_name} → {artifact.template_full_path}")
    definition = render_definition(artifact.template)
    ui.detail("steps", " → ".join(definition["States"]))
    timeout = definition.get("TimeoutSeconds")
    ui.detail("timeout", f"{timeout}s" if timeout is not None else "none")
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Deploy
# ---------------------------------------------------------------------------


def run_deploy_workflow(
    *,
    region: Optional[str] = None,
    profile: Optional[str] = None,
    config_path: Optional[str] = None,
    outdir: str = DEFAULT_OUTDIR,
    pass_on_warn: bool = False,
    debug: bool = False,
) -> int:
    """Assemble → preflight → deploy.  Returns an ``EXIT_*`` code."""
    from emrc_workflow.aws.cloudformation import deploy_stack, make_stack_preflight_step
    from emrc_workflow.aws.context import AWSContext
    from emrc_workflow.aws.eks import make_eks_preflight_step

    if debug:
        logging.getLogger("emrc_workflow").setLevel(logging.DEBUG)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")

    # -- 1. ASSEMBLE ----------------------------------------------------------
    ui.phase("ASSEMBLE")
    try:
        built, assembly = assemble(config_path, outdir)
    except WorkflowValidationError as exc:
        ui.fail(str(exc))
        logger.error("Assembly failed: %s", exc)
        return EXIT_VALIDATION_FAILURE
    stack = built.stack
    artifact = stack_artifact(built, assembly)
    ui.ok(f"Synthesized {stack.stack_name}")

    # -- 2. PREFLIGHT ---------------------------------------------------------
    ui.phase("PREFLIGHT")
    try:
        aws_ctx = AWSContext.build(region, profile=profile)
    except RuntimeError as exc:
        ui.fail(str(exc))
        logger.error("AWS context failed: %s", exc)
        return EXIT_AWS_FAILURE
    ui.info(f"account={aws_ctx.account_id} region={aws_ctx.region}")

    cfn = aws_ctx.client("cloudformation")
    report = PreflightReport(
        run_id=ts,
        stack_name=stack.stack_name,
        region=aws_ctx.region,
        aws_profile=aws_ctx.profile or "",
        account_id=aws_ctx.account_id,
        caller_arn=aws_ctx.caller_arn,
    )
    steps: List[PreflightStep] = [
        make_eks_preflight_step(
            aws_ctx.client("eks"), built.eks_cluster_name, built.eks_version,
        ),
    ]
    steps.append(make_stack_preflight_step(cfn, stack.stack_name))

    report = run_preflight(report, steps=steps, pass_on_warn=pass_on_warn)
    report_path = write_preflight_report(report)
    for chk in report.checks:
        {"PASS": ui.ok, "WARN": ui.warn, "FAIL": ui.fail}[chk.status.value](
            f"{chk.id}: {chk.remediation or 'ok'}"
        )
    if should_abort(report, pass_on_warn=pass_on_warn):
        logger.error("Preflight aborted — exiting.")
        return exit_code_for(report)

    # -- 3. DEPLOY ------------------------------------------------------------
    ui.phase("DEPLOY")
    ui.step(f"Deploying {stack.stack_name} (rollback={built.rollback}) ...")
    try:
        result = deploy_stack(
            cfn,
            stack.stack_name,
            json.dumps(artifact.template),
            rollback=built.rollback,
        )
    except RuntimeError as exc:
        ui.fail(str(exc))
        logger.error("Deploy failed: %s", exc)
        return EXIT_AWS_FAILURE

    record = DeploymentRecord(
        run_id=ts,
        stack_name=stack.stack_name,
        region=aws_ctx.region,
        aws_profile=aws_ctx.profile or "",
        account_id=aws_ctx.account_id,
        eks_cluster_name=built.eks_cluster_name,
        state_machine_arn=result.outputs.get(DEFAULT_OUTPUT_NAME, ""),
        stack_status=result.status or "",
        outputs=result.outputs,
        template_path=artifact.template_full_path,
        preflight_report_path=str(report_path),
    )
    record_path = write_deployment_record(record)

    ui.success_panel(
        "DEPLOYED",
        f"Stack      : {stack.stack_name} ({result.operation})\n"
        f"State machine: {record.state_machine_arn}\n"
        f"Record     : {record_path}",
    )
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Start / status
# ---------------------------------------------------------------------------


def _resolve_record(
    record_path: Optional[str],
    stack_name: Optional[str],
) -> tuple[Optional[DeploymentRecord], Optional[Path]]:
    if record_path:
        return load_deployment_record(record_path), Path(record_path)
    if stack_name:
        latest = latest_deployment_record(stack_name)
        if latest is not None:
            return load_deployment_record(latest), latest
    return None, None


def run_start_workflow(
    *,
    state_machine_arn: Optional[str] = None,
    record_path: Optional[str] = None,
    stack_name: Optional[str] = None,
    execution_input: Optional[Dict[str, Any]] = None,
    wait: bool = False,
    region: Optional[str] = None,
    profile: Optional[str] = None,
    _sleep_fn: Any = None,
) -> int:
    """Start an execution of the deployed state machine.

    The ARN comes from *state_machine_arn*, else from a deployment record
    (explicit path, or the newest one for *stack_name*).
    """
    from emrc_workflow.aws.context import AWSContext
    from emrc_workflow.aws.stepfunctions import start_execution, wait_for_execution

    record, source = _resolve_record(record_path, stack_name)
    arn = state_machine_arn or (record.state_machine_arn if record else "")
    if not arn:
        ui.error_msg("No state machine ARN; deploy first or pass --state-machine-arn.")
        return EXIT_VALIDATION_FAILURE

    try:
        aws_ctx = AWSContext.build(region or (record.region if record else None), profile=profile)
    except RuntimeError as exc:
        ui.fail(str(exc))
        return EXIT_AWS_FAILURE

    sfn = aws_ctx.client("stepfunctions")
    try:
        execution_arn = start_execution(sfn, arn, execution_input=execution_input)
    except RuntimeError as exc:
        ui.fail(str(exc))
        logger.error("Start failed: %s", exc)
        return EXIT_AWS_FAILURE
    ui.ok(f"Started {execution_arn}")

    if record is not None and source is not None:
        record.last_execution_arn = execution_arn
        write_deployment_record(record, directory=source.parent)

    if not wait:
        return EXIT_SUCCESS

    result = wait_for_execution(sfn, execution_arn, _sleep_fn=_sleep_fn)
    if result.success:
        ui.ok(f"{result.final_status} in {ui.elapsed_str(result.elapsed_seconds)}")
        return EXIT_SUCCESS

    ui.error_panel(
        "EXECUTION FAILED",
        f"Status: {result.final_status}\nError : {result.error}\nCause : {result.cause}",
    )
    return EXIT_EXECUTION_FAILURE


def run_status_workflow(
    *,
    execution_arn: Optional[str] = None,
    record_path: Optional[str] = None,
    stack_name: Optional[str] = None,
    region: Optional[str] = None,
    profile: Optional[str] = None,
) -> int:
    """Print stack status and the status of one execution.

    Exit codes: 0 = succeeded or still running, 3 = execution failed,
    1 = nothing to report on, 2 = AWS error.
    """
    from emrc_workflow.aws.cloudformation import describe_stack_status
    from emrc_workflow.aws.context import AWSContext
    from emrc_workflow.aws.stepfunctions import (
        STATUS_RUNNING,
        STATUS_SUCCEEDED,
        describe_execution,
        failure_message,
    )

    record, source = _resolve_record(record_path, stack_name)
    arn = execution_arn or (record.last_execution_arn if record else "")
    if not arn and record is None:
        ui.error_msg("No execution ARN or deployment record found.")
        return EXIT_VALIDATION_FAILURE

    try:
        aws_ctx = AWSContext.build(region or (record.region if record else None), profile=profile)
    except RuntimeError as exc:
        ui.fail(str(exc))
        return EXIT_AWS_FAILURE

    if record is not None:
        try:
            status = describe_stack_status(aws_ctx.client("cloudformation"), record.stack_name)
        except ClientError as exc:
            ui.fail(str(exc))
            return EXIT_AWS_FAILURE
        ui.detail("stack", f"{record.stack_name} ({status or 'ABSENT'})")
        ui.detail("state machine", record.state_machine_arn or "-")

    if not arn:
        ui.info("No executions recorded.")
        return EXIT_SUCCESS

    desc = describe_execution(aws_ctx.client("stepfunctions"), arn)
    if desc is None:
        ui.fail(f"Could not describe {arn}")
        return EXIT_AWS_FAILURE
    exec_status = desc.get("status", "")
    ui.detail("execution", f"{arn} ({exec_status})")
    if exec_status in (STATUS_RUNNING, STATUS_SUCCEEDED):
        return EXIT_SUCCESS
    ui.detail("error", failure_message(desc))
    ui.detail("cause", desc.get("cause", ""))
    return EXIT_EXECUTION_FAILURE


def run_destroy_workflow(
    *,
    config_path: Optional[str] = None,
    region: Optional[str] = None,
    profile: Optional[str] = None,
) -> int:
    """Delete the stack described by the config."""
    from emrc_workflow.aws.cloudformation import destroy_stack
    from emrc_workflow.aws.context import AWSContext

    path = config_path or DEFAULT_CONFIG_PATH
    try:
        cfg = load_config(path)
    except (ValidationError, yaml.YAMLError, ValueError) as exc:
        ui.fail(f"Invalid config {path}: {exc}")
        return EXIT_VALIDATION_FAILURE
    stack_name = cfg.workflow.stack_name

    try:
        aws_ctx = AWSContext.build(region, profile=profile)
    except RuntimeError as exc:
        ui.fail(str(exc))
        return EXIT_AWS_FAILURE

    ui.step(f"Destroying {stack_name} ...")
    try:
        existed = destroy_stack(aws_ctx.client("cloudformation"), stack_name)
    except RuntimeError as exc:
        ui.fail(str(exc))
        return EXIT_AWS_FAILURE
    if existed:
        ui.ok(f"{stack_name} deleted")
    else:
        ui.info(f"{stack_name} did not exist")
    return EXIT_SUCCESS

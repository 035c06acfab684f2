"""CLI entry point for emrc-workflow, built on cli-core-yo.

Provides ``synth``, ``deploy``, ``start``, ``status`` and ``destroy``
commands for the EMR on EKS job submission state machine.

Usage::

    python -m emrc_workflow --help
    python -m emrc_workflow synth --outdir cdk.out
    python -m emrc_workflow deploy --region us-east-1 --profile my-profile
    python -m emrc_workflow start --stack-name <stack> --wait
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

import typer
from cli_core_yo import output
from cli_core_yo.app import create_app
from cli_core_yo.runtime import _reset, initialize
from cli_core_yo.spec import CliSpec, XdgSpec

from emrc_workflow.config.models import DEFAULT_STACK_NAME

# ── App definition ───────────────────────────────────────────────────────────

spec = CliSpec(
    prog_name="emrc-workflow",
    app_display_name="EMR Containers Workflow",
    dist_name="emr-containers-workflow",
    root_help=(
        "Synthesize, deploy and run a Step Functions workflow that creates "
        "an EMR on EKS virtual cluster, runs a Spark job, and tears it down."
    ),
    xdg=XdgSpec(app_dir_name="emrc-workflow"),
)

app = create_app(spec)


# ── Root callback (global options) ───────────────────────────────────────────


@app.callback()
def _root_callback(
    json_flag: bool = typer.Option(
        False, "--json", "-j", help="Output as JSON."
    ),
) -> None:
    """EMR on EKS job submission workflow."""
    _reset()
    debug = os.environ.get("CLI_CORE_YO_DEBUG") == "1"
    xdg_paths = app._cli_core_yo_xdg_paths  # type: ignore[attr-defined]
    initialize(spec, xdg_paths, json_mode=json_flag, debug=debug)


_CONFIG_HELP = "Path to workflow config YAML. Default: config/emrc_workflow.yaml"


# ── init-config command ──────────────────────────────────────────────────────


@app.command("init-config")
def init_config(
    path: str = typer.Option(
        "config/emrc_workflow.yaml", "--path", help="Where to write the config."
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
) -> None:
    """Write a config file populated with the default workflow."""
    from pathlib import Path

    from emrc_workflow.config import ConfigFile, write_config

    if Path(path).exists() and not force:
        output.error(f"{path} exists; pass --force to overwrite.")
        raise typer.Exit(1)
    written = write_config(ConfigFile(), path)
    output.success(f"Wrote {written}")


# ── synth command ────────────────────────────────────────────────────────────


@app.command()
def synth(
    config: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    outdir: str = typer.Option(
        "cdk.out", "--outdir", help="Directory for the synthesized templates."
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output."),
) -> None:
    """Synthesize the CloudFormation template and integ manifest (no AWS calls).

    Exits 0 on success, 1 on validation failure.
    """
    from emrc_workflow.workflow.deploy import run_synth

    if debug:
        logging.basicConfig(level=logging.DEBUG)

    output.action(f"Synthesizing into {outdir} ...")
    raise typer.Exit(run_synth(config_path=config, outdir=outdir))


# ── deploy command ───────────────────────────────────────────────────────────


@app.command()
def deploy(
    region: Optional[str] = typer.Option(
        None,
        "--region",
        help="AWS region. Defaults to AWS_REGION / AWS_DEFAULT_REGION.",
    ),
    profile: Optional[str] = typer.Option(
        None,
        "--profile",
        help="AWS CLI profile. Defaults to AWS_PROFILE env var.",
    ),
    config: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    outdir: str = typer.Option(
        "cdk.out", "--outdir", help="Directory for the synthesized templates."
    ),
    pass_on_warn: bool = typer.Option(
        False,
        "--pass-on-warn",
        help="Continue on preflight warnings instead of failing.",
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output."),
) -> None:
    """Synthesize, run preflight checks, and deploy the stack.

    Exit codes: 0 = deployed, 1 = validation/preflight failure, 2 = AWS error.
    """
    from emrc_workflow.workflow.deploy import run_deploy_workflow

    if debug:
        logging.basicConfig(level=logging.DEBUG)

    output.action("Deploying workflow stack ...")
    rc = run_deploy_workflow(
        region=region,
        profile=profile,
        config_path=config,
        outdir=outdir,
        pass_on_warn=pass_on_warn,
        debug=debug,
    )
    raise typer.Exit(rc)


# ── start command ────────────────────────────────────────────────────────────


@app.command()
def start(
    state_machine_arn: Optional[str] = typer.Option(
        None, "--state-machine-arn", help="State machine to execute."
    ),
    record: Optional[str] = typer.Option(
        None, "--record", help="Deployment record JSON from a previous deploy."
    ),
    stack_name: str = typer.Option(
        DEFAULT_STACK_NAME,
        "--stack-name",
        help="Use the newest deployment record for this stack.",
    ),
    execution_input: Optional[str] = typer.Option(
        None, "--input", help="Execution input as a JSON object."
    ),
    wait: bool = typer.Option(
        False, "--wait", help="Block until the execution finishes."
    ),
    region: Optional[str] = typer.Option(None, "--region", help="AWS region."),
    profile: Optional[str] = typer.Option(None, "--profile", help="AWS CLI profile."),
) -> None:
    """Start an execution of the deployed state machine.

    Exit codes: 0 = started (or succeeded with --wait), 1 = bad input,
    2 = AWS error, 3 = execution failed.
    """
    from emrc_workflow.workflow.deploy import EXIT_VALIDATION_FAILURE, run_start_workflow

    payload = None
    if execution_input:
        try:
            payload = json.loads(execution_input)
        except json.JSONDecodeError as exc:
            output.error(f"--input is not valid JSON: {exc}")
            raise typer.Exit(EXIT_VALIDATION_FAILURE) from exc
        if not isinstance(payload, dict):
            output.error("--input must be a JSON object.")
            raise typer.Exit(EXIT_VALIDATION_FAILURE)

    rc = run_start_workflow(
        state_machine_arn=state_machine_arn,
        record_path=record,
        stack_name=stack_name,
        execution_input=payload,
        wait=wait,
        region=region,
        profile=profile,
    )
    raise typer.Exit(rc)


# ── status command ───────────────────────────────────────────────────────────


@app.command()
def status(
    execution_arn: Optional[str] = typer.Option(
        None, "--execution-arn", help="Execution to describe."
    ),
    record: Optional[str] = typer.Option(
        None, "--record", help="Deployment record JSON from a previous deploy."
    ),
    stack_name: str = typer.Option(
        DEFAULT_STACK_NAME,
        "--stack-name",
        help="Use the newest deployment record for this stack.",
    ),
    region: Optional[str] = typer.Option(None, "--region", help="AWS region."),
    profile: Optional[str] = typer.Option(None, "--profile", help="AWS CLI profile."),
) -> None:
    """Show stack status and the last execution's status.

    Exit codes: 0 = ok or running, 1 = nothing found, 2 = AWS error,
    3 = execution failed.
    """
    from emrc_workflow.workflow.deploy import run_status_workflow

    rc = run_status_workflow(
        execution_arn=execution_arn,
        record_path=record,
        stack_name=stack_name,
        region=region,
        profile=profile,
    )
    raise typer.Exit(rc)


# ── destroy command ──────────────────────────────────────────────────────────


@app.command()
def destroy(
    config: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    region: Optional[str] = typer.Option(None, "--region", help="AWS region."),
    profile: Optional[str] = typer.Option(None, "--profile", help="AWS CLI profile."),
) -> None:
    """Delete the workflow stack."""
    from emrc_workflow.workflow.deploy import run_destroy_workflow

    output.action("Destroying workflow stack ...")
    raise typer.Exit(
        run_destroy_workflow(config_path=config, region=region, profile=profile)
    )


# ── Entry point ──────────────────────────────────────────────────────────────


def main() -> int:
    """Run the CLI and return an exit code."""
    try:
        app()
        return 0
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 0


if __name__ == "__main__":
    sys.exit(main())

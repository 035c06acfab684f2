"""Workflow steps, chaining, state machine registration, and orchestration."""

from emrc_workflow.workflow.chain import Chain, DataDependency, chain, check_data_flow
from emrc_workflow.workflow.deploy import (
    EXIT_AWS_FAILURE,
    EXIT_EXECUTION_FAILURE,
    EXIT_SUCCESS,
    EXIT_VALIDATION_FAILURE,
    exit_code_for,
    run_deploy_workflow,
    run_destroy_workflow,
    run_preflight,
    run_start_workflow,
    run_status_workflow,
    run_synth,
    should_abort,
)
from emrc_workflow.workflow.job import (
    ApplicationConfiguration,
    JobSpec,
    Monitoring,
    SparkSubmitJobDriver,
)
from emrc_workflow.workflow.job_submission import JobSubmissionApp, build_app
from emrc_workflow.workflow.state_machine import register_execution, render_definition
from emrc_workflow.workflow.steps import (
    CreateVirtualClusterStep,
    DeleteVirtualClusterStep,
    IntegrationPattern,
    StartJobRunStep,
    WorkflowStep,
    define_create_cluster_step,
    define_delete_cluster_step,
    define_submit_job_step,
)

__all__ = [
    "EXIT_AWS_FAILURE",
    "EXIT_EXECUTION_FAILURE",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_FAILURE",
    "ApplicationConfiguration",
    "Chain",
    "CreateVirtualClusterStep",
    "DataDependency",
    "DeleteVirtualClusterStep",
    "IntegrationPattern",
    "JobSpec",
    "JobSubmissionApp",
    "Monitoring",
    "SparkSubmitJobDriver",
    "StartJobRunStep",
    "WorkflowStep",
    "build_app",
    "chain",
    "check_data_flow",
    "define_create_cluster_step",
    "define_delete_cluster_step",
    "define_submit_job_step",
    "exit_code_for",
    "register_execution",
    "render_definition",
    "run_deploy_workflow",
    "run_destroy_workflow",
    "run_preflight",
    "run_start_workflow",
    "run_status_workflow",
    "run_synth",
    "should_abort",
]

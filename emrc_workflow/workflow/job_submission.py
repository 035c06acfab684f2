"""Assemble the EMR on EKS job submission app.

Builds, from a :class:`~emrc_workflow.config.models.WorkflowConfig`:

1. the CDK app and stack, and the existing EKS cluster imported into it,
2. the job execution role,
3. three chained steps: create virtual cluster → start job run →
   delete virtual cluster,
4. the state machine (20 minute timeout) and its ``stateMachineArn`` output,
5. the ``IntegTest`` registration (deploy with rollback).

Nothing here calls AWS; ``app.synth()`` writes the cloud assembly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Union

from aws_cdk import App, DefaultStackSynthesizer, Stack
from aws_cdk import aws_eks as eks
from aws_cdk import aws_iam as iam
from aws_cdk import aws_stepfunctions as sfn
from aws_cdk.cloud_assembly_schema import CdkCommands, DeployCommand, DeployOptions
from aws_cdk.integ_tests_alpha import IntegTest

from emrc_workflow.config.models import JobConfig, WorkflowConfig
from emrc_workflow.workflow.chain import Chain, chain
from emrc_workflow.workflow.job import (
    ApplicationConfiguration,
    JobSpec,
    Monitoring,
    SparkSubmitJobDriver,
)
from emrc_workflow.workflow.state_machine import register_execution
from emrc_workflow.workflow.steps import (
    CreateVirtualClusterStep,
    DeleteVirtualClusterStep,
    StartJobRunStep,
    define_create_cluster_step,
    define_delete_cluster_step,
    define_submit_job_step,
)

logger = logging.getLogger(__name__)


@dataclass
class JobSubmissionApp:
    """Handles to everything :func:`build_app` declared."""

    app: App
    stack: Stack
    eks_cluster: eks.ICluster
    eks_cluster_name: str
    eks_version: str
    execution_role: iam.IRole
    create_step: CreateVirtualClusterStep
    submit_step: StartJobRunStep
    delete_step: DeleteVirtualClusterStep
    chain: Chain
    state_machine: sfn.StateMachine
    timeout: timedelta
    integ_test: IntegTest
    rollback: bool


def job_spec_from_config(
    job: JobConfig,
    execution_role: Union[iam.IRole, str],
) -> JobSpec:
    """Translate the ``job`` config section into a :class:`JobSpec`."""
    monitoring: Optional[Monitoring] = None
    if job.monitoring is not None:
        monitoring = Monitoring(
            logging=job.monitoring.logging,
            log_group=job.monitoring.log_group_name,
            log_stream_name_prefix=job.monitoring.log_stream_name_prefix,
            log_bucket=job.monitoring.log_bucket_name,
            persistent_app_ui=job.monitoring.persistent_app_ui,
        )
    return JobSpec(
        job_name=job.job_name,
        release_label=job.release_label,
        execution_role=execution_role,
        job_driver=SparkSubmitJobDriver(
            entry_point=job.entry_point,
            entry_point_arguments=list(job.entry_point_arguments),
            spark_submit_parameters=job.spark_submit_parameters,
        ),
        application_config=[
            ApplicationConfiguration(
                classification=c.classification,
                properties=dict(c.properties),
            )
            for c in job.application_config
        ],
        monitoring=monitoring,
    )


def build_app(
    config: Optional[WorkflowConfig] = None,
    *,
    outdir: Optional[str] = None,
) -> JobSubmissionApp:
    """Declare the whole job submission app described by *config*.

    *outdir* is where ``app.synth()`` writes the cloud assembly (CDK's
    default when unset).  Raises
    :class:`~emrc_workflow.errors.WorkflowValidationError` when the
    configuration does not describe a valid workflow.
    """
    cfg = config or WorkflowConfig()
    app = App(outdir=outdir, analytics_reporting=False)
    stack = Stack(
        app,
        cfg.stack_name,
        synthesizer=DefaultStackSynthesizer(generate_bootstrap_version_rule=False),
    )

    cluster_name = cfg.eks_cluster.cluster_name or cfg.eks_cluster.construct_id
    eks_cluster = eks.Cluster.from_cluster_attributes(
        stack,
        cfg.eks_cluster.construct_id,
        cluster_name=cluster_name,
    )

    role_cfg = cfg.execution_role
    if role_cfg.role_arn:
        execution_role = iam.Role.from_role_arn(stack, role_cfg.construct_id, role_cfg.role_arn)
    else:
        execution_role = iam.Role(
            stack,
            role_cfg.construct_id,
            assumed_by=iam.CompositePrincipal(
                *(iam.ServicePrincipal(s) for s in role_cfg.assumed_by)
            ),
        )

    vc = cfg.virtual_cluster
    create_step = define_create_cluster_step(
        eks_cluster,
        vc.name,
        vc.result_path,
        state_name=vc.state_name,
        namespace=vc.namespace,
    )
    submit_step = define_submit_job_step(
        cfg.job.cluster_id_path,
        job_spec_from_config(cfg.job, execution_role),
        cfg.job.result_path,
        state_name=cfg.job.state_name,
    )
    delete_step = define_delete_cluster_step(
        cfg.teardown.cluster_id_path,
        state_name=cfg.teardown.state_name,
    )

    workflow = chain(create_step, submit_step, delete_step)
    timeout = timedelta(minutes=cfg.timeout_minutes)
    state_machine = register_execution(stack, workflow, timeout)

    integ_test = IntegTest(
        app,
        cfg.integ.name,
        test_cases=[stack],
        cdk_command_options=CdkCommands(
            deploy=DeployCommand(args=DeployOptions(rollback=cfg.integ.rollback)),
        ),
    )

    logger.info(
        "Assembled %s: %s on EKS cluster %s",
        stack.stack_name,
        " -> ".join(s.name for s in workflow.steps),
        cluster_name,
    )
    return JobSubmissionApp(
        app=app,
        stack=stack,
        eks_cluster=eks_cluster,
        eks_cluster_name=cluster_name,
        eks_version=cfg.eks_cluster.version,
        execution_role=execution_role,
        create_step=create_step,
        submit_step=submit_step,
        delete_step=delete_step,
        chain=workflow,
        state_machine=state_machine,
        timeout=timeout,
        integ_test=integ_test,
        rollback=cfg.integ.rollback,
    )

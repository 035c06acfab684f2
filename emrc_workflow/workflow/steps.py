"""Workflow steps: create a virtual cluster, run a job, delete the cluster.

Each step knows

* which execution-document paths it reads (:meth:`WorkflowStep.input_paths`),
* where its result is written (``result_path``; ``None`` discards it),
* which fields its result carries (``result_fields``), and
* the ``aws_stepfunctions_tasks`` construct it becomes.

Steps are plain descriptions until the chain is registered.  Registration
first calls :meth:`WorkflowStep.check_scope` on every step, so nothing is
added to a stack unless the whole chain can be created, and then
:meth:`WorkflowStep.create_task` once per step.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, FrozenSet, List, Optional, Union

from aws_cdk import Stack
from aws_cdk import aws_eks as eks
from aws_cdk import aws_stepfunctions as sfn
from aws_cdk import aws_stepfunctions_tasks as tasks
from constructs import Construct

from emrc_workflow.errors import WorkflowValidationError
from emrc_workflow.workflow.job import JobSpec
from emrc_workflow.workflow.paths import is_context_path, parse_path

logger = logging.getLogger(__name__)

MAX_STATE_NAME = 80
MAX_VIRTUAL_CLUSTER_NAME = 64
_VIRTUAL_CLUSTER_NAME_RE = re.compile(r"^[.\-_/#A-Za-z0-9]+$")

DEFAULT_NAMESPACE = "default"

IntegrationPattern = sfn.IntegrationPattern


def _is_path(value: object) -> bool:
    return isinstance(value, str) and value.startswith("$")


# ---------------------------------------------------------------------------
# Base step
# ---------------------------------------------------------------------------


class WorkflowStep:
    """A ``Task`` state calling one EMR containers API."""

    supported_patterns: FrozenSet[sfn.IntegrationPattern] = frozenset({
        sfn.IntegrationPattern.REQUEST_RESPONSE,
        sfn.IntegrationPattern.RUN_JOB,
    })
    result_fields: FrozenSet[str] = frozenset()

    def __init__(
        self,
        name: str,
        *,
        result_path: Optional[str],
        integration_pattern: sfn.IntegrationPattern,
        comment: Optional[str] = None,
    ) -> None:
        if not name or len(name) > MAX_STATE_NAME:
            raise WorkflowValidationError(
                f"State name must be 1-{MAX_STATE_NAME} characters, got '{name}'"
            )
        if integration_pattern not in self.supported_patterns:
            raise WorkflowValidationError(
                f"{type(self).__name__} does not support the "
                f"{integration_pattern.name} integration pattern"
            )
        if result_path is not None:
            if is_context_path(result_path):
                raise WorkflowValidationError(
                    f"Result path '{result_path}' cannot target the context object"
                )
            parse_path(result_path)
        self.name = name
        self.result_path = result_path
        self.integration_pattern = integration_pattern
        self.comment = comment
        self.task: Optional[sfn.TaskStateBase] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    @property
    def registered(self) -> bool:
        return self.task is not None

    @property
    def cdk_result_path(self) -> str:
        return self.result_path if self.result_path is not None else sfn.JsonPath.DISCARD

    def input_paths(self) -> List[str]:
        return []

    def check_scope(self, stack: Stack) -> None:
        """Raise if the step cannot be created in *stack*.  Creates nothing."""
        if self.task is not None:
            raise WorkflowValidationError(
                f"Step '{self.name}' is already registered in stack "
                f"{Stack.of(self.task).stack_name}"
            )
        if stack.node.try_find_child(self.name) is not None:
            raise WorkflowValidationError(
                f"Stack {stack.stack_name} already has a construct named '{self.name}'"
            )

    def _build(self, scope: Construct) -> sfn.TaskStateBase:
        raise NotImplementedError

    def create_task(self, scope: Construct) -> sfn.TaskStateBase:
        """Create the task construct under *scope* and remember it."""
        self.task = self._build(scope)
        logger.debug("Created task %s in %s", self.name, scope.node.path)
        return self.task


# ---------------------------------------------------------------------------
# Create virtual cluster
# ---------------------------------------------------------------------------


class CreateVirtualClusterStep(WorkflowStep):
    supported_patterns = frozenset({sfn.IntegrationPattern.REQUEST_RESPONSE})
    result_fields = frozenset({"Id", "Name", "Arn"})

    def __init__(
        self,
        name: str,
        *,
        eks_cluster: Union[eks.ICluster, str],
        virtual_cluster_name: str,
        eks_namespace: str = DEFAULT_NAMESPACE,
        tags: Optional[Dict[str, str]] = None,
        result_path: Optional[str] = "$",
        integration_pattern: sfn.IntegrationPattern = sfn.IntegrationPattern.REQUEST_RESPONSE,
        comment: Optional[str] = None,
    ) -> None:
        super().__init__(
            name,
            result_path=result_path,
            integration_pattern=integration_pattern,
            comment=comment,
        )
        if eks_cluster is None:
            raise WorkflowValidationError(
                "eks_cluster must be an EKS cluster construct or a JSON path"
            )
        if isinstance(eks_cluster, str):
            parse_path(eks_cluster)
        if _is_path(virtual_cluster_name):
            parse_path(virtual_cluster_name)
        elif not isinstance(virtual_cluster_name, str) or not (
            1 <= len(virtual_cluster_name) <= MAX_VIRTUAL_CLUSTER_NAME
        ):
            raise WorkflowValidationError(
                f"Virtual cluster name must be 1-{MAX_VIRTUAL_CLUSTER_NAME} "
                f"characters, got '{virtual_cluster_name}'"
            )
        elif not _VIRTUAL_CLUSTER_NAME_RE.match(virtual_cluster_name):
            raise WorkflowValidationError(
                f"Virtual cluster name '{virtual_cluster_name}' may only "
                "contain letters, digits and . - _ / #"
            )
        if not eks_namespace:
            raise WorkflowValidationError("EKS namespace must not be empty")
        self.eks_cluster = eks_cluster
        self.virtual_cluster_name = virtual_cluster_name
        self.eks_namespace = eks_namespace
        self.tags = dict(tags or {})

    def input_paths(self) -> List[str]:
        return [v for v in (self.eks_cluster, self.virtual_cluster_name) if _is_path(v)]

    def check_scope(self, stack: Stack) -> None:
        super().check_scope(stack)
        if isinstance(self.eks_cluster, str):
            return
        owner = Stack.of(self.eks_cluster)
        if owner.node.addr != stack.node.addr:
            raise WorkflowValidationError(
                f"Step '{self.name}' references EKS cluster "
                f"'{self.eks_cluster.node.id}', which is declared in stack "
                f"{owner.stack_name}, not {stack.stack_name}"
            )

    def _build(self, scope: Construct) -> sfn.TaskStateBase:
        if isinstance(self.eks_cluster, str):
            cluster_input = tasks.EksClusterInput.from_task_input(
                sfn.TaskInput.from_json_path_at(self.eks_cluster)
            )
        else:
            cluster_input = tasks.EksClusterInput.from_cluster(self.eks_cluster)
        vc_name = self.virtual_cluster_name
        if _is_path(vc_name):
            vc_name = sfn.JsonPath.string_at(vc_name)
        return tasks.EmrContainersCreateVirtualCluster(
            scope,
            self.name,
            eks_cluster=cluster_input,
            virtual_cluster_name=vc_name,
            eks_namespace=self.eks_namespace,
            tags=self.tags or None,
            result_path=self.cdk_result_path,
            integration_pattern=self.integration_pattern,
            comment=self.comment,
        )


# ---------------------------------------------------------------------------
# Start job run
# ---------------------------------------------------------------------------


class StartJobRunStep(WorkflowStep):
    result_fields = frozenset({
        "Id", "Name", "Arn", "VirtualClusterId", "State", "StateDetails",
        "ReleaseLabel", "ExecutionRoleArn", "JobDriver",
        "ConfigurationOverrides", "CreatedAt", "CreatedBy", "FinishedAt",
        "FailureReason", "ClientToken", "Tags",
    })

    def __init__(
        self,
        name: str,
        *,
        virtual_cluster_id: str,
        job: JobSpec,
        result_path: Optional[str] = "$",
        integration_pattern: sfn.IntegrationPattern = sfn.IntegrationPattern.RUN_JOB,
        comment: Optional[str] = None,
    ) -> None:
        super().__init__(
            name,
            result_path=result_path,
            integration_pattern=integration_pattern,
            comment=comment,
        )
        parse_path(virtual_cluster_id)
        job.validate()
        self.virtual_cluster_id = virtual_cluster_id
        self.job = job

    def input_paths(self) -> List[str]:
        return [self.virtual_cluster_id] + self.job.job_driver.read_paths()

    def check_scope(self, stack: Stack) -> None:
        super().check_scope(stack)
        taken = [
            cid for cid in self._support_ids()
            if stack.node.try_find_child(cid) is not None
        ]
        if taken:
            raise WorkflowValidationError(
                f"Stack {stack.stack_name} already has constructs named "
                f"{', '.join(repr(t) for t in taken)}"
            )

    def _support_ids(self) -> List[str]:
        ids = []
        if isinstance(self.job.execution_role, str):
            ids.append(f"{self.name} Execution Role")
        mon = self.job.monitoring
        if mon is not None and isinstance(mon.log_group, str):
            ids.append(f"{self.name} Log Group")
        if mon is not None and isinstance(mon.log_bucket, str):
            ids.append(f"{self.name} Log Bucket")
        return ids

    def _build(self, scope: Construct) -> sfn.TaskStateBase:
        job = self.job
        monitoring = (
            job.monitoring.to_cdk(scope, self.name) if job.monitoring is not None else None
        )
        return tasks.EmrContainersStartJobRun(
            scope,
            self.name,
            virtual_cluster=tasks.VirtualClusterInput.from_task_input(
                sfn.TaskInput.from_json_path_at(self.virtual_cluster_id)
            ),
            release_label=job.cdk_release_label(),
            job_name=job.job_name,
            execution_role=job.cdk_execution_role(scope, f"{self.name} Execution Role"),
            job_driver=job.job_driver.to_cdk(),
            application_config=[c.to_cdk() for c in job.application_config] or None,
            monitoring=monitoring,
            tags=dict(job.tags) or None,
            result_path=self.cdk_result_path,
            integration_pattern=self.integration_pattern,
            comment=self.comment,
        )


# ---------------------------------------------------------------------------
# Delete virtual cluster
# ---------------------------------------------------------------------------


class DeleteVirtualClusterStep(WorkflowStep):
    def __init__(
        self,
        name: str,
        *,
        virtual_cluster_id: str,
        integration_pattern: sfn.IntegrationPattern = sfn.IntegrationPattern.RUN_JOB,
        comment: Optional[str] = None,
    ) -> None:
        super().__init__(
            name,
            result_path=None,
            integration_pattern=integration_pattern,
            comment=comment,
        )
        parse_path(virtual_cluster_id)
        self.virtual_cluster_id = virtual_cluster_id

    def input_paths(self) -> List[str]:
        return [self.virtual_cluster_id]

    def _build(self, scope: Construct) -> sfn.TaskStateBase:
        return tasks.EmrContainersDeleteVirtualCluster(
            scope,
            self.name,
            virtual_cluster_id=sfn.TaskInput.from_json_path_at(self.virtual_cluster_id),
            result_path=self.cdk_result_path,
            integration_pattern=self.integration_pattern,
            comment=self.comment,
        )


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------


def define_create_cluster_step(
    cluster_ref: Union[eks.ICluster, str],
    name: str,
    result_path: str,
    *,
    state_name: str = "Create a virtual Cluster",
    namespace: str = DEFAULT_NAMESPACE,
    tags: Optional[Dict[str, str]] = None,
) -> CreateVirtualClusterStep:
    """Step that creates virtual cluster *name* on *cluster_ref*.

    *cluster_ref* is an EKS cluster construct declared in the stack the
    chain is registered in, or a JSON path to a cluster name in the
    execution input.  The created cluster's ``Id``, ``Name`` and ``Arn``
    are written under *result_path*.
    """
    if cluster_ref is None or not (
        isinstance(cluster_ref, str) or hasattr(cluster_ref, "cluster_name")
    ):
        raise WorkflowValidationError(
            "cluster_ref must be an EKS cluster construct or a JSON path, "
            f"got {cluster_ref!r}"
        )
    if isinstance(cluster_ref, str) and not _is_path(cluster_ref):
        raise WorkflowValidationError(
            f"cluster_ref '{cluster_ref}' is a string but not a JSON path"
        )
    if result_path is None:
        raise WorkflowValidationError(
            "The create step must write the virtual cluster id somewhere"
        )
    return CreateVirtualClusterStep(
        state_name,
        eks_cluster=cluster_ref,
        virtual_cluster_name=name,
        eks_namespace=namespace,
        tags=tags,
        result_path=result_path,
    )


def define_submit_job_step(
    cluster_id_path: str,
    job_spec: JobSpec,
    result_path: str,
    *,
    state_name: str = "Start a Job Run",
    integration_pattern: sfn.IntegrationPattern = sfn.IntegrationPattern.RUN_JOB,
) -> StartJobRunStep:
    """Step that submits *job_spec* to the virtual cluster at *cluster_id_path*."""
    return StartJobRunStep(
        state_name,
        virtual_cluster_id=cluster_id_path,
        job=job_spec,
        result_path=result_path,
        integration_pattern=integration_pattern,
    )


def define_delete_cluster_step(
    cluster_id_path: str,
    *,
    state_name: str = "Delete a Virtual Cluster",
    integration_pattern: sfn.IntegrationPattern = sfn.IntegrationPattern.RUN_JOB,
) -> DeleteVirtualClusterStep:
    """Step that deletes the virtual cluster at *cluster_id_path*; its result is discarded."""
    return DeleteVirtualClusterStep(
        state_name,
        virtual_cluster_id=cluster_id_path,
        integration_pattern=integration_pattern,
    )

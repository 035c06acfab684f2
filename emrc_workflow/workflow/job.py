"""Spark job description submitted to an EMR on EKS virtual cluster.

Limits enforced here match what the EMR containers ``StartJobRun`` API
accepts, so a bad job is rejected when the workflow is assembled rather
than twenty minutes into an execution.  Validation runs before any CDK
construct exists; the ``to_cdk`` helpers only translate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from aws_cdk import aws_iam as iam
from aws_cdk import aws_logs as logs
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_stepfunctions as sfn
from aws_cdk import aws_stepfunctions_tasks as tasks
from constructs import Construct

from emrc_workflow.errors import WorkflowValidationError
from emrc_workflow.workflow.paths import parse_path

MAX_JOB_NAME = 64
MAX_ENTRY_POINT = 256
MAX_ENTRY_POINT_ARGUMENTS = 10280
MAX_SPARK_SUBMIT_PARAMETERS = 102400
MAX_APPLICATION_CONFIGS = 100
MAX_CONFIG_PROPERTIES = 100
MAX_CONFIG_DEPTH = 2
MAX_LOG_STREAM_PREFIX = 256


def _label(value: Union[tasks.ReleaseLabel, tasks.Classification, str]) -> str:
    if isinstance(value, tasks.ReleaseLabel):
        return value.label
    if isinstance(value, tasks.Classification):
        return value.classification_statement
    return value


@dataclass
class SparkSubmitJobDriver:
    """Entry point and ``spark-submit`` parameters of the job.

    *entry_point_arguments* is either a list of strings, passed through
    unchanged, or a JSON path naming a list in the execution document.
    """

    entry_point: str
    entry_point_arguments: Optional[Union[List[str], str]] = None
    spark_submit_parameters: Optional[str] = None

    def validate(self) -> None:
        if not isinstance(self.entry_point, str) or not (
            1 <= len(self.entry_point) <= MAX_ENTRY_POINT
        ):
            raise WorkflowValidationError(
                f"Entry point must be 1-{MAX_ENTRY_POINT} characters"
            )
        args = self.entry_point_arguments
        if isinstance(args, str):
            parse_path(args)
        elif args is not None:
            if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
                raise WorkflowValidationError(
                    "Entry point arguments must be a list of strings or a JSON path"
                )
            if len(args) > MAX_ENTRY_POINT_ARGUMENTS:
                raise WorkflowValidationError(
                    f"At most {MAX_ENTRY_POINT_ARGUMENTS} entry point arguments "
                    f"are allowed, got {len(args)}"
                )
        params = self.spark_submit_parameters
        if params is not None and not (1 <= len(params) <= MAX_SPARK_SUBMIT_PARAMETERS):
            raise WorkflowValidationError(
                f"Spark submit parameters must be 1-{MAX_SPARK_SUBMIT_PARAMETERS} characters"
            )

    def read_paths(self) -> List[str]:
        if isinstance(self.entry_point_arguments, str):
            return [self.entry_point_arguments]
        return []

    def to_cdk(self) -> tasks.JobDriver:
        args = self.entry_point_arguments
        if isinstance(args, str):
            arguments: Optional[sfn.TaskInput] = sfn.TaskInput.from_json_path_at(args)
        elif args:
            # TaskInput.from_object only takes a mapping from Python; the
            # States.Array intrinsic evaluates to the same list.
            arguments = sfn.TaskInput.from_text(sfn.JsonPath.array(*args))
        else:
            arguments = None
        return tasks.JobDriver(
            spark_submit_job_driver=tasks.SparkSubmitJobDriver(
                entry_point=sfn.TaskInput.from_text(self.entry_point),
                entry_point_arguments=arguments,
                spark_submit_parameters=self.spark_submit_parameters,
            )
        )


@dataclass
class ApplicationConfiguration:
    classification: Union[tasks.Classification, str]
    properties: Dict[str, str] = field(default_factory=dict)
    nested_config: List["ApplicationConfiguration"] = field(default_factory=list)

    @property
    def classification_name(self) -> str:
        return _label(self.classification)

    def validate(self, depth: int = 1) -> None:
        if depth > MAX_CONFIG_DEPTH:
            raise WorkflowValidationError(
                f"Application configuration nests deeper than {MAX_CONFIG_DEPTH} levels"
            )
        if not self.classification_name:
            raise WorkflowValidationError("Application configuration needs a classification")
        if not self.properties and not self.nested_config:
            raise WorkflowValidationError(
                f"Application configuration '{self.classification_name}' "
                "needs properties or nested configuration"
            )
        if len(self.properties) > MAX_CONFIG_PROPERTIES:
            raise WorkflowValidationError(
                f"Application configuration '{self.classification_name}' has "
                f"{len(self.properties)} properties; at most {MAX_CONFIG_PROPERTIES} allowed"
            )
        for nested in self.nested_config:
            nested.validate(depth + 1)

    def to_cdk(self) -> tasks.ApplicationConfiguration:
        classification = self.classification
        if not isinstance(classification, tasks.Classification):
            classification = tasks.Classification(classification)
        return tasks.ApplicationConfiguration(
            classification=classification,
            properties=dict(self.properties) or None,
            nested_config=[c.to_cdk() for c in self.nested_config] or None,
        )


@dataclass
class Monitoring:
    """Where job logs go.

    Log group and bucket are given by name or as constructs.  With
    *logging* on and neither given, ``EmrContainersStartJobRun`` creates
    both next to the state machine and grants the execution role access.
    """

    logging: bool = False
    log_group: Optional[Union[str, logs.ILogGroup]] = None
    log_stream_name_prefix: Optional[str] = None
    log_bucket: Optional[Union[str, s3.IBucket]] = None
    persistent_app_ui: Optional[bool] = None

    def validate(self) -> None:
        prefix = self.log_stream_name_prefix
        if prefix is not None:
            if self.log_group is None and not self.logging:
                raise WorkflowValidationError(
                    "log_stream_name_prefix needs a log group or logging enabled"
                )
            if not (1 <= len(prefix) <= MAX_LOG_STREAM_PREFIX):
                raise WorkflowValidationError(
                    f"Log stream name prefix must be 1-{MAX_LOG_STREAM_PREFIX} characters"
                )

    def to_cdk(self, scope: Construct, id_prefix: str) -> tasks.Monitoring:
        """Translate, importing named targets under *scope*."""
        log_group = self.log_group
        if isinstance(log_group, str):
            log_group = logs.LogGroup.from_log_group_name(
                scope, f"{id_prefix} Log Group", log_group
            )
        bucket = self.log_bucket
        if isinstance(bucket, str):
            bucket = s3.Bucket.from_bucket_name(scope, f"{id_prefix} Log Bucket", bucket)
        return tasks.Monitoring(
            logging=self.logging,
            log_group=log_group,
            log_stream_name_prefix=self.log_stream_name_prefix,
            log_bucket=bucket,
            persistent_app_ui=self.persistent_app_ui,
        )


@dataclass
class JobSpec:
    """Everything ``StartJobRun`` needs besides the virtual cluster id.

    *execution_role* is a role construct or the ARN of an existing role.
    """

    job_name: str
    release_label: Union[tasks.ReleaseLabel, str]
    execution_role: Union[iam.IRole, str]
    job_driver: SparkSubmitJobDriver
    application_config: List[ApplicationConfiguration] = field(default_factory=list)
    monitoring: Optional[Monitoring] = None
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def release_label_name(self) -> str:
        return _label(self.release_label)

    def validate(self) -> None:
        if self.job_name is not None and not (1 <= len(self.job_name) <= MAX_JOB_NAME):
            raise WorkflowValidationError(
                f"Job name must be 1-{MAX_JOB_NAME} characters, got '{self.job_name}'"
            )
        if not self.release_label or not self.release_label_name:
            raise WorkflowValidationError("Release label is required")
        if not self.execution_role:
            raise WorkflowValidationError("Execution role is required")
        if self.job_driver is None:
            raise WorkflowValidationError("Job driver is required")
        self.job_driver.validate()
        if len(self.application_config) > MAX_APPLICATION_CONFIGS:
            raise WorkflowValidationError(
                f"At most {MAX_APPLICATION_CONFIGS} application configurations "
                f"are allowed, got {len(self.application_config)}"
            )
        for cfg in self.application_config:
            cfg.validate()
        if self.monitoring is not None:
            self.monitoring.validate()

    def cdk_release_label(self) -> tasks.ReleaseLabel:
        if isinstance(self.release_label, tasks.ReleaseLabel):
            return self.release_label
        return tasks.ReleaseLabel(self.release_label)

    def cdk_execution_role(self, scope: Construct, construct_id: str) -> iam.IRole:
        if isinstance(self.execution_role, str):
            return iam.Role.from_role_arn(scope, construct_id, self.execution_role)
        return self.execution_role

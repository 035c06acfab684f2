"""Pydantic models for the workflow config file.

Structure::

    workflow:
      stack_name: ...
      timeout_minutes: 20
      eks_cluster: {construct_id, cluster_name, version}
      execution_role: {construct_id, assumed_by: [...], role_arn}
      virtual_cluster: {state_name, name, namespace, result_path}
      job: {state_name, cluster_id_path, job_name, release_label, entry_point,
            entry_point_arguments, spark_submit_parameters,
            application_config: [{classification, properties}],
            monitoring: {logging, persistent_app_ui, log_group_name,
                         log_stream_name_prefix, log_bucket_name},
            result_path}
      teardown: {state_name, cluster_id_path}
      integ: {name, rollback}

Every field has a default; an empty file describes the stock job
submission workflow (SparkPi with one argument on EMR 6.2.0).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_STACK_NAME = "aws-stepfunctions-tasks-emr-containers-all-services-test"
DEFAULT_INTEG_NAME = "aws-stepfunctions-tasks-emr-containers-all-services"

DEFAULT_ENTRY_POINT = "local:///usr/lib/spark/examples/src/main/python/pi.py"
DEFAULT_SPARK_SUBMIT_PARAMETERS = (
    "--conf spark.driver.memory=512M "
    "--conf spark.kubernetes.driver.request.cores=0.2 "
    "--conf spark.kubernetes.executor.request.cores=0.2 "
    "--conf spark.sql.shuffle.partitions=60 "
    "--conf spark.dynamicAllocation.enabled=false"
)


def _stringify(value: Any) -> Any:
    """YAML reads ``2`` and ``true`` as int/bool; EMR wants strings."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


class EksClusterConfig(BaseModel):
    """Existing EKS cluster, imported by name (*cluster_name* defaults to *construct_id*)."""

    construct_id: str = "integration-test-eks-cluster"
    cluster_name: Optional[str] = None
    version: str = "1.21"

    @field_validator("version", mode="before")
    @classmethod
    def _version_str(cls, v: Any) -> Any:
        return _stringify(v)


class ExecutionRoleConfig(BaseModel):
    """Job execution role; set *role_arn* to use an existing role instead."""

    construct_id: str = "JobExecutionRole"
    assumed_by: List[str] = Field(
        default_factory=lambda: [
            "emr-containers.amazonaws.com",
            "states.amazonaws.com",
        ]
    )
    role_arn: Optional[str] = None


class VirtualClusterConfig(BaseModel):
    state_name: str = "Create a virtual Cluster"
    name: str = "Virtual-Cluster-Name"
    namespace: str = "default"
    result_path: str = "$.cluster"


class ApplicationConfigModel(BaseModel):
    classification: str
    properties: Dict[str, str] = Field(default_factory=dict)

    @field_validator("properties", mode="before")
    @classmethod
    def _props_str(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {k: _stringify(val) for k, val in v.items()}
        return v


class MonitoringConfig(BaseModel):
    logging: bool = True
    persistent_app_ui: Optional[bool] = True
    log_group_name: Optional[str] = None
    log_stream_name_prefix: Optional[str] = None
    log_bucket_name: Optional[str] = None


class JobConfig(BaseModel):
    state_name: str = "Start a Job Run"
    cluster_id_path: str = "$.cluster.Id"
    job_name: str = "EMR-Containers-Job"
    release_label: str = "emr-6.2.0-latest"
    entry_point: str = DEFAULT_ENTRY_POINT
    entry_point_arguments: List[str] = Field(default_factory=lambda: ["2"])
    spark_submit_parameters: Optional[str] = DEFAULT_SPARK_SUBMIT_PARAMETERS
    application_config: List[ApplicationConfigModel] = Field(
        default_factory=lambda: [
            ApplicationConfigModel(
                classification="spark-defaults",
                properties={
                    "spark.executor.instances": "1",
                    "spark.executor.memory": "512M",
                },
            )
        ]
    )
    monitoring: Optional[MonitoringConfig] = Field(default_factory=MonitoringConfig)
    result_path: str = "$.job"

    @field_validator("entry_point_arguments", mode="before")
    @classmethod
    def _args_str(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return [_stringify(a) for a in v]
        return v


class TeardownConfig(BaseModel):
    state_name: str = "Delete a Virtual Cluster"
    cluster_id_path: str = "$.job.VirtualClusterId"


class IntegConfig(BaseModel):
    name: str = DEFAULT_INTEG_NAME
    rollback: bool = True


class WorkflowConfig(BaseModel):
    stack_name: str = Field(
        default=DEFAULT_STACK_NAME,
        pattern=r"^[A-Za-z][A-Za-z0-9-]{0,127}$",
    )
    timeout_minutes: int = Field(default=20, gt=0)
    eks_cluster: EksClusterConfig = Field(default_factory=EksClusterConfig)
    execution_role: ExecutionRoleConfig = Field(default_factory=ExecutionRoleConfig)
    virtual_cluster: VirtualClusterConfig = Field(default_factory=VirtualClusterConfig)
    job: JobConfig = Field(default_factory=JobConfig)
    teardown: TeardownConfig = Field(default_factory=TeardownConfig)
    integ: IntegConfig = Field(default_factory=IntegConfig)


class ConfigFile(BaseModel):
    """Root model wrapping the ``workflow:`` key."""

    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)

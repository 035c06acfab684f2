"""AWS service interactions (STS, EKS, CloudFormation, Step Functions)."""

from emrc_workflow.aws.cloudformation import (
    COMPLETE_STATUSES,
    FAILED_STATUSES,
    DeployResult,
    deploy_stack,
    describe_stack_status,
    destroy_stack,
    get_stack_outputs,
    make_stack_preflight_step,
)
from emrc_workflow.aws.context import AWSContext, resolve_profile, resolve_region
from emrc_workflow.aws.eks import check_eks_cluster, make_eks_preflight_step
from emrc_workflow.aws.stepfunctions import (
    ExecutionResult,
    describe_execution,
    failure_message,
    start_execution,
    wait_for_execution,
)

__all__ = [
    "AWSContext",
    "COMPLETE_STATUSES",
    "DeployResult",
    "ExecutionResult",
    "FAILED_STATUSES",
    "check_eks_cluster",
    "deploy_stack",
    "describe_execution",
    "describe_stack_status",
    "destroy_stack",
    "failure_message",
    "get_stack_outputs",
    "make_eks_preflight_step",
    "make_stack_preflight_step",
    "resolve_profile",
    "resolve_region",
    "start_execution",
    "wait_for_execution",
]

"""Tests for emrc_workflow.workflow.job_submission and synthesis of the app."""

from __future__ import annotations

import json
from typing import Any, Dict

import pytest
from aws_cdk import aws_iam as iam
from aws_cdk.assertions import Template

from emrc_workflow.config.models import (
    DEFAULT_INTEG_NAME,
    DEFAULT_STACK_NAME,
    EksClusterConfig,
    ExecutionRoleConfig,
    IntegConfig,
    JobConfig,
    TeardownConfig,
    WorkflowConfig,
)
from emrc_workflow.errors import WorkflowValidationError
from emrc_workflow.workflow.job_submission import build_app, job_spec_from_config
from emrc_workflow.workflow.state_machine import render_definition


def _definition(built) -> Dict[str, Any]:
    return render_definition(Template.from_stack(built.stack).to_json())


# ── build_app defaults ───────────────────────────────────────────────


class TestBuildAppDefaults:
    def test_stack_and_cluster(self):
        built = build_app()
        assert built.stack.stack_name == DEFAULT_STACK_NAME
        assert built.eks_cluster_name == "integration-test-eks-cluster"
        assert built.eks_cluster.cluster_name == "integration-test-eks-cluster"
        assert built.eks_version == "1.21"

    def test_cluster_is_imported_not_provisioned(self):
        template = Template.from_stack(build_app().stack)
        template.resource_count_is("AWS::EKS::Cluster", 0)
        template.resource_count_is("Custom::AWSCDK-EKS-Cluster", 0)

    def test_execution_role_trusts_both_services(self):
        built = build_app()
        assert isinstance(built.execution_role, iam.Role)
        roles = Template.from_stack(built.stack).find_resources("AWS::IAM::Role")
        services = set()
        for role in roles.values():
            for stmt in role["Properties"]["AssumeRolePolicyDocument"]["Statement"]:
                service = stmt["Principal"].get("Service", [])
                services.update([service] if isinstance(service, str) else service)
        assert {"emr-containers.amazonaws.com", "states.amazonaws.com"} <= services

    def test_step_order(self):
        built = build_app()
        assert [s.name for s in built.chain.steps] == [
            "Create a virtual Cluster",
            "Start a Job Run",
            "Delete a Virtual Cluster",
        ]
        assert all(s.registered for s in built.chain.steps)

    def test_path_wiring(self):
        states = _definition(build_app())["States"]
        assert states["Create a virtual Cluster"]["ResultPath"] == "$.cluster"
        start = states["Start a Job Run"]
        assert start["Parameters"]["VirtualClusterId.$"] == "$.cluster.Id"
        assert start["ResultPath"] == "$.job"
        delete = states["Delete a Virtual Cluster"]
        assert delete["Parameters"] == {"Id.$": "$.job.VirtualClusterId"}
        assert delete["ResultPath"] is None

    def test_job_parameters(self):
        params = _definition(build_app())["States"]["Start a Job Run"]["Parameters"]
        assert params["Name"] == "EMR-Containers-Job"
        assert params["ReleaseLabel"] == "emr-6.2.0-latest"
        assert params["ExecutionRoleArn"].startswith("${JobExecutionRole")
        driver = params["JobDriver"]["SparkSubmitJobDriver"]
        assert driver["EntryPoint"] == "local:///usr/lib/spark/examples/src/main/python/pi.py"
        assert driver["EntryPointArguments.$"] == "States.Array('2')"
        assert "--conf spark.driver.memory=512M" in driver["SparkSubmitParameters"]
        overrides = params["ConfigurationOverrides"]
        assert overrides["ApplicationConfiguration"] == [
            {
                "Classification": "spark-defaults",
                "Properties": {
                    "spark.executor.instances": "1",
                    "spark.executor.memory": "512M",
                },
            }
        ]
        mon = overrides["MonitoringConfiguration"]
        assert mon["PersistentAppUI"] == "ENABLED"
        assert "CloudWatchMonitoringConfiguration" in mon
        assert "S3MonitoringConfiguration" in mon

    def test_timeout(self):
        built = build_app()
        assert built.timeout.total_seconds() == 1200
        assert _definition(built)["TimeoutSeconds"] == 1200

    def test_integ_test(self):
        built = build_app()
        assert built.integ_test.node.id == DEFAULT_INTEG_NAME
        assert built.rollback is True

    def test_monitoring_resources_declared(self):
        template = Template.from_stack(build_app().stack)
        template.resource_count_is("AWS::Logs::LogGroup", 1)
        template.resource_count_is("AWS::S3::Bucket", 1)


# ── build_app with config overrides ──────────────────────────────────


class TestBuildAppOverrides:
    def test_existing_role_arn(self):
        arn = "arn:aws:iam::123456789012:role/existing"
        built = build_app(WorkflowConfig(execution_role=ExecutionRoleConfig(role_arn=arn)))
        assert built.execution_role.role_arn == arn
        params = _definition(built)["States"]["Start a Job Run"]["Parameters"]
        assert params["ExecutionRoleArn"] == arn

    def test_named_cluster(self):
        built = build_app(WorkflowConfig(eks_cluster=EksClusterConfig(cluster_name="prod-eks")))
        assert built.eks_cluster_name == "prod-eks"
        params = _definition(built)["States"]["Create a virtual Cluster"]["Parameters"]
        assert params["ContainerProvider"]["Id"] == "prod-eks"

    def test_custom_timeout(self):
        built = build_app(WorkflowConfig(timeout_minutes=5))
        assert _definition(built)["TimeoutSeconds"] == 300

    def test_no_monitoring(self):
        built = build_app(WorkflowConfig(job=JobConfig(monitoring=None)))
        params = _definition(built)["States"]["Start a Job Run"]["Parameters"]
        assert "MonitoringConfiguration" not in params["ConfigurationOverrides"]

    def test_rollback_off(self):
        built = build_app(WorkflowConfig(integ=IntegConfig(rollback=False)))
        assert built.rollback is False

    def test_miswired_teardown_rejected(self):
        cfg = WorkflowConfig(teardown=TeardownConfig(cluster_id_path="$.job.ClusterId"))
        with pytest.raises(WorkflowValidationError, match="has no field 'ClusterId'"):
            build_app(cfg)

    def test_teardown_reading_unwritten_path_rejected(self):
        cfg = WorkflowConfig(teardown=TeardownConfig(cluster_id_path="$.other.Id"))
        with pytest.raises(WorkflowValidationError, match="no earlier step writes"):
            build_app(cfg)

    def test_job_spec_from_config(self):
        spec = job_spec_from_config(JobConfig(entry_point_arguments=[7]), "arn:role")
        assert spec.job_driver.entry_point_arguments == ["7"]
        assert spec.execution_role == "arn:role"
        assert spec.monitoring.logging is True


# ── synth ────────────────────────────────────────────────────────────


class TestSynth:
    def test_writes_template_and_integ_manifest(self, tmp_path):
        built = build_app(outdir=str(tmp_path))
        assembly = built.app.synth()

        artifact = assembly.get_stack_by_name(DEFAULT_STACK_NAME)
        template = json.loads((tmp_path / f"{DEFAULT_STACK_NAME}.template.json").read_text())
        assert template == artifact.template
        types = {r["Type"] for r in template["Resources"].values()}
        assert {
            "AWS::StepFunctions::StateMachine",
            "AWS::IAM::Role",
            "AWS::Logs::LogGroup",
            "AWS::S3::Bucket",
        } <= types
        assert "Rules" not in template
        ref = template["Outputs"]["stateMachineArn"]["Value"]["Ref"]
        assert ref.startswith("StateMachine")

        integ = json.loads((tmp_path / "integ.json").read_text())
        (case,) = [
            c for name, c in integ["testCases"].items() if name.startswith(DEFAULT_INTEG_NAME)
        ]
        assert built.stack.artifact_id in case["stacks"]
        assert case["cdkCommandOptions"]["deploy"]["args"]["rollback"] is True

    def test_synth_is_deterministic(self, tmp_path):
        a = build_app(outdir=str(tmp_path / "a")).app.synth()
        b = build_app(outdir=str(tmp_path / "b")).app.synth()
        assert (
            a.get_stack_by_name(DEFAULT_STACK_NAME).template
            == b.get_stack_by_name(DEFAULT_STACK_NAME).template
        )

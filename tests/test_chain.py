"""Tests for emrc_workflow.workflow.chain — ordering and data-flow checks."""

from __future__ import annotations

import pytest
from aws_cdk import App, Stack
from aws_cdk import aws_eks as eks
from aws_cdk import aws_stepfunctions_tasks as tasks

from emrc_workflow.errors import WorkflowValidationError
from emrc_workflow.workflow.chain import Chain, DataDependency, chain, check_data_flow
from emrc_workflow.workflow.job import JobSpec, SparkSubmitJobDriver
from emrc_workflow.workflow.steps import (
    define_create_cluster_step,
    define_delete_cluster_step,
    define_submit_job_step,
)


# ── helpers ──────────────────────────────────────────────────────────


def _job() -> JobSpec:
    return JobSpec(
        job_name="EMR-Containers-Job",
        release_label=tasks.ReleaseLabel.EMR_6_2_0,
        execution_role="arn:aws:iam::123456789012:role/job",
        job_driver=SparkSubmitJobDriver(entry_point="local:///pi.py", entry_point_arguments=["2"]),
    )


def _steps():
    stack = Stack(App(), "chain-test")
    cluster = eks.Cluster.from_cluster_attributes(
        stack, "integration-test-eks-cluster", cluster_name="integration-test-eks-cluster"
    )
    create = define_create_cluster_step(cluster, "Virtual-Cluster-Name", "$.cluster")
    submit = define_submit_job_step("$.cluster.Id", _job(), "$.job")
    delete = define_delete_cluster_step("$.job.VirtualClusterId")
    return create, submit, delete


# ── chain / Chain ────────────────────────────────────────────────────


class TestChain:
    def test_three_step_chain(self):
        create, submit, delete = _steps()
        wf = chain(create, submit, delete)
        assert len(wf) == 3
        assert wf.start_state is create
        assert wf.end_state is delete
        assert list(wf) == [create, submit, delete]

    def test_successor(self):
        create, submit, delete = _steps()
        wf = chain(create, submit, delete)
        assert wf.successor(create) is submit
        assert wf.successor(submit) is delete
        assert wf.successor(delete) is None

    def test_fluent_builder(self):
        create, submit, delete = _steps()
        wf = Chain.start(create).next(submit).next(delete)
        assert [s.name for s in wf.steps] == [
            "Create a virtual Cluster",
            "Start a Job Run",
            "Delete a Virtual Cluster",
        ]

    def test_next_returns_new_chain(self):
        create, submit, _ = _steps()
        first = Chain.start(create)
        second = first.next(submit)
        assert len(first) == 1
        assert len(second) == 2

    def test_steps_stay_unregistered(self):
        create, submit, delete = _steps()
        chain(create, submit, delete)
        assert not any(s.registered for s in (create, submit, delete))

    def test_dependencies(self):
        create, submit, delete = _steps()
        deps = chain(create, submit, delete).dependencies
        assert deps == [
            DataDependency(
                reader="Start a Job Run",
                path="$.cluster.Id",
                writer="Create a virtual Cluster",
                written_path="$.cluster",
            ),
            DataDependency(
                reader="Delete a Virtual Cluster",
                path="$.job.VirtualClusterId",
                writer="Start a Job Run",
                written_path="$.job",
            ),
        ]


# ── check_data_flow ──────────────────────────────────────────────────


class TestDataFlow:
    def test_empty_chain(self):
        with pytest.raises(WorkflowValidationError, match="at least one step"):
            check_data_flow([])

    def test_reordered_chain_rejected(self):
        create, submit, delete = _steps()
        with pytest.raises(WorkflowValidationError, match="no earlier step writes"):
            chain(submit, create, delete)

    def test_delete_before_submit_rejected(self):
        create, submit, delete = _steps()
        with pytest.raises(WorkflowValidationError, match="Delete a Virtual Cluster"):
            chain(create, delete, submit)

    def test_fluent_builder_fails_at_bad_step(self):
        create, submit, delete = _steps()
        wf = Chain.start(create)
        with pytest.raises(WorkflowValidationError, match="no earlier step writes"):
            wf.next(delete)

    def test_unknown_result_field_rejected(self):
        create, _, _ = _steps()
        bad = define_delete_cluster_step("$.cluster.VirtualClusterId", state_name="Delete")
        with pytest.raises(WorkflowValidationError, match="has no field 'VirtualClusterId'"):
            chain(create, bad)

    def test_duplicate_state_name_rejected(self):
        create, submit, _ = _steps()
        again = define_submit_job_step("$.cluster.Id", _job(), "$.job2")
        with pytest.raises(WorkflowValidationError, match="more than once"):
            chain(create, submit, again)

    def test_input_paths_cover_reads(self):
        _, submit, delete = _steps()
        wf = chain(submit, delete, input_paths=["$.cluster"])
        assert wf.dependencies[0].writer is None
        assert wf.input_paths == ("$.cluster",)

    def test_context_input_path_rejected(self):
        _, submit, _ = _steps()
        with pytest.raises(WorkflowValidationError, match="context path"):
            chain(submit, input_paths=["$$.Execution.Input"])

    def test_overwrite_replaces_subtree(self):
        # Writing $.cluster after $.cluster.Extra was written drops the latter.
        create, submit, _ = _steps()
        wf = chain(create, submit, input_paths=["$.cluster.Extra"])
        assert wf.dependencies[0].writer == "Create a virtual Cluster"

    def test_root_result_path_covers_everything(self):
        stack = Stack(App(), "root-test")
        cluster = eks.Cluster.from_cluster_attributes(stack, "eks", cluster_name="eks")
        create = define_create_cluster_step(cluster, "vc", "$")
        submit = define_submit_job_step("$.Id", _job(), "$.job")
        wf = chain(create, submit)
        assert wf.dependencies[0].written_path == "$"

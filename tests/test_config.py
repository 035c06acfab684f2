"""Tests for emrc_workflow.config — YAML loading, defaults and write-back."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from emrc_workflow.config.loader import load_config, write_config
from emrc_workflow.config.models import (
    DEFAULT_STACK_NAME,
    ConfigFile,
    WorkflowConfig,
)

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config" / "emrc_workflow.yaml"


# ── defaults ─────────────────────────────────────────────────────────


class TestDefaults:
    def test_workflow_defaults(self):
        cfg = WorkflowConfig()
        assert cfg.stack_name == DEFAULT_STACK_NAME
        assert cfg.timeout_minutes == 20
        assert cfg.virtual_cluster.result_path == "$.cluster"
        assert cfg.job.cluster_id_path == "$.cluster.Id"
        assert cfg.job.result_path == "$.job"
        assert cfg.teardown.cluster_id_path == "$.job.VirtualClusterId"
        assert cfg.integ.rollback is True

    def test_job_defaults(self):
        job = WorkflowConfig().job
        assert job.release_label == "emr-6.2.0-latest"
        assert job.entry_point_arguments == ["2"]
        assert job.application_config[0].classification == "spark-defaults"


# ── load_config ──────────────────────────────────────────────────────


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nope.yaml")
        assert cfg.workflow == WorkflowConfig()

    def test_empty_file_gives_defaults(self, tmp_path):
        p = tmp_path / "empty.yaml"
        p.write_text("")
        assert load_config(p).workflow == WorkflowConfig()

    def test_partial_override(self, tmp_path):
        p = tmp_path / "c.yaml"
        p.write_text(
            "workflow:\n"
            "  stack_name: my-stack\n"
            "  eks_cluster:\n"
            "    version: 1.22\n"
            "  job:\n"
            "    entry_point_arguments: [10, true]\n"
            "    application_config:\n"
            "      - classification: spark-defaults\n"
            "        properties:\n"
            "          spark.executor.instances: 2\n"
        )
        cfg = load_config(p).workflow
        assert cfg.stack_name == "my-stack"
        assert cfg.eks_cluster.version == "1.22"
        assert cfg.job.entry_point_arguments == ["10", "true"]
        assert cfg.job.application_config[0].properties == {"spark.executor.instances": "2"}
        assert cfg.job.job_name == "EMR-Containers-Job"

    def test_non_mapping_rejected(self, tmp_path):
        p = tmp_path / "list.yaml"
        p.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(p)

    def test_bad_value_rejected(self, tmp_path):
        p = tmp_path / "bad.yaml"
        p.write_text("workflow:\n  timeout_minutes: 0\n")
        with pytest.raises(ValidationError):
            load_config(p)

    def test_invalid_stack_name_rejected(self, tmp_path):
        p = tmp_path / "bad-stack.yaml"
        p.write_text("workflow:\n  stack_name: 1st_stack\n")
        with pytest.raises(ValidationError, match="stack_name"):
            load_config(p)

    def test_monitoring_bucket_by_name(self, tmp_path):
        p = tmp_path / "mon.yaml"
        p.write_text(
            "workflow:\n"
            "  job:\n"
            "    monitoring:\n"
            "      log_bucket_name: job-logs\n"
            "      log_group_name: /emr/jobs\n"
        )
        mon = load_config(p).workflow.job.monitoring
        assert mon.log_bucket_name == "job-logs"
        assert mon.log_group_name == "/emr/jobs"
        assert mon.logging is True

    def test_unparsable_yaml(self, tmp_path):
        p = tmp_path / "broken.yaml"
        p.write_text("workflow: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_config(p)

    def test_repo_config_matches_defaults(self):
        assert load_config(REPO_CONFIG).workflow == WorkflowConfig()


# ── write_config ─────────────────────────────────────────────────────


class TestWriteConfig:
    def test_write_then_load(self, tmp_path):
        cfg = ConfigFile(workflow=WorkflowConfig(stack_name="written"))
        path = write_config(cfg, tmp_path / "sub" / "out.yaml")
        assert path.exists()
        assert load_config(path).workflow.stack_name == "written"

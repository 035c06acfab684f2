"""Workflow configuration: YAML file models and loading."""

from emrc_workflow.config.loader import DEFAULT_CONFIG_PATH, load_config, write_config
from emrc_workflow.config.models import (
    ConfigFile,
    JobConfig,
    MonitoringConfig,
    WorkflowConfig,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ConfigFile",
    "JobConfig",
    "MonitoringConfig",
    "WorkflowConfig",
    "load_config",
    "write_config",
]

"""EMR on EKS job submission workflow.

Assembles a Step Functions state machine that creates an EMR-on-EKS
virtual cluster, runs a Spark job on it, and deletes the virtual cluster,
then hands the result to CloudFormation for deployment.
"""

try:
    from importlib.metadata import version

    __version__ = version("emr-containers-workflow")
except Exception:
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]

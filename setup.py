from setuptools import setup, find_packages

setup(
    name="emr-containers-workflow",
    version="0.1.0",
    packages=find_packages(include=["emrc_workflow", "emrc_workflow.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "boto3",
        "botocore",
        "pydantic>=2",
        "PyYAML",
        "typer",
        "cli-core-yo",
        "rich",
        "aws-cdk-lib>=2.85.0",
        "constructs>=10.0.0,<11.0.0",
        "aws-cdk.integ-tests-alpha>=2.85.0a0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "emrc-workflow=emrc_workflow.cli:main",
        ],
    },
)

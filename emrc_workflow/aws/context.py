"""AWS context: session, identity, and region resolution.

Wraps boto3 session creation and STS ``get-caller-identity`` into a single
:class:`AWSContext` that the deploy and execution helpers depend on.

Region resolution precedence:
1. Explicit ``--region`` CLI flag
2. ``AWS_REGION`` / ``AWS_DEFAULT_REGION`` env vars
3. Hardcoded fallback (``us-east-1``)

Profile resolution precedence:
1. Explicit ``--profile`` CLI flag
2. ``AWS_PROFILE`` env var
3. None — boto3's default credential chain
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

_DEFAULT_REGION = "us-east-1"


def resolve_region(region: Optional[str] = None) -> str:
    """Return the AWS region: *region* → ``AWS_REGION`` → ``AWS_DEFAULT_REGION`` → fallback."""
    return (
        region
        or os.environ.get("AWS_REGION")
        or os.environ.get("AWS_DEFAULT_REGION")
        or _DEFAULT_REGION
    )


def resolve_profile(profile: Optional[str] = None) -> Optional[str]:
    """Return the AWS profile, or ``None`` to use the default credential chain."""
    return profile or os.environ.get("AWS_PROFILE") or None


@dataclass
class AWSContext:
    """Resolved AWS identity plus a session factory.

    Attributes:
        region: AWS region (e.g. ``us-west-2``).
        profile: Profile name, or ``None`` for the default chain.
        account_id: 12-digit AWS account ID.
        caller_arn: Full ARN from ``sts:GetCallerIdentity``.
    """

    region: str
    profile: Optional[str] = None
    account_id: str = ""
    caller_arn: str = ""
    _session: Any = field(default=None, repr=False, compare=False)

    @classmethod
    def build(
        cls,
        region: Optional[str] = None,
        profile: Optional[str] = None,
    ) -> "AWSContext":
        """Construct an :class:`AWSContext` by calling STS.

        Raises :class:`RuntimeError` on credential / network failures.
        """
        resolved_profile = resolve_profile(profile)
        resolved_region = resolve_region(region)

        session = boto3.Session(
            profile_name=resolved_profile, region_name=resolved_region,
        )
        try:
            identity = session.client("sts").get_caller_identity()
        except (BotoCoreError, ClientError) as exc:
            raise RuntimeError(
                f"AWS credentials invalid or inaccessible in region "
                f"{resolved_region}: {exc}"
            ) from exc

        return cls(
            region=resolved_region,
            profile=resolved_profile,
            account_id=identity["Account"],
            caller_arn=identity["Arn"],
            _session=session,
        )

    @property
    def session(self) -> boto3.Session:
        """Return the cached :class:`boto3.Session`."""
        if self._session is None:
            self._session = boto3.Session(
                profile_name=self.profile, region_name=self.region,
            )
        return self._session

    def client(self, service: str, **kwargs: Any) -> Any:
        """Create a boto3 client for *service*."""
        return self.session.client(service, **kwargs)

    def state_machine_arn(self, name: str) -> str:
        """ARN of state machine *name* in this account and region."""
        return f"arn:aws:states:{self.region}:{self.account_id}:stateMachine:{name}"

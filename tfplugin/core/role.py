from __future__ import annotations

import logging
from typing import Any, Optional

import boto3
from botocore import exceptions

from .environment import EnvironmentOverlay
from .errors import CredentialError

logger = logging.getLogger(__name__)

SESSION_NAME = "drone"
DURATION_SECONDS = 60 * 60


def _sts_client() -> Any:
    return boto3.Session().client("sts")


def assume_role(role_arn: str, client: Optional[Any] = None) -> EnvironmentOverlay:
    """
    Exchange `role_arn` for temporary credentials via STS AssumeRole.

    Returns the AWS_* variables for the spawned commands; the process
    environment is left as it is.
    """
    try:
        sts = client if client is not None else _sts_client()
        resp = sts.assume_role(
            RoleArn=role_arn,
            RoleSessionName=SESSION_NAME,
            DurationSeconds=DURATION_SECONDS,
        )
        creds = resp["Credentials"]
    except (exceptions.BotoCoreError, exceptions.ClientError, KeyError) as e:
        raise CredentialError(
            code="role.assume_failed",
            message="Error assuming role!",
            data={"role_arn": role_arn, "error": str(e)},
        ) from e

    logger.debug("Assumed role %s (session=%s)", role_arn, SESSION_NAME)
    return EnvironmentOverlay(
        {
            "AWS_ACCESS_KEY_ID": creds["AccessKeyId"],
            "AWS_SECRET_ACCESS_KEY": creds["SecretAccessKey"],
            "AWS_SESSION_TOKEN": creds["SessionToken"],
        }
    )

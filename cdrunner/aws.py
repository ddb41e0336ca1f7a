"""
Construction of boto3 clients from runner parameters.
"""

import re
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional
import logging

import boto3

from .constants import (
    ACCESS_KEY_ID_PARAM, CREDENTIALS_TYPE_PARAM, EXTERNAL_ID_PARAM, IAM_ROLE_ARN_PARAM,
    REGION_NAME_PARAM, SECRET_ACCESS_KEY_PARAM, SERVICE_ENDPOINT_PARAM, TEMP_CREDENTIALS_DURATION_SEC_PARAM,
    TEMP_CREDENTIALS_OPTION, TEMP_CREDENTIALS_SESSION_NAME_PARAM,
)
from .params import get_int_param, get_param, is_use_default_credential_provider_chain
from .regions import region_display_name

logger = logging.getLogger(__name__)

SESSION_NAME_PREFIX = "cdrunner_"
SESSION_DURATION_DEFAULT = 1800
MAX_SESSION_NAME_LENGTH = 64
UNSUPPORTED_SESSION_NAME_CHARS = re.compile(r"[^\w+=,.@-]")


@dataclass
class AWSClients:
    """Storage and deployment clients bound to one region and credential set."""
    s3: Any
    codedeploy: Any
    region: Optional[str] = None


def patch_session_duration(duration: int) -> int:
    return max(900, min(duration, 3600))


def patch_session_name(name: str) -> str:
    return UNSUPPORTED_SESSION_NAME_CHARS.sub("_", name)[:MAX_SESSION_NAME_LENGTH]


def _is_temp_credentials(params: Mapping[str, str]) -> bool:
    return get_param(params, CREDENTIALS_TYPE_PARAM) in (TEMP_CREDENTIALS_OPTION, "codedeploy_temp_credentials")


def create_session(params: Mapping[str, str]) -> boto3.session.Session:
    """
    Create a boto3 session for the configured region and credentials.

    Access keys are used unless the default credential provider chain is
    requested. With temporary credentials the configured IAM role is assumed
    through STS first.

    Args:
        params: Runner parameters

    Returns:
        boto3 Session
    """
    region = get_param(params, REGION_NAME_PARAM)

    if is_use_default_credential_provider_chain(params):
        base = boto3.session.Session(region_name=region)
    else:
        base = boto3.session.Session(
            aws_access_key_id=get_param(params, ACCESS_KEY_ID_PARAM),
            aws_secret_access_key=get_param(params, SECRET_ACCESS_KEY_PARAM),
            region_name=region,
        )

    if not _is_temp_credentials(params):
        return base

    session_name = get_param(params, TEMP_CREDENTIALS_SESSION_NAME_PARAM)
    if not session_name or not session_name.strip():
        session_name = f"{SESSION_NAME_PREFIX}{int(time.time() * 1000)}"

    request = {
        "RoleArn": get_param(params, IAM_ROLE_ARN_PARAM),
        "RoleSessionName": patch_session_name(session_name),
        "DurationSeconds": patch_session_duration(
            get_int_param(params, TEMP_CREDENTIALS_DURATION_SEC_PARAM, SESSION_DURATION_DEFAULT)
        ),
    }
    external_id = get_param(params, EXTERNAL_ID_PARAM)
    if external_id:
        request["ExternalId"] = external_id

    logger.info(f"Assuming role {request['RoleArn']} with session {request['RoleSessionName']}")
    credentials = base.client("sts").assume_role(**request)["Credentials"]

    return boto3.session.Session(
        aws_access_key_id=credentials["AccessKeyId"],
        aws_secret_access_key=credentials["SecretAccessKey"],
        aws_session_token=credentials["SessionToken"],
        region_name=region,
    )


def create_clients(params: Mapping[str, str]) -> AWSClients:
    """Create the S3 and CodeDeploy clients described by the parameters."""
    session = create_session(params)
    endpoint = get_param(params, SERVICE_ENDPOINT_PARAM) or None
    if session.region_name:
        logger.info(f"Using AWS region {region_display_name(session.region_name)}")

    return AWSClients(
        s3=session.client("s3", endpoint_url=endpoint),
        codedeploy=session.client("codedeploy", endpoint_url=endpoint),
        region=session.region_name,
    )

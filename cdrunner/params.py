"""
Runner parameter lookup, step flags, target instance parsing and validation.
"""

import hashlib
import re
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from .constants import (
    ACCESS_KEY_ID_PARAM, ACCESS_KEYS_OPTION, APP_NAME_PARAM, CREDENTIALS_TYPE_PARAM,
    DEPLOY_STEP, DEPLOYMENT_CONFIG_NAME_PARAM, DEPLOYMENT_GROUP_NAME_PARAM, DEPLOYMENT_STEPS_PARAM,
    EXTERNAL_ID_PARAM, FILE_EXISTS_BEHAVIOR_PARAM, FILE_EXISTS_BEHAVIORS, GREEN_FLEET_PARAM,
    IAM_ROLE_ARN_PARAM, MULTILINE_SPLIT_REGEX, REGION_NAME_PARAM, REGISTER_STEP, REVISION_PATHS_PARAM,
    ROLLBACK_ON_ALARM_THRESHOLD_PARAM, ROLLBACK_ON_FAILURE_PARAM, S3_BUCKET_NAME_PARAM,
    S3_OBJECT_KEY_PARAM, SECRET_ACCESS_KEY_PARAM, TEMP_CREDENTIALS_OPTION, UPLOAD_STEP,
    USE_DEFAULT_CREDENTIAL_PROVIDER_CHAIN_PARAM, WAIT_FLAG_PARAM, WAIT_TIMEOUT_SEC_PARAM,
)
from .mappings import get_bundle_type, get_ready_revision, parse_revision_paths

# Keys tried in priority order: current name first, then legacy names
PARAM_KEYS = MappingProxyType({
    DEPLOYMENT_STEPS_PARAM: (DEPLOYMENT_STEPS_PARAM, "codedeploy_deployment_steps"),
    REVISION_PATHS_PARAM: (REVISION_PATHS_PARAM, "codedeploy_revision_paths"),
    S3_BUCKET_NAME_PARAM: (S3_BUCKET_NAME_PARAM, "codedeploy_s3_bucket_name"),
    S3_OBJECT_KEY_PARAM: (S3_OBJECT_KEY_PARAM, "codedeploy_s3_object_key"),
    APP_NAME_PARAM: (APP_NAME_PARAM, "codedeploy_application_name"),
    DEPLOYMENT_GROUP_NAME_PARAM: (DEPLOYMENT_GROUP_NAME_PARAM, "codedeploy_deployment_group_name"),
    DEPLOYMENT_CONFIG_NAME_PARAM: (DEPLOYMENT_CONFIG_NAME_PARAM, "codedeploy_deployment_config_name"),
    FILE_EXISTS_BEHAVIOR_PARAM: (FILE_EXISTS_BEHAVIOR_PARAM,),
    WAIT_FLAG_PARAM: (WAIT_FLAG_PARAM, "codedeploy_wait"),
    WAIT_TIMEOUT_SEC_PARAM: (WAIT_TIMEOUT_SEC_PARAM, "codedeploy_wait_timeout_sec"),
    ROLLBACK_ON_FAILURE_PARAM: (ROLLBACK_ON_FAILURE_PARAM, "codedeploy_rollback_on_failure"),
    ROLLBACK_ON_ALARM_THRESHOLD_PARAM: (ROLLBACK_ON_ALARM_THRESHOLD_PARAM, "codedeploy_rollback_on_alarm_threshold"),
    GREEN_FLEET_PARAM: (GREEN_FLEET_PARAM, "codedeploy_green_fleet"),
    REGION_NAME_PARAM: (REGION_NAME_PARAM, "codedeploy_region_name"),
    CREDENTIALS_TYPE_PARAM: (CREDENTIALS_TYPE_PARAM, "codedeploy_credentials_type"),
    ACCESS_KEY_ID_PARAM: (ACCESS_KEY_ID_PARAM, "codedeploy_access_key_id"),
    SECRET_ACCESS_KEY_PARAM: (
        "secure:" + SECRET_ACCESS_KEY_PARAM,
        "secure:codedeploy_secret_access_key",
        SECRET_ACCESS_KEY_PARAM,
        "codedeploy_secret_access_key",
    ),
    IAM_ROLE_ARN_PARAM: (IAM_ROLE_ARN_PARAM, "codedeploy_iam_role_arn"),
    EXTERNAL_ID_PARAM: (EXTERNAL_ID_PARAM, "codedeploy_external_id"),
    USE_DEFAULT_CREDENTIAL_PROVIDER_CHAIN_PARAM: (
        USE_DEFAULT_CREDENTIAL_PROVIDER_CHAIN_PARAM,
        "use_default_credential_provider_chain",
    ),
})

LABELS = MappingProxyType({
    DEPLOYMENT_STEPS_PARAM: "Deployment steps",
    REVISION_PATHS_PARAM: "Application revision",
    S3_BUCKET_NAME_PARAM: "S3 bucket",
    S3_OBJECT_KEY_PARAM: "S3 object key",
    APP_NAME_PARAM: "Application name",
    DEPLOYMENT_GROUP_NAME_PARAM: "Deployment group",
    FILE_EXISTS_BEHAVIOR_PARAM: "Behavior when file exists",
    WAIT_TIMEOUT_SEC_PARAM: "Timeout (seconds)",
    REGION_NAME_PARAM: "AWS region",
    CREDENTIALS_TYPE_PARAM: "Credentials type",
    ACCESS_KEY_ID_PARAM: "Access key ID",
    SECRET_ACCESS_KEY_PARAM: "Secret access key",
    IAM_ROLE_ARN_PARAM: "IAM role ARN",
})

REVISION_PATHS_NOTE = "Ant-style wildcards as well as target directories like out/**/*.zip => dist supported"

S3_KEY_SAFE_CHARS = re.compile(r"[a-zA-Z_0-9!\-.*'()/]*")


def get_param(params: Mapping[str, str], name: str) -> Optional[str]:
    """
    Look up a parameter by its current name, falling back to legacy names.

    Args:
        params: Parameter map
        name: Current parameter name

    Returns:
        First non-empty value, or the value of the last key tried
    """
    keys = PARAM_KEYS.get(name, (name,))
    for key in keys:
        value = params.get(key)
        if value:
            return value
    return params.get(keys[-1])


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _parse_bool(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() == "true"


def _is_step_enabled(step: str, params: Mapping[str, str]) -> bool:
    steps = get_param(params, DEPLOYMENT_STEPS_PARAM)
    return steps is not None and step in steps


def is_upload_step_enabled(params: Mapping[str, str]) -> bool:
    return _is_step_enabled(UPLOAD_STEP, params)


def is_register_step_enabled(params: Mapping[str, str]) -> bool:
    return _is_step_enabled(REGISTER_STEP, params)


def is_deploy_step_enabled(params: Mapping[str, str]) -> bool:
    return _is_step_enabled(DEPLOY_STEP, params)


def is_deployment_wait_enabled(params: Mapping[str, str]) -> bool:
    return is_deploy_step_enabled(params) and _parse_bool(get_param(params, WAIT_FLAG_PARAM))


def is_rollback_on_failure(params: Mapping[str, str]) -> bool:
    return _parse_bool(get_param(params, ROLLBACK_ON_FAILURE_PARAM))


def is_rollback_on_alarm_threshold(params: Mapping[str, str]) -> bool:
    return _parse_bool(get_param(params, ROLLBACK_ON_ALARM_THRESHOLD_PARAM))


def is_use_default_credential_provider_chain(params: Mapping[str, str]) -> bool:
    return _parse_bool(get_param(params, USE_DEFAULT_CREDENTIAL_PROVIDER_CHAIN_PARAM))


def get_int_param(params: Mapping[str, str], name: str, default: int) -> int:
    value = get_param(params, name)
    try:
        if value:
            return int(value)
    except ValueError:
        pass
    return default


def _green_fleet_lines(params: Mapping[str, str]) -> List[str]:
    fleet = get_param(params, GREEN_FLEET_PARAM)
    if _is_blank(fleet):
        return []
    return re.split(MULTILINE_SPLIT_REGEX, fleet.strip())


def get_ec2_tags(params: Mapping[str, str]) -> Dict[str, str]:
    """
    EC2 tag filters from the green fleet parameter.

    Lines of the form ``KEY VALUE`` are tag filters; extra words are ignored.
    """
    tags = {}
    for line in _green_fleet_lines(params):
        if " " not in line:
            continue
        words = line.split()
        if len(words) < 2:
            continue
        tags[words[0]] = words[1]
    return tags


def get_auto_scaling_groups(params: Mapping[str, str]) -> List[str]:
    """Auto Scaling group names from the green fleet parameter (lines without spaces)."""
    return [line for line in _green_fleet_lines(params) if line and " " not in line]


def parse_param_overrides(pairs: Iterable[str]) -> Dict[str, str]:
    """
    Parse parameter strings in format "key=value".

    Args:
        pairs: Strings in "key=value" format, the value may be empty

    Returns:
        Dictionary of parsed parameters

    Raises:
        ValueError: If a string has no "=" or an empty key
    """
    params = {}

    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid parameter format: {pair}. Expected 'key=value'")

        key, value = pair.split("=", 1)
        if not key.strip():
            raise ValueError(f"Invalid parameter format: {pair}. Key must not be empty")

        params[key.strip()] = value.strip()

    return params


def _validate_aws(params: Mapping[str, str], invalids: Dict[str, str]) -> None:
    if _is_blank(get_param(params, REGION_NAME_PARAM)):
        invalids[REGION_NAME_PARAM] = f"{LABELS[REGION_NAME_PARAM]} must not be empty"

    if not is_use_default_credential_provider_chain(params):
        if _is_blank(get_param(params, ACCESS_KEY_ID_PARAM)):
            invalids[ACCESS_KEY_ID_PARAM] = f"{LABELS[ACCESS_KEY_ID_PARAM]} must not be empty"
        if _is_blank(get_param(params, SECRET_ACCESS_KEY_PARAM)):
            invalids[SECRET_ACCESS_KEY_PARAM] = f"{LABELS[SECRET_ACCESS_KEY_PARAM]} must not be empty"

    credentials_type = get_param(params, CREDENTIALS_TYPE_PARAM)
    if credentials_type in (TEMP_CREDENTIALS_OPTION, "codedeploy_temp_credentials"):
        if _is_blank(get_param(params, IAM_ROLE_ARN_PARAM)):
            invalids[IAM_ROLE_ARN_PARAM] = f"{LABELS[IAM_ROLE_ARN_PARAM]} must not be empty"
    elif _is_blank(credentials_type):
        invalids[CREDENTIALS_TYPE_PARAM] = f"{LABELS[CREDENTIALS_TYPE_PARAM]} must not be empty"
    elif credentials_type not in (ACCESS_KEYS_OPTION, "codedeploy_access_keys"):
        invalids[CREDENTIALS_TYPE_PARAM] = f"{LABELS[CREDENTIALS_TYPE_PARAM]} has unexpected value {credentials_type}"


def validate_params(params: Mapping[str, str], checkout_dir: Optional[str] = None) -> Dict[str, str]:
    """
    Validate runner parameters.

    Args:
        params: Runner parameters
        checkout_dir: When given, a ready revision named by the revision paths
            must exist relative to it

    Returns:
        Mapping from parameter name to the reason it is invalid
    """
    invalids: Dict[str, str] = {}
    _validate_aws(params, invalids)

    upload = register = deploy = False
    steps = get_param(params, DEPLOYMENT_STEPS_PARAM)
    if _is_blank(steps):
        invalids[DEPLOYMENT_STEPS_PARAM] = f"{LABELS[DEPLOYMENT_STEPS_PARAM]} must not be empty"
    else:
        upload = is_upload_step_enabled(params)
        register = is_register_step_enabled(params)
        deploy = is_deploy_step_enabled(params)
        if not (upload or register or deploy):
            invalids[DEPLOYMENT_STEPS_PARAM] = f"{LABELS[DEPLOYMENT_STEPS_PARAM]} has unexpected value {steps}"

    if upload:
        revision_paths = get_param(params, REVISION_PATHS_PARAM)
        if _is_blank(revision_paths):
            invalids[REVISION_PATHS_PARAM] = f"{LABELS[REVISION_PATHS_PARAM]} must not be empty"
        elif get_ready_revision(revision_paths) is None and not parse_revision_paths(revision_paths):
            invalids[REVISION_PATHS_PARAM] = f"{LABELS[REVISION_PATHS_PARAM]} has unexpected value, {REVISION_PATHS_NOTE}"

    if upload or register or deploy:
        bucket = get_param(params, S3_BUCKET_NAME_PARAM)
        if _is_blank(bucket):
            invalids[S3_BUCKET_NAME_PARAM] = f"{LABELS[S3_BUCKET_NAME_PARAM]} must not be empty"
        elif "/" in bucket:
            invalids[S3_BUCKET_NAME_PARAM] = (
                f"{LABELS[S3_BUCKET_NAME_PARAM]} must not contain / characters. "
                f"For addressing folders use {LABELS[S3_OBJECT_KEY_PARAM]} parameter"
            )

        key = get_param(params, S3_OBJECT_KEY_PARAM)
        if _is_blank(key):
            if not upload:
                invalids[S3_OBJECT_KEY_PARAM] = f"{LABELS[S3_OBJECT_KEY_PARAM]} must not be empty"
        elif not S3_KEY_SAFE_CHARS.fullmatch(key):
            invalids[S3_OBJECT_KEY_PARAM] = f"{LABELS[S3_OBJECT_KEY_PARAM]} must contain only safe characters"
        elif (register or deploy) and get_bundle_type(key) is None:
            invalids[S3_OBJECT_KEY_PARAM] = (
                f"{LABELS[S3_OBJECT_KEY_PARAM]} provides invalid bundle type, "
                "supported bundle types are .zip, .tar and .tar.gz"
            )

    if (register or deploy) and _is_blank(get_param(params, APP_NAME_PARAM)):
        invalids[APP_NAME_PARAM] = f"{LABELS[APP_NAME_PARAM]} must not be empty"

    if deploy:
        if _is_blank(get_param(params, DEPLOYMENT_GROUP_NAME_PARAM)):
            invalids[DEPLOYMENT_GROUP_NAME_PARAM] = f"{LABELS[DEPLOYMENT_GROUP_NAME_PARAM]} must not be empty"

        behavior = get_param(params, FILE_EXISTS_BEHAVIOR_PARAM)
        if behavior and behavior not in FILE_EXISTS_BEHAVIORS:
            invalids[FILE_EXISTS_BEHAVIOR_PARAM] = (
                f"{LABELS[FILE_EXISTS_BEHAVIOR_PARAM]} must contain either DISALLOW, OVERWRITE, or RETAIN"
            )

        if is_deployment_wait_enabled(params):
            timeout = get_param(params, WAIT_TIMEOUT_SEC_PARAM)
            if _is_blank(timeout):
                invalids[WAIT_TIMEOUT_SEC_PARAM] = f"{LABELS[WAIT_TIMEOUT_SEC_PARAM]} must not be empty"
            elif not timeout.strip().isdigit() or int(timeout) <= 0:
                invalids[WAIT_TIMEOUT_SEC_PARAM] = f"{LABELS[WAIT_TIMEOUT_SEC_PARAM]} must be a positive integer value"

    if checkout_dir is not None and REVISION_PATHS_PARAM not in invalids and upload:
        ready = get_ready_revision(get_param(params, REVISION_PATHS_PARAM))
        if ready is not None and not (Path(checkout_dir) / ready).exists():
            invalids[REVISION_PATHS_PARAM] = f"{LABELS[REVISION_PATHS_PARAM]} {ready} doesn't exist"

    return invalids


def calculate_identity(checkout_dir: Optional[str], params: Mapping[str, str], parts: Iterable[Optional[str]]) -> int:
    """
    Stable fingerprint of a configuration and event, used to group recurring problems.

    Args:
        checkout_dir: Directory stripped from every part so that the value does
            not depend on where the sources are checked out
        params: Runner parameters; region, access key id and IAM role ARN take part
        parts: Event specific strings, None values are skipped

    Returns:
        Signed 32-bit integer, independent of the order of the parts
    """
    all_parts = [
        get_param(params, REGION_NAME_PARAM),
        get_param(params, ACCESS_KEY_ID_PARAM),
        get_param(params, IAM_ROLE_ARN_PARAM),
    ]
    all_parts.extend(parts)
    all_parts = sorted(p for p in all_parts if p is not None)

    base = checkout_dir.replace("\\", "/") if checkout_dir else ""
    joined = ""
    for part in all_parts:
        if not part.strip():
            continue
        part = part.replace("\\", "/")
        if base:
            part = part.replace(base, "")
        joined += part

    digest = hashlib.sha256(joined.replace(" ", "").lower().encode("utf-8")).hexdigest()
    value = int(digest[:8], 16)
    return value - (1 << 32) if value >= (1 << 31) else value

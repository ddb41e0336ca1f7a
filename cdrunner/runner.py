"""
Orchestration of the upload, register and deploy stages from runner parameters.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Mapping, Optional
import logging

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from .aws import AWSClients, create_clients
from .client import DeploymentClient
from .constants import (
    APP_NAME_PARAM, CUSTOM_APPSPEC_YML_CONFIG_PARAM, DEPLOYMENT_CONFIG_NAME_PARAM, DEPLOYMENT_GROUP_NAME_PARAM,
    FILE_EXISTS_BEHAVIOR_PARAM, REVISION_PATHS_PARAM, S3_BUCKET_NAME_PARAM, S3_OBJECT_ETAG_CONFIG_PARAM,
    S3_OBJECT_KEY_PARAM, S3_OBJECT_VERSION_CONFIG_PARAM, TEMP_CREDENTIALS_SESSION_NAME_PARAM,
    WAIT_POLL_INTERVAL_SEC_CONFIG_PARAM, WAIT_POLL_INTERVAL_SEC_DEFAULT, WAIT_TIMEOUT_SEC_PARAM,
)
from .errors import CodeDeployRunnerError, ConfigurationError
from .failures import AWSFailure, classify_failure
from .ids import new_run_id
from .listener import DeploymentListener, MulticastDeploymentListener
from .mappings import get_bundle_type
from .params import (
    get_auto_scaling_groups, get_ec2_tags, get_int_param, get_param, is_deploy_step_enabled,
    is_deployment_wait_enabled, is_register_step_enabled, is_rollback_on_alarm_threshold,
    is_rollback_on_failure, is_upload_step_enabled, validate_params,
)
from .revision import ApplicationRevision

logger = logging.getLogger(__name__)


class RunOutcome(Enum):
    """How a run finished."""
    SUCCESS = "success"
    DETACHED = "detached"    # deployment created, not waited for
    PROBLEMS = "problems"
    INTERRUPTED = "interrupted"
    ERROR = "error"


@dataclass
class RunResult:
    """Result of a runner invocation."""
    outcome: RunOutcome
    run_id: str
    archive: Optional[Path] = None
    s3_object_key: Optional[str] = None
    s3_object_version: Optional[str] = None
    s3_object_etag: Optional[str] = None
    deployment_id: Optional[str] = None
    problems: List[str] = field(default_factory=list)
    message: Optional[str] = None


class _RunState(DeploymentListener):
    """Collects what later stages need from the events of earlier ones."""

    def __init__(self, config_params: Mapping[str, str]):
        self.s3_object_version = config_params.get(S3_OBJECT_VERSION_CONFIG_PARAM) or None
        self.s3_object_etag = config_params.get(S3_OBJECT_ETAG_CONFIG_PARAM) or None
        self.deployment_id: Optional[str] = None
        self.problems: List[str] = []
        self.interrupted = False

    @property
    def problem_occurred(self) -> bool:
        return bool(self.problems)

    def should_run(self, enabled: bool, is_interrupted: Callable[[], bool]) -> bool:
        if not enabled or self.problem_occurred or self.interrupted:
            return False
        self.interrupted = is_interrupted()
        return not self.interrupted

    def upload_revision_finished(self, revision, s3_bucket_name, s3_object_key, s3_object_version, s3_object_etag, url):
        self.s3_object_version = s3_object_version
        self.s3_object_etag = s3_object_etag

    def create_deployment_finished(self, application_name, deployment_group_name, deployment_config_name, deployment_id):
        self.deployment_id = deployment_id

    def deployment_failed(self, deployment_id, timeout_sec, error_info, instances_status):
        if timeout_sec is None:
            self.problems.append(f"Deployment {deployment_id} failed")
        else:
            self.problems.append(f"Deployment {deployment_id} timed out after {timeout_sec} sec")

    def exception(self, failure: AWSFailure):
        self.problems.append(failure.message)


def _format_invalids(invalids: Mapping[str, str]) -> str:
    return "".join(f"{reason}\n" for reason in invalids.values())


def run(runner_params: Mapping[str, str],
        working_dir,
        temp_dir,
        config_params: Optional[Mapping[str, str]] = None,
        checkout_dir: Optional[str] = None,
        listener: Optional[DeploymentListener] = None,
        clients: Optional[AWSClients] = None,
        is_interrupted: Callable[[], bool] = lambda: False,
        description: Optional[str] = None,
        revision_name: str = "revision",
        run_id: Optional[str] = None,
        log: Optional[Callable[[str], None]] = None) -> RunResult:
    """
    Run the enabled deployment stages.

    Each stage runs only if it is enabled, no earlier stage reported a problem
    and the run has not been interrupted. Remote failures are reported through
    the listener; local failures end the run with RunOutcome.ERROR.

    Args:
        runner_params: Runner parameters
        working_dir: Base directory of the revision files
        temp_dir: Directory for the built archive and a custom appspec.yml
        config_params: Custom appspec, known S3 version/ETag and poll interval
        checkout_dir: Checked out sources, used for validation and problem identities
        listener: Receives every lifecycle event
        clients: Prebuilt AWS clients, created from the parameters when omitted
        is_interrupted: Checked before each stage
        description: Text attached to registered revisions and deployments
        revision_name: Archive name used when no S3 object key is configured
        run_id: Run identifier, generated when omitted
        log: Receives archive packaging messages

    Returns:
        RunResult describing the outcome
    """
    run_id = run_id or new_run_id()
    config_params = dict(config_params or {})
    params = dict(runner_params)
    if not params.get(TEMP_CREDENTIALS_SESSION_NAME_PARAM):
        params[TEMP_CREDENTIALS_SESSION_NAME_PARAM] = run_id

    state = _RunState(config_params)
    multicast = MulticastDeploymentListener([item for item in (listener, state) if item is not None])
    result = RunResult(outcome=RunOutcome.ERROR, run_id=run_id)

    try:
        invalids = validate_params(params, checkout_dir)
        if invalids:
            raise ConfigurationError(_format_invalids(invalids))

        if clients is None:
            clients = create_clients(params)

        client = DeploymentClient(clients.s3, clients.codedeploy).with_description(description or f"cdrunner run {run_id}")
        client.with_listener(multicast)

        s3_bucket_name = get_param(params, S3_BUCKET_NAME_PARAM)
        s3_object_key = get_param(params, S3_OBJECT_KEY_PARAM)

        if state.should_run(is_upload_step_enabled(params), is_interrupted):
            archive = ApplicationRevision(
                s3_object_key if s3_object_key and s3_object_key.strip() else revision_name,
                get_param(params, REVISION_PATHS_PARAM),
                working_dir,
                temp_dir,
                config_params.get(CUSTOM_APPSPEC_YML_CONFIG_PARAM),
            ).with_logger(log).get_archive()
            result.archive = archive

            if not s3_object_key or not s3_object_key.strip():
                s3_object_key = archive.name

            client.upload_revision(archive, s3_bucket_name, s3_object_key)

        result.s3_object_key = s3_object_key
        application_name = get_param(params, APP_NAME_PARAM)
        bundle_type = get_bundle_type(s3_object_key or "")

        if (is_register_step_enabled(params) or is_deploy_step_enabled(params)) and bundle_type is None \
                and not state.interrupted:
            raise ConfigurationError(f"Unsupported bundle type of S3 object key {s3_object_key}")

        if state.should_run(is_register_step_enabled(params), is_interrupted):
            client.register_revision(s3_bucket_name, s3_object_key, bundle_type,
                                     state.s3_object_version, state.s3_object_etag, application_name)

        outcome = RunOutcome.SUCCESS
        if state.should_run(is_deploy_step_enabled(params), is_interrupted):
            deploy_args = dict(
                s3_bucket_name=s3_bucket_name,
                s3_object_key=s3_object_key,
                bundle_type=bundle_type,
                s3_object_version=state.s3_object_version,
                s3_object_etag=state.s3_object_etag,
                application_name=application_name,
                deployment_group_name=get_param(params, DEPLOYMENT_GROUP_NAME_PARAM),
                ec2_tags=get_ec2_tags(params),
                auto_scaling_groups=get_auto_scaling_groups(params),
                deployment_config_name=get_param(params, DEPLOYMENT_CONFIG_NAME_PARAM) or None,
                rollback_on_failure=is_rollback_on_failure(params),
                rollback_on_alarm_threshold=is_rollback_on_alarm_threshold(params),
                file_exists_behavior=get_param(params, FILE_EXISTS_BEHAVIOR_PARAM) or None,
            )
            if is_deployment_wait_enabled(params):
                client.deploy_revision_and_wait(
                    wait_timeout_sec=get_int_param(params, WAIT_TIMEOUT_SEC_PARAM, 0),
                    wait_interval_sec=get_int_param(config_params, WAIT_POLL_INTERVAL_SEC_CONFIG_PARAM,
                                                    WAIT_POLL_INTERVAL_SEC_DEFAULT),
                    **deploy_args,
                )
            else:
                client.deploy_revision(**deploy_args)
                outcome = RunOutcome.DETACHED

        if state.problem_occurred:
            outcome = RunOutcome.PROBLEMS
        elif state.interrupted:
            outcome = RunOutcome.INTERRUPTED
        result.outcome = outcome
    except CodeDeployRunnerError as e:
        logger.error(f"Run {run_id} failed: {e}")
        result.outcome = RunOutcome.ERROR
        result.message = str(e)
    except (ClientError, BotoCoreError, Boto3Error) as e:
        # only client construction raises these, the deployment client reports its own
        failure = classify_failure(e, "sts")
        logger.error(f"Run {run_id} could not create AWS clients: {failure.message}")
        multicast.exception(failure)
        result.outcome = RunOutcome.PROBLEMS

    result.s3_object_version = state.s3_object_version
    result.s3_object_etag = state.s3_object_etag
    result.deployment_id = state.deployment_id
    result.problems = list(state.problems)
    return result

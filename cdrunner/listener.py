"""
Deployment lifecycle listener contract and the shared rendering of events
into log lines, progress messages and problems.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional
import logging

from .constants import (
    APP_NAME_PARAM, DEPLOYMENT_GROUP_NAME_PARAM, DEPLOYMENT_ID_CONFIG_PARAM, S3_BUCKET_NAME_PARAM,
    S3_OBJECT_ETAG_CONFIG_PARAM, S3_OBJECT_VERSION_CONFIG_PARAM, STATUS_IS_UNKNOWN, ProblemTypes,
)
from .failures import AWSFailure
from .models import ErrorInfo, InstancesStatus
from .params import calculate_identity, get_param, is_deploy_step_enabled, is_register_step_enabled

logger = logging.getLogger(__name__)

UPLOAD_REVISION = "upload revision"
REGISTER_REVISION = "register revision"
DEPLOY_APPLICATION = "deploy application"


class DeploymentListener:
    """
    Observer of the deployment lifecycle.

    Every event has a no-op default; implementations override only the events
    they care about.
    """

    def upload_revision_started(self, revision: Path, s3_bucket_name: str, s3_object_key: str) -> None:
        pass

    def upload_revision_finished(self, revision: Path, s3_bucket_name: str, s3_object_key: str,
                                 s3_object_version: Optional[str], s3_object_etag: Optional[str], url: str) -> None:
        pass

    def register_revision_started(self, application_name: str, s3_bucket_name: str, s3_object_key: str,
                                  bundle_type: str, s3_object_version: Optional[str], s3_object_etag: Optional[str]) -> None:
        pass

    def register_revision_finished(self, application_name: str, s3_bucket_name: str, s3_object_key: str,
                                   bundle_type: str, s3_object_version: Optional[str], s3_object_etag: Optional[str]) -> None:
        pass

    def create_deployment_started(self, application_name: str, deployment_group_name: str,
                                  deployment_config_name: Optional[str]) -> None:
        pass

    def create_deployment_finished(self, application_name: str, deployment_group_name: str,
                                   deployment_config_name: Optional[str], deployment_id: str) -> None:
        pass

    def deployment_wait_started(self, deployment_id: str) -> None:
        pass

    def deployment_in_progress(self, deployment_id: str, instances_status: Optional[InstancesStatus]) -> None:
        pass

    def deployment_failed(self, deployment_id: str, timeout_sec: Optional[int], error_info: Optional[ErrorInfo],
                          instances_status: Optional[InstancesStatus]) -> None:
        pass

    def deployment_succeeded(self, deployment_id: str, instances_status: Optional[InstancesStatus]) -> None:
        pass

    def exception(self, failure: AWSFailure) -> None:
        pass


class MulticastDeploymentListener(DeploymentListener):
    """Forwards every event to each of the given listeners in order."""

    def __init__(self, listeners: Iterable[DeploymentListener]):
        self.listeners: List[DeploymentListener] = list(listeners)

    def upload_revision_started(self, *args) -> None:
        for listener in self.listeners:
            listener.upload_revision_started(*args)

    def upload_revision_finished(self, *args) -> None:
        for listener in self.listeners:
            listener.upload_revision_finished(*args)

    def register_revision_started(self, *args) -> None:
        for listener in self.listeners:
            listener.register_revision_started(*args)

    def register_revision_finished(self, *args) -> None:
        for listener in self.listeners:
            listener.register_revision_finished(*args)

    def create_deployment_started(self, *args) -> None:
        for listener in self.listeners:
            listener.create_deployment_started(*args)

    def create_deployment_finished(self, *args) -> None:
        for listener in self.listeners:
            listener.create_deployment_finished(*args)

    def deployment_wait_started(self, *args) -> None:
        for listener in self.listeners:
            listener.deployment_wait_started(*args)

    def deployment_in_progress(self, *args) -> None:
        for listener in self.listeners:
            listener.deployment_in_progress(*args)

    def deployment_failed(self, *args) -> None:
        for listener in self.listeners:
            listener.deployment_failed(*args)

    def deployment_succeeded(self, *args) -> None:
        for listener in self.listeners:
            listener.deployment_succeeded(*args)

    def exception(self, *args) -> None:
        for listener in self.listeners:
            listener.exception(*args)


def pluralize(word: str, count: int) -> str:
    return word if count == 1 else word + "s"


def decapitalize(text: str) -> str:
    return text[:1].lower() + text[1:]


def deployment_description(instances_status: Optional[InstancesStatus], deployment_id: Optional[str],
                           detailed: bool) -> str:
    """
    Render a one line deployment summary.

    Zero counters are omitted unless detailed is set; the succeeded counter is
    always shown.
    """
    sb = "Deployment "
    if deployment_id:
        sb += deployment_id + " "

    if instances_status is None:
        return sb + STATUS_IS_UNKNOWN

    status = instances_status.status
    sb += STATUS_IS_UNKNOWN if not status or not status.strip() else status
    sb += f", {instances_status.succeeded} {pluralize('instance', instances_status.succeeded)} succeeded"
    if instances_status.failed > 0 or detailed:
        sb += f", {instances_status.failed} failed"
    if instances_status.pending > 0 or detailed:
        sb += f", {instances_status.pending} pending"
    if instances_status.skipped > 0 or detailed:
        sb += f", {instances_status.skipped} skipped"
    if instances_status.in_progress > 0 or detailed:
        sb += f", {instances_status.in_progress} in progress"
    return sb


class LoggingDeploymentListener(DeploymentListener, ABC):
    """
    Renders lifecycle events into blocks, log lines, progress messages,
    problems, output parameters and status text.

    Subclasses decide where each of these primitives goes.
    """

    def __init__(self, runner_params: Dict[str, str], checkout_dir: Optional[str] = None):
        self.runner_params = runner_params
        self.checkout_dir = checkout_dir

    def upload_revision_started(self, revision, s3_bucket_name, s3_object_key):
        self.open(UPLOAD_REVISION)
        self.log(f"Uploading application revision {revision} to S3 bucket {s3_bucket_name} using key {s3_object_key}")

    def upload_revision_finished(self, revision, s3_bucket_name, s3_object_key, s3_object_version, s3_object_etag, url):
        query = []
        if s3_object_version:
            query.append(f"versionId={s3_object_version}")
        if s3_object_etag:
            query.append(f"etag={s3_object_etag}")
        direct_url = url + ("?" + "&".join(query) if query else "")

        self.log(f"Uploaded application revision {direct_url}")
        if not is_register_step_enabled(self.runner_params):
            self.status_text(f"Uploaded {direct_url}")
        if s3_object_version:
            self.parameter(S3_OBJECT_VERSION_CONFIG_PARAM, s3_object_version)
        if s3_object_etag:
            self.parameter(S3_OBJECT_ETAG_CONFIG_PARAM, s3_object_etag)
        self.close(UPLOAD_REVISION)

    def register_revision_started(self, application_name, s3_bucket_name, s3_object_key, bundle_type,
                                  s3_object_version, s3_object_etag):
        self.open(REGISTER_REVISION)
        version = s3_object_version if s3_object_version and s3_object_version.strip() else "latest"
        etag = s3_object_etag if s3_object_etag and s3_object_etag.strip() else "no"
        self.log(
            f"Registering application {application_name} revision from S3 bucket {s3_bucket_name} "
            f"with key {s3_object_key}, bundle type {bundle_type}, {version} version and {etag} ETag"
        )

    def register_revision_finished(self, application_name, s3_bucket_name, s3_object_key, bundle_type,
                                   s3_object_version, s3_object_etag):
        if not is_deploy_step_enabled(self.runner_params):
            self.status_text("Registered revision")
        self.close(REGISTER_REVISION)

    def create_deployment_started(self, application_name, deployment_group_name, deployment_config_name):
        self.open(DEPLOY_APPLICATION)
        config = deployment_config_name if deployment_config_name and deployment_config_name.strip() else "default"
        self.log(
            f"Creating application {application_name} deployment to deployment group "
            f"{deployment_group_name} with {config} deployment configuration"
        )

    def create_deployment_finished(self, application_name, deployment_group_name, deployment_config_name,
                                   deployment_id):
        self.parameter(DEPLOYMENT_ID_CONFIG_PARAM, deployment_id)
        self.log(f"Deployment {deployment_id} created")
        self.close(DEPLOY_APPLICATION)

    def deployment_wait_started(self, deployment_id):
        self.log(f"Waiting for deployment {deployment_id} to finish")

    def deployment_in_progress(self, deployment_id, instances_status):
        self.progress(deployment_description(instances_status, deployment_id, False))

    def deployment_failed(self, deployment_id, timeout_sec, error_info, instances_status):
        msg = "" if timeout_sec is None else f"Timeout {timeout_sec} sec exceeded, "

        self.err(msg + decapitalize(deployment_description(instances_status, deployment_id, True)))
        msg += decapitalize(deployment_description(instances_status, deployment_id, False))

        if error_info is not None:
            if error_info.message:
                self.err(f"Associated error: {error_info.message}")
                msg += f": {error_info.message}"
            if error_info.code:
                self.err(f"Error code: {error_info.code}")

        problem_type = ProblemTypes.FAILURE if timeout_sec is None else ProblemTypes.TIMEOUT
        self.problem(self._deployment_identity(timeout_sec, error_info, instances_status), problem_type, msg)

    def deployment_succeeded(self, deployment_id, instances_status):
        self.log(deployment_description(instances_status, deployment_id, True))
        self.status_text(deployment_description(instances_status, deployment_id, False))

    def exception(self, failure: AWSFailure):
        logger.error(f"{failure.message}{failure.details or ''}")

        self.err(failure.message)
        if failure.details:
            self.err(failure.details)
        self.problem(self._identity(failure.problem_identity), failure.type, failure.message)
        self.close(DEPLOY_APPLICATION)

    def _deployment_identity(self, timeout_sec: Optional[int], error_info: Optional[ErrorInfo],
                             instances_status: Optional[InstancesStatus]) -> int:
        return self._identity(
            None if timeout_sec is None else str(timeout_sec),
            None if error_info is None else error_info.code,
            None if instances_status is None else instances_status.status,
        )

    def _identity(self, *parts: Optional[str]) -> int:
        forming = [
            get_param(self.runner_params, S3_BUCKET_NAME_PARAM),
            get_param(self.runner_params, APP_NAME_PARAM),
            get_param(self.runner_params, DEPLOYMENT_GROUP_NAME_PARAM),
        ]
        return calculate_identity(self.checkout_dir, self.runner_params, forming + list(parts))

    @abstractmethod
    def log(self, message: str) -> None:
        pass

    @abstractmethod
    def err(self, message: str) -> None:
        pass

    @abstractmethod
    def open(self, block: str) -> None:
        pass

    @abstractmethod
    def close(self, block: str) -> None:
        pass

    @abstractmethod
    def progress(self, message: str) -> None:
        pass

    @abstractmethod
    def problem(self, identity: int, type: str, description: str) -> None:
        pass

    @abstractmethod
    def parameter(self, name: str, value: str) -> None:
        pass

    @abstractmethod
    def status_text(self, text: str) -> None:
        pass

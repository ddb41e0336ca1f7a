"""
Upload, register and deploy an application revision with S3 and CodeDeploy,
reporting every stage through a DeploymentListener.
"""

import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Collection, Dict, Mapping, Optional
from urllib.parse import quote
import logging

from .constants import DESCRIPTION_MAX_LENGTH
from .failures import DeploymentWaitInterrupted, classify_failure
from .listener import DeploymentListener
from .models import DeploymentStatus, ErrorInfo, InstancesStatus

logger = logging.getLogger(__name__)

REGISTER_DESCRIPTION_PREFIX = "Application revision registered by "
DEPLOY_DESCRIPTION_PREFIX = "Deployment created by "


def truncate_with_dots_at_center(text: Optional[str], max_length: int) -> Optional[str]:
    """Shorten text to max_length by replacing its middle with "..."."""
    if text is None or len(text) <= max_length:
        return text
    start = text[:max_length // 2]
    end = text[len(text) - max_length + len(start) + 3:]
    return start + "..." + end


def _timestamp(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.timestamp()
    return float(value)


class DeploymentClient:
    """
    Drives the CodeDeploy lifecycle of one application revision.

    Remote and unexpected errors never propagate out of the public operations:
    they are classified and delivered to listener.exception exactly once.
    """

    def __init__(self, s3_client, codedeploy_client,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.time):
        self.s3 = s3_client
        self.codedeploy = codedeploy_client
        self.description: Optional[str] = None
        self.listener: DeploymentListener = DeploymentListener()
        self._sleep = sleep
        self._clock = clock

    def with_description(self, description: Optional[str]) -> "DeploymentClient":
        self.description = description
        return self

    def with_listener(self, listener: DeploymentListener) -> "DeploymentClient":
        self.listener = listener
        return self

    def upload_revision(self, revision: Path, s3_bucket_name: str, s3_object_key: str) -> None:
        """
        Upload the revision archive to S3.

        Args:
            revision: Archive file
            s3_bucket_name: Target bucket
            s3_object_key: Target object key
        """
        try:
            self._do_upload_revision(Path(revision), s3_bucket_name, s3_object_key)
        except Exception as e:
            self._process_failure(e, "s3")

    def register_revision(self, s3_bucket_name: str, s3_object_key: str, bundle_type: str,
                          s3_object_version: Optional[str], s3_object_etag: Optional[str],
                          application_name: str) -> None:
        """
        Register the uploaded revision with a CodeDeploy application.

        Args:
            s3_bucket_name: Bucket holding the revision
            s3_object_key: Key of the revision
            bundle_type: zip, tar or tgz
            s3_object_version: Object version, or None for the latest
            s3_object_etag: Object ETag to validate against, or None
            application_name: CodeDeploy application name
        """
        try:
            location = self._revision_location(s3_bucket_name, s3_object_key, bundle_type,
                                               s3_object_version, s3_object_etag)
            self._do_register_revision(location, application_name)
        except Exception as e:
            self._process_failure(e, "codedeploy")

    def deploy_revision(self, s3_bucket_name: str, s3_object_key: str, bundle_type: str,
                        s3_object_version: Optional[str], s3_object_etag: Optional[str],
                        application_name: str, deployment_group_name: str,
                        ec2_tags: Optional[Mapping[str, str]] = None,
                        auto_scaling_groups: Optional[Collection[str]] = None,
                        deployment_config_name: Optional[str] = None,
                        rollback_on_failure: bool = False,
                        rollback_on_alarm_threshold: bool = False,
                        file_exists_behavior: Optional[str] = None) -> Optional[str]:
        """
        Create a deployment of the revision without waiting for it.

        Returns:
            Deployment id, or None if the deployment could not be created
        """
        try:
            location = self._revision_location(s3_bucket_name, s3_object_key, bundle_type,
                                               s3_object_version, s3_object_etag)
            return self._create_deployment(
                location, application_name, deployment_group_name, ec2_tags or {},
                auto_scaling_groups or [], deployment_config_name, rollback_on_failure,
                rollback_on_alarm_threshold, file_exists_behavior,
            )
        except Exception as e:
            self._process_failure(e, "codedeploy")
            return None

    def deploy_revision_and_wait(self, s3_bucket_name: str, s3_object_key: str, bundle_type: str,
                                 s3_object_version: Optional[str], s3_object_etag: Optional[str],
                                 application_name: str, deployment_group_name: str,
                                 ec2_tags: Optional[Mapping[str, str]] = None,
                                 auto_scaling_groups: Optional[Collection[str]] = None,
                                 deployment_config_name: Optional[str] = None,
                                 wait_timeout_sec: int = 0,
                                 wait_interval_sec: int = 20,
                                 rollback_on_failure: bool = False,
                                 rollback_on_alarm_threshold: bool = False,
                                 file_exists_behavior: Optional[str] = None) -> Optional[str]:
        """
        Create a deployment and poll it until it completes or the timeout passes.

        On timeout the remote deployment keeps running; only the local wait stops.

        Returns:
            Deployment id, or None if the deployment could not be created
        """
        try:
            location = self._revision_location(s3_bucket_name, s3_object_key, bundle_type,
                                               s3_object_version, s3_object_etag)
            deployment_id = self._create_deployment(
                location, application_name, deployment_group_name, ec2_tags or {},
                auto_scaling_groups or [], deployment_config_name, rollback_on_failure,
                rollback_on_alarm_threshold, file_exists_behavior,
            )
            self._wait_for_deployment(deployment_id, wait_timeout_sec, wait_interval_sec)
            return deployment_id
        except Exception as e:
            self._process_failure(e, "codedeploy")
            return None

    def check_deployment_status(self, deployment_id: str) -> Optional[datetime]:
        """
        Fetch the deployment once and report its state.

        Returns:
            Completion time, or None while the deployment is in progress or
            when the status could not be fetched
        """
        try:
            info = self._get_deployment_info(deployment_id)
            if not info or info.get("completeTime") is None:
                self.listener.deployment_in_progress(deployment_id, InstancesStatus.from_deployment_info(info))
                return None
            self._report_completion(deployment_id, info)
            return info["completeTime"]
        except Exception as e:
            self._process_failure(e, "codedeploy")
            return None

    def _do_upload_revision(self, revision: Path, s3_bucket_name: str, s3_object_key: str) -> None:
        self.listener.upload_revision_started(revision, s3_bucket_name, s3_object_key)

        with open(revision, "rb") as body:
            response = self.s3.put_object(Bucket=s3_bucket_name, Key=s3_object_key, Body=body)

        etag = response.get("ETag")
        if etag:
            etag = etag.strip('"')
        self.listener.upload_revision_finished(
            revision, s3_bucket_name, s3_object_key, response.get("VersionId"), etag,
            self._object_url(s3_bucket_name, s3_object_key),
        )

    def _object_url(self, bucket: str, key: str) -> str:
        endpoint = self.s3.meta.endpoint_url.rstrip("/")
        return f"{endpoint}/{bucket}/{quote(key)}"

    @staticmethod
    def _revision_location(s3_bucket_name: str, s3_object_key: str, bundle_type: str,
                           s3_object_version: Optional[str], s3_object_etag: Optional[str]) -> Dict[str, Any]:
        location = {"bucket": s3_bucket_name, "key": s3_object_key, "bundleType": bundle_type}
        if s3_object_version:
            location["version"] = s3_object_version
        if s3_object_etag:
            location["eTag"] = s3_object_etag
        return {"revisionType": "S3", "s3Location": location}

    def _do_register_revision(self, location: Dict[str, Any], application_name: str) -> None:
        s3 = location["s3Location"]
        args = (application_name, s3["bucket"], s3["key"], s3["bundleType"], s3.get("version"), s3.get("eTag"))
        self.listener.register_revision_started(*args)

        self.codedeploy.register_application_revision(
            applicationName=application_name,
            revision=location,
            description=self._get_description(REGISTER_DESCRIPTION_PREFIX),
        )

        self.listener.register_revision_finished(*args)

    def _create_deployment(self, location: Dict[str, Any], application_name: str, deployment_group_name: str,
                           ec2_tags: Mapping[str, str], auto_scaling_groups: Collection[str],
                           deployment_config_name: Optional[str], rollback_on_failure: bool,
                           rollback_on_alarm_threshold: bool, file_exists_behavior: Optional[str]) -> str:
        self.listener.create_deployment_started(application_name, deployment_group_name, deployment_config_name)

        request: Dict[str, Any] = {
            "applicationName": application_name,
            "deploymentGroupName": deployment_group_name,
            "revision": location,
            "description": self._get_description(DEPLOY_DESCRIPTION_PREFIX),
        }
        if file_exists_behavior:
            request["fileExistsBehavior"] = file_exists_behavior
        if deployment_config_name:
            request["deploymentConfigName"] = deployment_config_name
        if ec2_tags or auto_scaling_groups:
            request["targetInstances"] = {
                "tagFilters": [
                    {"Key": key, "Value": value, "Type": "KEY_AND_VALUE"} for key, value in ec2_tags.items()
                ],
                "autoScalingGroups": list(auto_scaling_groups),
            }
        if rollback_on_failure or rollback_on_alarm_threshold:
            events = []
            if rollback_on_failure:
                events.append("DEPLOYMENT_FAILURE")
            if rollback_on_alarm_threshold:
                events.append("DEPLOYMENT_STOP_ON_ALARM")
            request["autoRollbackConfiguration"] = {"enabled": True, "events": events}

        deployment_id = self.codedeploy.create_deployment(**request)["deploymentId"]
        logger.info(f"Created deployment {deployment_id} of {application_name} to {deployment_group_name}")

        self.listener.create_deployment_finished(application_name, deployment_group_name,
                                                 deployment_config_name, deployment_id)
        return deployment_id

    def _get_deployment_info(self, deployment_id: str) -> Optional[Dict[str, Any]]:
        return self.codedeploy.get_deployment(deploymentId=deployment_id).get("deploymentInfo")

    def _wait_for_deployment(self, deployment_id: str, timeout_sec: int, interval_sec: int) -> None:
        self.listener.deployment_wait_started(deployment_id)

        info = self._get_deployment_info(deployment_id)
        start = _timestamp(info.get("startTime")) if info else None
        if start is None:
            start = self._clock()

        while not info or info.get("completeTime") is None:
            instances_status = InstancesStatus.from_deployment_info(info)
            self.listener.deployment_in_progress(deployment_id, instances_status)

            if self._clock() - start > timeout_sec:
                self.listener.deployment_failed(deployment_id, timeout_sec, ErrorInfo.from_deployment_info(info),
                                                instances_status)
                return

            try:
                self._sleep(interval_sec)
            except KeyboardInterrupt as e:
                raise DeploymentWaitInterrupted(f"Interrupted while waiting for deployment {deployment_id}") from e

            info = self._get_deployment_info(deployment_id)

        self._report_completion(deployment_id, info)

    def _report_completion(self, deployment_id: str, info: Dict[str, Any]) -> None:
        instances_status = InstancesStatus.from_deployment_info(info)
        if DeploymentStatus.parse(info.get("status")) is DeploymentStatus.SUCCEEDED:
            self.listener.deployment_succeeded(deployment_id, instances_status)
        else:
            self.listener.deployment_failed(deployment_id, None, ErrorInfo.from_deployment_info(info),
                                            instances_status)

    def _get_description(self, prefix: str) -> str:
        description = self.description
        if not description or not description.strip():
            description = f"{type(self).__module__}.{type(self).__qualname__}"
        return prefix + truncate_with_dots_at_center(description, DESCRIPTION_MAX_LENGTH - len(prefix))

    def _process_failure(self, exc: Exception, service_name: str) -> None:
        failure = classify_failure(exc, service_name)
        logger.debug(f"{failure.type}: {failure.message}")
        self.listener.exception(failure)

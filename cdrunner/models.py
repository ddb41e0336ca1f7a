"""
Data models for deployment progress reporting.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class DeploymentStatus(Enum):
    """CodeDeploy deployment states."""
    CREATED = "Created"
    QUEUED = "Queued"
    IN_PROGRESS = "InProgress"
    BAKING = "Baking"
    READY = "Ready"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    STOPPED = "Stopped"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "DeploymentStatus":
        for status in cls:
            if status.value == value:
                return status
        return cls.UNKNOWN


HUMAN_READABLE_STATUS = {
    DeploymentStatus.CREATED: "created",
    DeploymentStatus.QUEUED: "queued",
    DeploymentStatus.IN_PROGRESS: "in progress",
    DeploymentStatus.BAKING: "baking",
    DeploymentStatus.READY: "ready",
    DeploymentStatus.SUCCEEDED: "succeeded",
    DeploymentStatus.FAILED: "failed",
    DeploymentStatus.STOPPED: "stopped",
}


def human_readable_status(status: str) -> str:
    known = HUMAN_READABLE_STATUS.get(DeploymentStatus.parse(status))
    if known:
        return known
    return status[:1].lower() + status[1:]


@dataclass
class InstancesStatus:
    """Aggregate per-instance counts of a deployment."""
    status: Optional[str] = None  # human readable, e.g. "in progress"
    succeeded: int = 0
    failed: int = 0
    pending: int = 0
    skipped: int = 0
    in_progress: int = 0

    @classmethod
    def from_deployment_info(cls, info: Optional[Dict[str, Any]]) -> Optional["InstancesStatus"]:
        if not info:
            return None
        status = info.get("status")
        overview = info.get("deploymentOverview")
        if status is None or overview is None:
            return None
        return cls(
            status=human_readable_status(status),
            succeeded=int(overview.get("Succeeded") or 0),
            failed=int(overview.get("Failed") or 0),
            pending=int(overview.get("Pending") or 0),
            skipped=int(overview.get("Skipped") or 0),
            in_progress=int(overview.get("InProgress") or 0),
        )


def remove_trailing_dot(message: Optional[str]) -> Optional[str]:
    if message is not None and message.endswith("."):
        return message[:-1]
    return message


@dataclass
class ErrorInfo:
    """Error reported by CodeDeploy for a failed deployment."""
    code: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_deployment_info(cls, info: Optional[Dict[str, Any]]) -> Optional["ErrorInfo"]:
        if not info:
            return None
        error = info.get("errorInformation")
        if error is None:
            return None
        return cls(code=error.get("code"), message=remove_trailing_dot(error.get("message")))

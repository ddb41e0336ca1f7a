"""
Classification of remote and unexpected failures into reportable problems.
"""

from typing import Optional

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from .constants import ProblemTypes
from .models import remove_trailing_dot

PROBLEM_DESCRIPTIONS = {
    ProblemTypes.AWS_SERVICE: "Amazon service exception",
    ProblemTypes.AWS_CLIENT: "Amazon client exception",
    ProblemTypes.AWS_EXCEPTION: "Amazon unexpected exception",
}


class AWSFailure(Exception):
    """A classified failure of an AWS call."""

    def __init__(self, message: str, identity: Optional[str], type: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.identity = identity
        self.type = type
        self.details = details

    @property
    def problem_identity(self) -> str:
        return self.identity or self.message


class DeploymentWaitInterrupted(RuntimeError):
    """The wait between deployment status polls was interrupted."""


def _error_type(error: dict, status_code: Optional[int]) -> str:
    raw = error.get("Type")
    if raw == "Sender":
        return "Client"
    if raw == "Receiver":
        return "Service"
    if status_code is None:
        return "Unknown"
    return "Service" if status_code >= 500 else "Client"


def classify_failure(exc: BaseException, service_name: Optional[str] = None) -> AWSFailure:
    """
    Turn any exception into an AWSFailure.

    Args:
        exc: Exception caught at an operation boundary
        service_name: Name of the AWS service that was called, if known

    Returns:
        AWSFailure with message, identity, problem type and details
    """
    if isinstance(exc, AWSFailure):
        return exc

    if isinstance(exc, ClientError):
        response = exc.response or {}
        error = response.get("Error", {})
        metadata = response.get("ResponseMetadata", {})
        status_code = metadata.get("HTTPStatusCode")
        error_code = error.get("Code")
        error_type = _error_type(error, status_code)
        service = service_name or "AWS"
        error_message = error.get("Message") or str(exc)

        details = (
            "\n"
            f"Service:             {service}\n"
            f"HTTP Status Code:    {status_code}\n"
            f"AWS Error Code:      {error_code}\n"
            f"Error Type:          {error_type}\n"
            f"Request ID:          {metadata.get('RequestId')}"
        )
        return AWSFailure(
            message=f"Service error: {remove_trailing_dot(error_message)}",
            identity=f"{service}{error_type}{status_code}{error_code}",
            type=ProblemTypes.AWS_SERVICE,
            details=details,
        )

    if isinstance(exc, (BotoCoreError, Boto3Error)):
        return AWSFailure(
            message=f"Client error: {remove_trailing_dot(str(exc))}",
            identity=None,
            type=ProblemTypes.AWS_CLIENT,
        )

    return AWSFailure(
        message=f"Unexpected error: {remove_trailing_dot(str(exc))}",
        identity=None,
        type=ProblemTypes.AWS_EXCEPTION,
    )

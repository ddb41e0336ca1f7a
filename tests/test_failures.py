"""
Tests for failure classification.
"""

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError, EndpointConnectionError

from cdrunner.constants import ProblemTypes
from cdrunner.failures import AWSFailure, classify_failure


def make_error(error, status=None):
    response = {"Error": error}
    if status is not None:
        response["ResponseMetadata"] = {"HTTPStatusCode": status, "RequestId": "req-42"}
    return ClientError(response, "CreateDeployment")


class TestClassifyFailure:
    """Test exceptions are turned into reportable failures."""

    def test_service_error(self):
        """Test service errors carry details and a stable identity."""
        failure = classify_failure(
            make_error({"Code": "ApplicationDoesNotExistException", "Message": "No such application."}, 400),
            "codedeploy",
        )

        assert failure.type == ProblemTypes.AWS_SERVICE
        assert failure.message == "Service error: No such application"
        assert failure.identity == "codedeployClient400ApplicationDoesNotExistException"
        assert "Service:             codedeploy" in failure.details
        assert "Request ID:          req-42" in failure.details

    def test_error_type_from_status(self):
        """Test the error type falls back to the HTTP status code."""
        assert "Service503" in classify_failure(make_error({"Code": "X"}, 503), "s3").identity
        assert "Unknown" in classify_failure(make_error({"Code": "X"}), "s3").identity

    def test_identity_is_stable(self):
        """Test the same error yields the same identity."""
        first = classify_failure(make_error({"Code": "X", "Message": "one"}, 400), "s3")
        second = classify_failure(make_error({"Code": "X", "Message": "two"}, 400), "s3")
        assert first.problem_identity == second.problem_identity

    def test_client_error(self):
        """Test local SDK errors are client problems identified by message."""
        failure = classify_failure(EndpointConnectionError(endpoint_url="https://example.invalid"))

        assert failure.type == ProblemTypes.AWS_CLIENT
        assert failure.identity is None
        assert failure.problem_identity == failure.message
        assert failure.message.startswith("Client error: Could not connect to the endpoint URL")

    def test_boto3_error(self):
        """Test boto3 errors are client problems too."""
        assert classify_failure(S3UploadFailedError("upload failed")).type == ProblemTypes.AWS_CLIENT

    def test_unexpected_error(self):
        """Test anything else is an unexpected exception."""
        failure = classify_failure(ValueError("bad value."))

        assert failure.type == ProblemTypes.AWS_EXCEPTION
        assert failure.message == "Unexpected error: bad value"
        assert failure.details is None

    def test_already_classified(self):
        """Test classified failures pass through."""
        failure = AWSFailure("msg", "id", ProblemTypes.AWS_CLIENT)
        assert classify_failure(failure) is failure

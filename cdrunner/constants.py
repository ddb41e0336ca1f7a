"""
Parameter names, step identifiers and fixed values shared across cdrunner.
"""

RUNNER_DISPLAY_NAME = "AWS CodeDeploy"

APPSPEC_YML = "appspec.yml"

# Rule text separators: items are comma or newline separated, SOURCE => DEST
MULTILINE_SPLIT_REGEX = r" *[,\n\r] *"
PATH_SPLIT_REGEX = r" *=> *"

# Runner parameters (new names; legacy names live in params.PARAM_KEYS)
DEPLOYMENT_STEPS_PARAM = "codedeploy.deployment.steps"
REVISION_PATHS_PARAM = "codedeploy.revision.paths"
S3_BUCKET_NAME_PARAM = "codedeploy.s3.bucket.name"
S3_OBJECT_KEY_PARAM = "codedeploy.s3.object.key"
APP_NAME_PARAM = "codedeploy.application.name"
DEPLOYMENT_GROUP_NAME_PARAM = "codedeploy.deployment.group.name"
DEPLOYMENT_CONFIG_NAME_PARAM = "codedeploy.deployment.config.name"
FILE_EXISTS_BEHAVIOR_PARAM = "codedeploy.file.exists.behavior"
WAIT_FLAG_PARAM = "codedeploy.wait"
WAIT_TIMEOUT_SEC_PARAM = "codedeploy.wait.timeout.sec"
ROLLBACK_ON_FAILURE_PARAM = "codedeploy.rollback.on.failure"
ROLLBACK_ON_ALARM_THRESHOLD_PARAM = "codedeploy.rollback.on.alarm.threshold"
GREEN_FLEET_PARAM = "codedeploy.green.fleet"

# AWS connection parameters
REGION_NAME_PARAM = "aws.region.name"
CREDENTIALS_TYPE_PARAM = "aws.credentials.type"
ACCESS_KEYS_OPTION = "aws.access.keys"
TEMP_CREDENTIALS_OPTION = "aws.temp.credentials"
USE_DEFAULT_CREDENTIAL_PROVIDER_CHAIN_PARAM = "aws.use.default.credential.provider.chain"
ACCESS_KEY_ID_PARAM = "aws.access.key.id"
SECRET_ACCESS_KEY_PARAM = "aws.secret.access.key"
IAM_ROLE_ARN_PARAM = "aws.iam.role.arn"
EXTERNAL_ID_PARAM = "aws.external.id"
SERVICE_ENDPOINT_PARAM = "aws.service.endpoint"
TEMP_CREDENTIALS_SESSION_NAME_PARAM = "aws.temp.credentials.session.name"
TEMP_CREDENTIALS_DURATION_SEC_PARAM = "aws.temp.credentials.duration.sec"

# Config parameters, set by the runner or supplied by the caller
DEPLOYMENT_ID_CONFIG_PARAM = "codedeploy.deployment.id"
S3_OBJECT_VERSION_CONFIG_PARAM = "codedeploy.revision.s3.version"
S3_OBJECT_ETAG_CONFIG_PARAM = "codedeploy.revision.s3.etag"
CUSTOM_APPSPEC_YML_CONFIG_PARAM = "codedeploy.custom.appspec.yml"
WAIT_POLL_INTERVAL_SEC_CONFIG_PARAM = "codedeploy.wait.poll.interval.sec"

WAIT_POLL_INTERVAL_SEC_DEFAULT = 20
DESCRIPTION_MAX_LENGTH = 100

# Deployment steps
UPLOAD_STEP = "s3uploadstep"
REGISTER_STEP = "registerstep"
DEPLOY_STEP = "deploystep"
STEP_SEPARATOR = "_"

UPLOAD_REGISTER_DEPLOY_STEPS = STEP_SEPARATOR.join([UPLOAD_STEP, REGISTER_STEP, DEPLOY_STEP])

FILE_EXISTS_BEHAVIORS = ("DISALLOW", "OVERWRITE", "RETAIN")

STATUS_IS_UNKNOWN = "status is unknown"


class ProblemTypes:
    """Problem type identifiers reported through the listener."""
    TIMEOUT = "CODEDEPLOY_TIMEOUT"
    FAILURE = "CODEDEPLOY_FAILURE"
    AWS_SERVICE = "AWS_SERVICE"
    AWS_CLIENT = "AWS_CLIENT"
    AWS_EXCEPTION = "AWS_EXCEPTION"

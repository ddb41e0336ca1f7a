"""
Click CLI for packaging application revisions and deploying them with AWS CodeDeploy.
"""

import json
import logging
import sys
import tempfile
from pathlib import Path
from typing import Dict, Optional, Tuple

import click
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from .aws import create_clients
from .client import DeploymentClient
from .constants import (
    ACCESS_KEYS_OPTION, APP_NAME_PARAM, CREDENTIALS_TYPE_PARAM, CUSTOM_APPSPEC_YML_CONFIG_PARAM,
    DEPLOYMENT_CONFIG_NAME_PARAM, DEPLOYMENT_GROUP_NAME_PARAM, DEPLOYMENT_STEPS_PARAM, IAM_ROLE_ARN_PARAM,
    REGION_NAME_PARAM, REVISION_PATHS_PARAM, S3_BUCKET_NAME_PARAM, S3_OBJECT_KEY_PARAM, TEMP_CREDENTIALS_OPTION,
    UPLOAD_REGISTER_DEPLOY_STEPS, USE_DEFAULT_CREDENTIAL_PROVIDER_CHAIN_PARAM, WAIT_FLAG_PARAM,
    WAIT_POLL_INTERVAL_SEC_CONFIG_PARAM, WAIT_TIMEOUT_SEC_PARAM,
)
from .errors import CodeDeployRunnerError
from .failures import classify_failure
from .ids import new_run_id
from .listener import MulticastDeploymentListener
from .params import parse_param_overrides
from .regions import all_regions
from .revision import ApplicationRevision
from .runner import RunOutcome, run
from .sinks import ConsoleDeploymentListener, EventLogDeploymentListener, get_run_dir

EXIT_CODES = {
    RunOutcome.SUCCESS: 0,
    RunOutcome.DETACHED: 0,
    RunOutcome.PROBLEMS: 1,
    RunOutcome.INTERRUPTED: 130,
    RunOutcome.ERROR: 2,
}


def _parse_params(pairs: Tuple[str, ...]) -> Dict[str, str]:
    try:
        return parse_param_overrides(list(pairs))
    except ValueError as e:
        click.echo(f"Invalid parameter: {e}", err=True)
        sys.exit(2)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool):
    """
    cdrunner - package build output and deploy it with AWS CodeDeploy.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command("run")
@click.option("--paths", help="Revision path rules, e.g. 'out/** => app, appspec.yml'")
@click.option("--bucket", help="S3 bucket name")
@click.option("--key", help="S3 object key")
@click.option("--application", help="CodeDeploy application name")
@click.option("--group", help="CodeDeploy deployment group name")
@click.option("--config", "deployment_config", help="CodeDeploy deployment configuration name")
@click.option("--region", help="AWS region")
@click.option("--steps", default=UPLOAD_REGISTER_DEPLOY_STEPS, show_default=True,
              help="Deployment steps to run")
@click.option("--wait/--no-wait", default=True, help="Wait for the deployment to finish")
@click.option("--timeout", type=int, default=2400, show_default=True, help="Wait timeout in seconds")
@click.option("--poll-interval", type=int, help="Seconds between deployment status checks")
@click.option("--appspec", help="Custom appspec.yml path or content")
@click.option("--base-dir", type=click.Path(exists=True, file_okay=False), default=".",
              help="Directory the revision paths are resolved against")
@click.option("--default-credentials/--access-keys", default=True,
              help="Use the default AWS credential provider chain")
@click.option("--role-arn", help="IAM role to assume with temporary credentials")
@click.option("--description", help="Description attached to the revision and deployment")
@click.option("--param", "params", multiple=True, help="Runner parameter 'key=value' (repeatable)")
def run_cmd(paths: Optional[str], bucket: Optional[str], key: Optional[str], application: Optional[str],
            group: Optional[str], deployment_config: Optional[str], region: Optional[str], steps: str,
            wait: bool, timeout: int, poll_interval: Optional[int], appspec: Optional[str], base_dir: str,
            default_credentials: bool, role_arn: Optional[str], description: Optional[str],
            params: Tuple[str, ...]):
    """
    Package, upload, register and deploy an application revision.
    """
    runner_params = {
        DEPLOYMENT_STEPS_PARAM: steps,
        WAIT_FLAG_PARAM: str(wait).lower(),
        WAIT_TIMEOUT_SEC_PARAM: str(timeout),
        USE_DEFAULT_CREDENTIAL_PROVIDER_CHAIN_PARAM: str(default_credentials).lower(),
        CREDENTIALS_TYPE_PARAM: TEMP_CREDENTIALS_OPTION if role_arn else ACCESS_KEYS_OPTION,
    }
    options = {
        REVISION_PATHS_PARAM: paths,
        S3_BUCKET_NAME_PARAM: bucket,
        S3_OBJECT_KEY_PARAM: key,
        APP_NAME_PARAM: application,
        DEPLOYMENT_GROUP_NAME_PARAM: group,
        DEPLOYMENT_CONFIG_NAME_PARAM: deployment_config,
        REGION_NAME_PARAM: region,
        IAM_ROLE_ARN_PARAM: role_arn,
    }
    runner_params.update({k: v for k, v in options.items() if v})
    runner_params.update(_parse_params(params))

    config_params = {}
    if appspec:
        config_params[CUSTOM_APPSPEC_YML_CONFIG_PARAM] = appspec
    if poll_interval:
        config_params[WAIT_POLL_INTERVAL_SEC_CONFIG_PARAM] = str(poll_interval)

    run_id = new_run_id()
    checkout_dir = str(Path(base_dir).resolve())
    console = ConsoleDeploymentListener(runner_params, checkout_dir)
    event_log = EventLogDeploymentListener(get_run_dir(run_id) / "events.ndjson", runner_params, checkout_dir)

    click.echo(f"Run {run_id}")
    with tempfile.TemporaryDirectory(prefix="cdrunner-") as temp_dir:
        result = run(
            runner_params,
            working_dir=base_dir,
            temp_dir=temp_dir,
            config_params=config_params,
            checkout_dir=checkout_dir,
            listener=MulticastDeploymentListener([console, event_log]),
            description=description,
            run_id=run_id,
            log=click.echo,
        )

    if result.outcome is RunOutcome.ERROR:
        click.echo(f"Error: {result.message}", err=True)
    elif result.deployment_id:
        click.echo(f"Deployment ID: {result.deployment_id}")
    sys.exit(EXIT_CODES[result.outcome])


@main.command("package")
@click.argument("paths")
@click.option("--name", default="revision", show_default=True, help="Archive name")
@click.option("--base-dir", type=click.Path(exists=True, file_okay=False), default=".",
              help="Directory the revision paths are resolved against")
@click.option("--output-dir", type=click.Path(file_okay=False), default=".", help="Where to write the archive")
@click.option("--appspec", help="Custom appspec.yml path or content")
def package_cmd(paths: str, name: str, base_dir: str, output_dir: str, appspec: Optional[str]):
    """
    Build an application revision archive without deploying it.
    """
    try:
        archive = ApplicationRevision(name, paths, base_dir, output_dir, appspec).with_logger(click.echo).get_archive()
    except CodeDeployRunnerError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    click.echo(str(archive))


@main.command("status")
@click.argument("deployment_id")
@click.option("--region", help="AWS region")
@click.option("--param", "params", multiple=True, help="Connection parameter 'key=value' (repeatable)")
def status_cmd(deployment_id: str, region: Optional[str], params: Tuple[str, ...]):
    """
    Show the status of a CodeDeploy deployment.
    """
    connection = {USE_DEFAULT_CREDENTIAL_PROVIDER_CHAIN_PARAM: "true"}
    if region:
        connection[REGION_NAME_PARAM] = region
    connection.update(_parse_params(params))

    console = ConsoleDeploymentListener(connection)
    try:
        clients = create_clients(connection)
    except (ClientError, BotoCoreError, Boto3Error) as e:
        console.exception(classify_failure(e, "sts"))
        sys.exit(1)
    complete_time = DeploymentClient(clients.s3, clients.codedeploy).with_listener(console).check_deployment_status(deployment_id)

    if console.problems:
        sys.exit(1)
    if complete_time is not None:
        click.echo(f"Completed at {complete_time.isoformat()}")


@main.command("regions")
@click.option("--format", "output_format", type=click.Choice(["json", "human"]), default="human", help="Output format")
def regions_cmd(output_format: str):
    """
    List known AWS regions.
    """
    regions = all_regions()
    if output_format == "json":
        click.echo(json.dumps(dict(regions), indent=2))
        return

    for code, name in regions.items():
        click.echo(f"{code:<16} {name}")


if __name__ == "__main__":
    main()

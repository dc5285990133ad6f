# cli.py
import functools
import logging

import click

from preview_deploy.exceptions import PreviewDeployError
from preview_deploy.models import DeploymentStatus, Framework, ProjectConfig
from preview_deploy.orchestrator import (
    LATEST,
    DeploymentContext,
    delete_environment,
    deploy_version,
    deployment_status,
    initialize_environment,
)
from preview_deploy.settings import DEFAULT_API_ENDPOINT, get_settings, write_credentials_file

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    DeploymentStatus.SCHEDULED: "⏳ Deployment is scheduled",
    DeploymentStatus.IN_PROGRESS: "🔄 Deployment is in progress",
    DeploymentStatus.SUCCESS: "✅ Deployment succeeded",
    DeploymentStatus.FAILED: "❌ Deployment failed",
}


def _context(ctx: click.Context) -> DeploymentContext:
    if not isinstance(ctx.obj, DeploymentContext):
        ctx.obj = DeploymentContext.from_settings()
    return ctx.obj


def reports_errors(func):
    """Turn pipeline failures into a one-line CLI error instead of a traceback."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PreviewDeployError as e:
            raise click.ClickException(str(e)) from e
    return wrapper


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run")
def cli(log_level):
    """CLI commands for preview environment deployments"""
    logging.basicConfig(
        level=(log_level or get_settings().log_level).upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


@cli.command()
@click.option("--api-key", envvar="ZONKE_API_KEY", required=True, help="API key from the dashboard")
@click.option("--api-token", envvar="ZONKE_API_TOKEN", required=True, help="API secret token from the dashboard")
@click.option("--api-endpoint", envvar="ZONKE_API_ENDPOINT", default=DEFAULT_API_ENDPOINT, show_default=True)
@click.option("--framework", type=click.Choice([f.value for f in Framework]), required=True)
@click.option("--aws-hosted-zone", required=True, help="Hosted zone name, e.g. mydomain.com")
@click.option("--build-output-directory", required=True, help="Framework build output, relative to the project")
@click.option("--package-json-path", default=None, help="Remix only: package.json copied into the server build")
@click.option("--public-directory", default=None, help="Next.js only: public directory bundled with the build")
@click.option("--owner-id", default=None, help="Owner recorded on the environment")
@click.pass_context
@reports_errors
def init(ctx, api_key, api_token, api_endpoint, framework, aws_hosted_zone, build_output_directory,
         package_json_path, public_directory, owner_id):
    """Store credentials and create a preview environment for this project"""
    path = write_credentials_file(api_key, api_token, api_endpoint)
    print(f"📋 Credentials written to {path}")

    project = ProjectConfig(
        framework=Framework(framework),
        aws_hosted_zone=aws_hosted_zone,
        build_output_directory=build_output_directory,
        package_json_path=package_json_path,
        public_directory=public_directory,
    )
    project = initialize_environment(_context(ctx), project, owner_id=owner_id)
    print(f"✅ Preview environment {project.environment.environment_id} created")
    if project.environment.endpoint:
        print(f"URL: {project.environment.endpoint}")


@cli.command()
@click.option("-m", "--message", default=None, help="Short description of the change")
@click.option("-v", "--version", "version", default=LATEST, show_default=True,
              help="Version to deploy; anything other than 'latest' reverts to that version")
@click.pass_context
@reports_errors
def deploy(ctx, message, version):
    """Deploy the build output, or revert to an earlier version"""
    deployed = deploy_version(_context(ctx), version=version, message=message)
    print(f"🚀 Deployment triggered, version {deployed.version_id}")
    print("Run `preview-deploy deployment-status` to follow it")


@cli.command("deployment-status")
@click.pass_context
@reports_errors
def deployment_status_command(ctx):
    """Show the status of the latest deployment"""
    result = deployment_status(_context(ctx))
    print(f"{STATUS_MESSAGES[result.status]} (version {result.source_version or 'unknown'})")
    if result.status == DeploymentStatus.FAILED and result.error:
        print(f"Error: {result.error}")


@cli.command("delete-environment")
@click.option("--yes", is_flag=True, help="Delete without asking for confirmation")
@click.pass_context
@reports_errors
def delete_environment_command(ctx, yes):
    """Delete the preview environment and all of its versions"""
    if not yes:
        click.confirm("Delete the preview environment and all of its versions?", abort=True)
    if delete_environment(_context(ctx)):
        print("✅ Preview environment deleted")
    else:
        print("No environment found. Nothing to delete.")


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  API Endpoint: {settings.api_endpoint}")
    print(f"  API Key: {'set' if settings.api_key else 'not set'}")
    print(f"  API Token: {'set' if settings.api_token else 'not set'}")
    print(f"  Config File: {settings.config_file}")
    print(f"  Upload Link Expiration: {settings.upload_link_expiration}s")
    print(f"  Archive Compression: {settings.archive_compression}")
    print(f"  Log Level: {settings.log_level}")


if __name__ == "__main__":
    cli()

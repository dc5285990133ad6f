"""
Deployment orchestration for preview environments.

deploy() runs the phases in order:
    REQUEST_ENDPOINT -> NORMALIZE -> ARCHIVE -> SIZE_CHECK -> UPLOAD -> FINALIZE -> SET_MESSAGE
and records the new version in the local ledger only once FINALIZE succeeded.
revert() and deployment_status() are the shorter flows over the same context.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Tuple

from preview_deploy.archiver import Compression, archive_directory, archive_with_root_folder
from preview_deploy.control_plane import ControlPlaneClient
from preview_deploy.exceptions import ControlPlaneError, PreviewDeployError
from preview_deploy.ledger import ProjectStore, VersionLedger, find_version
from preview_deploy.models import (
    DeploymentDirectoryMetadata,
    DeploymentEndpoint,
    DeploymentStatusResult,
    Environment,
    ProjectConfig,
    Version,
    utc_now,
)
from preview_deploy.normalizers import normalize
from preview_deploy.runner import CommandRunner, run_command
from preview_deploy.settings import Settings, get_settings
from preview_deploy.transport import UploadTransport, check_size_limit

logger = logging.getLogger(__name__)

LATEST = "latest"


class DeploymentPhase(Enum):
    """Deployment phases in order."""
    REQUEST_ENDPOINT = "request_endpoint"
    NORMALIZE = "normalize"
    ARCHIVE = "archive"
    SIZE_CHECK = "size_check"
    UPLOAD = "upload"
    FINALIZE = "finalize"
    SET_MESSAGE = "set_message"


@contextmanager
def phase(current: DeploymentPhase) -> Iterator[None]:
    """Log the start, duration and outcome of one deployment phase."""
    logger.info(f"📋 Phase started: {current.value}")
    started_at = time.time()
    try:
        yield
    except Exception as e:
        logger.error(f"❌ Phase failed: {current.value} - {e}")
        raise
    logger.info(f"✅ Phase completed: {current.value} in {time.time() - started_at:.1f}s")


@dataclass
class DeploymentContext:
    """Everything one orchestrator operation needs, passed in explicitly."""
    settings: Settings
    store: ProjectStore
    client: ControlPlaneClient
    transport: UploadTransport
    runner: CommandRunner = run_command

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DeploymentContext":
        settings = settings or get_settings()
        return cls(
            settings=settings,
            store=ProjectStore(settings.config_file),
            client=ControlPlaneClient.from_settings(settings),
            transport=UploadTransport(),
        )

    @property
    def ledger(self) -> VersionLedger:
        return VersionLedger(self.store)

    @property
    def compression(self) -> Compression:
        return Compression(self.settings.archive_compression)

    def project_path(self, path: str) -> Path:
        """Resolve a path from the project config relative to the config file."""
        return (self.store.config_file.parent / path).resolve()


# Environment lifecycle

def initialize_environment(
    context: DeploymentContext,
    project: ProjectConfig,
    owner_id: Optional[str] = None,
) -> ProjectConfig:
    """Create the remote environment and write the project config holding it."""
    environment = context.client.create_environment(project.aws_hosted_zone, project.framework, owner_id)
    project = project.model_copy(update={"environment": environment})
    context.store.save(project)
    return project


def _ensure_environment(context: DeploymentContext, config: ProjectConfig) -> Environment:
    if config.environment is not None:
        return config.environment

    logger.info("🚀 No environment recorded for this project, creating one")
    environment = context.client.create_environment(config.aws_hosted_zone, config.framework)
    context.store.update_environment(lambda _: environment)
    return environment


def delete_environment(context: DeploymentContext) -> bool:
    """Delete the remote environment and forget it locally. Returns False if none existed."""
    config = context.store.load()
    if config.environment is None:
        logger.info("No environment found. Nothing to delete.")
        return False

    context.client.delete_environment(config.environment.environment_id)
    context.store.update_environment(lambda _: None)
    return True


# Deployment

def _archive_split(
    metadata: DeploymentDirectoryMetadata,
    compression: Compression,
) -> Tuple[bytes, Optional[bytes]]:
    if metadata.server_directory is None:
        return archive_directory(metadata.client_directory, compression), None

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="archive") as pool:
        client_future = pool.submit(archive_directory, metadata.client_directory, compression)
        server_future = pool.submit(archive_directory, metadata.server_directory, compression)
        return client_future.result(), server_future.result()


def _deploy_split(
    context: DeploymentContext,
    config: ProjectConfig,
    environment: Environment,
    endpoint: DeploymentEndpoint,
    message: Optional[str],
) -> Version:
    if not endpoint.source_version:
        raise ControlPlaneError("Deployment endpoint response is missing sourceVersion")

    with phase(DeploymentPhase.NORMALIZE):
        metadata = normalize(
            context.project_path(config.build_output_directory),
            config.framework,
            runner=context.runner,
            package_json_path=context.project_path(config.package_json_path) if config.package_json_path else None,
        )

    with phase(DeploymentPhase.ARCHIVE):
        client_archive, server_archive = _archive_split(metadata, context.compression)

    with phase(DeploymentPhase.SIZE_CHECK):
        total_size = check_size_limit(
            [client_archive, server_archive],
            [endpoint.client_target, endpoint.server_target],
        )
        logger.info(f"Deployment size: {total_size} bytes")

    with phase(DeploymentPhase.UPLOAD):
        uploaded = context.transport.upload_all(
            client_archive,
            endpoint.client_target,
            server_archive,
            endpoint.server_target,
        )

    with phase(DeploymentPhase.FINALIZE):
        context.client.complete_deployment(
            environment_id=environment.environment_id,
            source_version=endpoint.source_version,
            client_version=uploaded.client_version,
            server_version=uploaded.server_version,
            has_index_html=metadata.has_index_html,
        )

    return Version(version_id=endpoint.source_version, message=message, is_latest=True)


def _deploy_combined(
    context: DeploymentContext,
    config: ProjectConfig,
    endpoint: DeploymentEndpoint,
    message: Optional[str],
) -> Version:
    extra = {"public": context.project_path(config.public_directory)} if config.public_directory else None

    with phase(DeploymentPhase.ARCHIVE):
        archive = archive_with_root_folder(
            context.project_path(config.build_output_directory),
            extra_directories=extra,
            compression=context.compression,
        )

    with phase(DeploymentPhase.UPLOAD):
        version_id = context.transport.upload(archive, endpoint.combined_target)

    return Version(version_id=version_id, message=message, is_latest=True)


def _set_message(context: DeploymentContext, environment_id: str, version_id: str, message: str) -> None:
    # The deployment already exists remotely; a failure here must not undo it
    try:
        with phase(DeploymentPhase.SET_MESSAGE):
            context.client.set_deployment_message(environment_id, version_id, message)
    except PreviewDeployError as e:
        logger.warning(f"⚠️ Deployment {version_id} succeeded but its message could not be set: {e}")


def deploy(context: DeploymentContext, message: Optional[str] = None) -> Version:
    """
    Deploy the project's build output as a new version.

    Returns:
        The version recorded as latest in the local ledger

    Raises:
        PreviewDeployError: On any failure before FINALIZE; the ledger is untouched
    """
    config = context.store.load()
    environment = _ensure_environment(context, config)
    logger.info(f"🚀 Deploying {config.framework.value} build to environment {environment.environment_id}")

    with phase(DeploymentPhase.REQUEST_ENDPOINT):
        endpoint = context.client.request_deployment_endpoint(
            environment.environment_id,
            message=message,
            expires_in=context.settings.upload_link_expiration,
        )

    if endpoint.is_split:
        version = _deploy_split(context, config, environment, endpoint, message)
    else:
        version = _deploy_combined(context, config, endpoint, message)

    if message:
        _set_message(context, environment.environment_id, version.version_id, message)

    context.ledger.record(version)
    logger.info(f"🎉 Deployment triggered: version {version.version_id}")
    return version


def revert(context: DeploymentContext, source_version: str) -> Version:
    """
    Redeploy a previously recorded version as a new latest version.

    Raises:
        NotFoundError: If source_version is not in the local ledger
    """
    environment = context.ledger.environment()
    previous = find_version(environment, source_version)

    new_version_id = context.client.revert_to_version(environment.environment_id, source_version)
    version = Version(
        version_id=new_version_id,
        message=previous.message,
        is_latest=True,
        last_updated=utc_now(),
    )
    context.ledger.record(version)
    logger.info(f"🎉 Reverted to {source_version} as new version {new_version_id}")
    return version


def deploy_version(context: DeploymentContext, version: str = LATEST, message: Optional[str] = None) -> Version:
    """Deploy the current build when version is 'latest', otherwise revert to that version."""
    if version == LATEST:
        return deploy(context, message)
    return revert(context, version)


def deployment_status(context: DeploymentContext) -> DeploymentStatusResult:
    """Ask the control plane for the status of the latest recorded version."""
    environment = context.ledger.environment()
    latest = context.ledger.latest()
    return context.client.deployment_status(environment.environment_id, latest.version_id)

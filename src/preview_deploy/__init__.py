"""Build, package and upload frontend builds to preview environments."""
from preview_deploy.archiver import Compression, archive_directory, archive_with_root_folder, extract_archive
from preview_deploy.control_plane import ControlPlaneClient
from preview_deploy.exceptions import (
    BuildNormalizationError,
    ConfigurationError,
    ControlPlaneError,
    NotFoundError,
    PreviewDeployError,
    SizeLimitExceeded,
    SubprocessFailure,
    UploadError,
)
from preview_deploy.ledger import ProjectStore, VersionLedger
from preview_deploy.models import (
    DeploymentDirectoryMetadata,
    DeploymentStatus,
    Environment,
    Framework,
    ProjectConfig,
    Version,
)
from preview_deploy.normalizers import normalize
from preview_deploy.orchestrator import (
    DeploymentContext,
    delete_environment,
    deploy,
    deploy_version,
    deployment_status,
    initialize_environment,
    revert,
)
from preview_deploy.settings import Settings, get_settings
from preview_deploy.transport import UploadTransport

__version__ = "0.1.0"

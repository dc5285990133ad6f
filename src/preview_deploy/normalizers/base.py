"""
Base class and shared helpers for framework build normalizers.

A normalizer inspects a build output directory, performs whatever repackaging
its framework needs, and reports the canonical client/server layout.
"""
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from preview_deploy.exceptions import BuildNormalizationError
from preview_deploy.models import DeploymentDirectoryMetadata
from preview_deploy.runner import CommandResult, CommandRunner, run_command

logger = logging.getLogger(__name__)

INDEX_HTML = "index.html"

# Flat node_modules without symlinks so the server directory archives cleanly
NPMRC_CONTENT = "node-linker=hoisted\nsymlink=false\n"

PRODUCTION_ENV = {"NODE_ENV": "production"}


def has_index_html(directory: Path) -> bool:
    return (directory / INDEX_HTML).is_file()


def default_metadata(build_dir: Path) -> DeploymentDirectoryMetadata:
    """Static layout: the build directory is the client directory."""
    return DeploymentDirectoryMetadata(
        client_directory=build_dir,
        has_index_html=has_index_html(build_dir),
    )


def require_directory(path: Path, description: str) -> Path:
    if not path.is_dir():
        raise BuildNormalizationError(f"{description} does not exist: {path}")
    return path


def write_npmrc(directory: Path) -> None:
    (directory / ".npmrc").write_text(NPMRC_CONTENT, encoding="utf-8")


class BaseNormalizer:
    """Base class for framework-specific build normalizers."""

    def __init__(self, runner: CommandRunner = run_command, package_json_path: Optional[Union[str, Path]] = None):
        self.runner = runner
        self.package_json_path = Path(package_json_path) if package_json_path else None

    def normalize(self, build_dir: Path) -> DeploymentDirectoryMetadata:
        raise NotImplementedError

    def _run(
        self,
        command: Sequence[str],
        cwd: Path,
        env: Optional[Dict[str, str]] = PRODUCTION_ENV,
    ) -> CommandResult:
        return self.runner(list(command), cwd=cwd, env=env)

    @staticmethod
    def _metadata(client_directory: Path, server_directory: Optional[Path] = None) -> DeploymentDirectoryMetadata:
        # index.html is checked after all repackaging has finished
        return DeploymentDirectoryMetadata(
            client_directory=client_directory,
            has_index_html=has_index_html(client_directory),
            server_directory=server_directory,
        )

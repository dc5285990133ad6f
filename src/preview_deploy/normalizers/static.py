"""Static-only builds (React, Gatsby, static Astro)."""
from pathlib import Path

from preview_deploy.models import DeploymentDirectoryMetadata
from preview_deploy.normalizers.base import BaseNormalizer, default_metadata


class StaticNormalizer(BaseNormalizer):
    """The build directory is deployed as-is with no server directory."""

    def normalize(self, build_dir: Path) -> DeploymentDirectoryMetadata:
        return default_metadata(build_dir)

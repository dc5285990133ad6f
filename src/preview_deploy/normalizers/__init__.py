"""
Framework build normalizers.

Maps every supported framework to the normalizer that turns its build output
into a {client directory, optional server directory, has index.html} layout:
    - React, Gatsby: StaticNormalizer
    - Next.js: NextJsNormalizer (OpenNext for `.next` standalone builds)
    - Remix, Vue: synthesized serverless-express entry + npm install
    - Astro: adapter metadata driven dependency install
    - Dash: open-dash static export
"""
import logging
from pathlib import Path
from typing import Dict, Optional, Type, Union

from preview_deploy.exceptions import BuildNormalizationError
from preview_deploy.models import DeploymentDirectoryMetadata, Framework
from preview_deploy.normalizers.astro import AstroNormalizer
from preview_deploy.normalizers.base import BaseNormalizer, default_metadata
from preview_deploy.normalizers.dash import DashNormalizer
from preview_deploy.normalizers.nextjs import NextJsNormalizer
from preview_deploy.normalizers.ssr_entry import RemixNormalizer, VueNormalizer
from preview_deploy.normalizers.static import StaticNormalizer
from preview_deploy.runner import CommandRunner, run_command
from preview_deploy.utils.decorators import log_operation

logger = logging.getLogger(__name__)

NORMALIZERS: Dict[Framework, Type[BaseNormalizer]] = {
    Framework.DASH: DashNormalizer,
    Framework.REACT: StaticNormalizer,
    Framework.GATSBY: StaticNormalizer,
    Framework.REMIX: RemixNormalizer,
    Framework.VUE: VueNormalizer,
    Framework.NEXTJS: NextJsNormalizer,
    Framework.ASTRO: AstroNormalizer,
}

_missing = set(Framework) - set(NORMALIZERS)
if _missing:
    raise RuntimeError(f"No normalizer registered for: {sorted(f.value for f in _missing)}")


def _framework(value: Union[Framework, str, None]) -> Optional[Framework]:
    if value is None:
        return None
    try:
        return Framework(value)
    except ValueError:
        logger.warning(f"Unrecognized framework '{value}', deploying build output as static files")
        return None


@log_operation("Normalizing build output")
def normalize(
    build_output_directory: Union[str, Path],
    framework: Union[Framework, str, None],
    runner: CommandRunner = run_command,
    package_json_path: Optional[Union[str, Path]] = None,
) -> DeploymentDirectoryMetadata:
    """
    Normalize a build output directory for the given framework.

    Raises:
        BuildNormalizationError: If the build output or a required artifact is missing
        SubprocessFailure: If a bundler or package manager exits non-zero
    """
    build_dir = Path(build_output_directory).resolve()
    if not build_dir.is_dir():
        raise BuildNormalizationError(f"Build output directory does not exist: {build_dir}")

    resolved = _framework(framework)
    if resolved is None:
        return default_metadata(build_dir)

    normalizer = NORMALIZERS[resolved](runner=runner, package_json_path=package_json_path)
    metadata = normalizer.normalize(build_dir)
    logger.info(
        f"📋 {resolved.value}: client={metadata.client_directory} "
        f"server={metadata.server_directory} index.html={metadata.has_index_html}"
    )
    return metadata


__all__ = [
    "NORMALIZERS",
    "BaseNormalizer",
    "normalize",
]

"""
Astro builds produced with the @zonke-cloud/astro-adapter integration.

The integration writes zonke-adapter-metadata.json next to the build and,
unless bundling is disabled, an esbuild-bundled handler under lambda/.
"""
import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict
from urllib.parse import urlparse
from urllib.request import url2pathname

from preview_deploy.exceptions import BuildNormalizationError
from preview_deploy.models import DeploymentDirectoryMetadata
from preview_deploy.normalizers.base import BaseNormalizer, default_metadata, require_directory, write_npmrc

logger = logging.getLogger(__name__)

ADAPTER_METADATA_FILE = "zonke-adapter-metadata.json"
ADAPTER_PACKAGE = "@zonke-cloud/astro-adapter"
LAMBDA_RUNTIME_PACKAGE = "@rollup/rollup-linux-arm64-gnu"


def is_astro_ssr_build(build_dir: Path) -> bool:
    """Any server output, bundled or not, makes the adapter metadata mandatory."""
    return (build_dir / "lambda").exists() or (build_dir / "server").exists()


def _project_root(metadata: Dict[str, Any]) -> Path:
    root = (metadata.get("astro") or {}).get("root")
    if not root:
        raise BuildNormalizationError(f"{ADAPTER_METADATA_FILE} does not record the Astro project root")
    if root.startswith("file:"):
        return Path(url2pathname(urlparse(root).path))
    return Path(root)


class AstroNormalizer(BaseNormalizer):
    """Installs server dependencies for the bundled (lambda/) or unbundled (server/) layout."""

    def normalize(self, build_dir: Path) -> DeploymentDirectoryMetadata:
        if not is_astro_ssr_build(build_dir):
            return default_metadata(build_dir)

        metadata = self._read_metadata(build_dir)
        client_dir = require_directory(build_dir / "client", "Client build output directory")
        lambda_dir = build_dir / "lambda"
        if lambda_dir.exists():
            server_dir = lambda_dir
            self._prepare_bundled(server_dir, metadata)
        else:
            server_dir = build_dir / "server"
            self._prepare_unbundled(server_dir, metadata)

        return self._metadata(client_dir, server_dir)

    @staticmethod
    def _read_metadata(build_dir: Path) -> Dict[str, Any]:
        metadata_path = build_dir / ADAPTER_METADATA_FILE
        if not metadata_path.is_file():
            raise BuildNormalizationError(
                f"{ADAPTER_METADATA_FILE} is missing from output directory. "
                f"Is the {ADAPTER_PACKAGE} defined in your Astro config?"
            )
        try:
            return json.loads(metadata_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise BuildNormalizationError(f"{ADAPTER_METADATA_FILE} is not valid JSON: {e}") from e

    def _prepare_bundled(self, server_dir: Path, metadata: Dict[str, Any]) -> None:
        # Only packages left external by the bundler need installing
        pins = (metadata.get("adapter") or {}).get("externalPackageVersions") or {}
        write_npmrc(server_dir)
        (server_dir / "package.json").write_text(
            json.dumps({"type": "commonjs", "dependencies": pins}, indent=2),
            encoding="utf-8",
        )
        self._run(["corepack", "enable", "pnpm"], cwd=server_dir)
        self._run(["pnpm", "add", LAMBDA_RUNTIME_PACKAGE], cwd=server_dir)

    def _prepare_unbundled(self, server_dir: Path, metadata: Dict[str, Any]) -> None:
        manifest = _project_root(metadata) / "package.json"
        if not manifest.is_file():
            raise BuildNormalizationError(f"Astro project package.json not found: {manifest}")
        write_npmrc(server_dir)
        shutil.copy2(manifest, server_dir / "package.json")
        self._run(["npm", "install"], cwd=server_dir)

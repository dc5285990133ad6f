"""
Next.js standalone builds.

OpenNext splits the standalone output into static assets and a server
function. It runs the project's build script itself, so that script is
swapped for a no-op while it runs and restored afterwards.
"""
import json
import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from preview_deploy.exceptions import BuildNormalizationError
from preview_deploy.models import DeploymentDirectoryMetadata
from preview_deploy.normalizers.base import INDEX_HTML, BaseNormalizer, default_metadata, require_directory

logger = logging.getLogger(__name__)

STANDALONE_BUILD_DIR = ".next"
OPEN_NEXT_BUILD = ["npx", "--yes", "open-next", "build"]
NOOP_SCRIPTS = {"build": "exit 0"}


@contextmanager
def build_script_disabled(manifest: Path) -> Iterator[None]:
    """Replace the manifest's scripts with a no-op build, restoring the original on exit."""
    if not manifest.is_file():
        raise BuildNormalizationError(f"package.json not found next to the build output: {manifest}")

    backup = manifest.with_name(manifest.name + ".bak")
    shutil.copy2(manifest, backup)
    try:
        package_json = json.loads(manifest.read_text(encoding="utf-8"))
        package_json["scripts"] = dict(NOOP_SCRIPTS)
        manifest.write_text(json.dumps(package_json, indent=2), encoding="utf-8")
        yield
    finally:
        shutil.copy2(backup, manifest)
        backup.unlink()
        logger.debug(f"Restored {manifest}")


class NextJsNormalizer(BaseNormalizer):
    """Bundles a `.next` standalone build with OpenNext; other Next.js outputs are static exports."""

    def normalize(self, build_dir: Path) -> DeploymentDirectoryMetadata:
        if build_dir.name != STANDALONE_BUILD_DIR:
            return default_metadata(build_dir)

        project_root = build_dir.parent
        with build_script_disabled(project_root / "package.json"):
            self._run(OPEN_NEXT_BUILD, cwd=project_root)

        open_next = project_root / ".open-next"
        client_dir = require_directory(open_next / "assets", "OpenNext assets directory")
        server_dir = require_directory(open_next / "server-functions" / "default", "OpenNext server function")

        generated_index = build_dir / "standalone" / ".next" / "server" / "app" / INDEX_HTML
        if generated_index.is_file():
            shutil.copy2(generated_index, client_dir / INDEX_HTML)

        return self._metadata(client_dir, server_dir)

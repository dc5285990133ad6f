"""Plotly Dash apps, exported to static assets with open-dash."""
import json
import logging
import shutil
import sys
from pathlib import Path

from preview_deploy.models import DeploymentDirectoryMetadata
from preview_deploy.normalizers.base import BaseNormalizer

logger = logging.getLogger(__name__)

VENV_NAME = ".venv-open-dash"
CONFIG_NAME = "open-dash.config.json"
OUTPUT_DIR = ".open-dash"


class DashNormalizer(BaseNormalizer):
    """
    Bundles a Dash source directory into static assets.

    open-dash is installed into a throwaway virtualenv next to the source; the
    virtualenv and the generated config are removed whether or not the bundle
    succeeds.
    """

    def normalize(self, build_dir: Path) -> DeploymentDirectoryMetadata:
        source_parent = build_dir.parent
        venv_path = (source_parent / VENV_NAME).resolve()
        config_path = build_dir / CONFIG_NAME

        try:
            config_path.write_text(json.dumps({
                "warmer": False,
                "venv-path": str(venv_path),
                "export-static": True,
                "source-path": str(build_dir),
                "excluded-directories": [],
                "target-base-path": str(source_parent),
                "fingerprint": {
                    "version": True,
                    "method": "last-modified",
                },
            }, indent=2), encoding="utf-8")

            self._run([sys.executable, "-m", "venv", VENV_NAME], cwd=source_parent, env=None)
            self._run([str(venv_path / "bin" / "pip3"), "install", "open-dash"], cwd=venv_path, env=None)
            self._run(
                [str(venv_path / "bin" / "open-dash"), "bundle", f"--config-path={CONFIG_NAME}"],
                cwd=build_dir,
                env=None,
            )
        finally:
            if venv_path.exists():
                shutil.rmtree(venv_path)
            if config_path.exists():
                config_path.unlink()

        return self._metadata(source_parent / OUTPUT_DIR / "assets")

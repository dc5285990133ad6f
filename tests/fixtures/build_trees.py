"""Helpers that lay out framework build output directories on disk."""
import os
from pathlib import Path
from typing import Optional, Union

from preview_deploy.ledger import ProjectStore
from preview_deploy.models import Environment, Framework, ProjectConfig
from tests.consts import TEST_HOSTED_ZONE


def write_file(path: Path, content: Union[str, bytes] = "", mode: Optional[int] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    if mode is not None:
        os.chmod(path, mode)
    return path


def make_static_build(root: Path) -> Path:
    """
    build/
        assets/app.js
        bin/run.sh        (0755)
        index.html
        link.html -> index.html
    """
    write_file(root / "index.html", "<html><body>hello</body></html>", mode=0o644)
    write_file(root / "assets" / "app.js", "console.log('hi');\n" * 50, mode=0o644)
    write_file(root / "bin" / "run.sh", "#!/bin/sh\necho run\n", mode=0o755)
    os.symlink("index.html", root / "link.html")
    return root


def make_ssr_build(root: Path, server_entry: str = "server.js") -> Path:
    """Build output with client/ and server/ subdirectories."""
    write_file(root / "client" / "assets" / "entry.js", "export default 1;\n")
    write_file(root / "server" / server_entry, "export const render = () => '';\n")
    return root


def make_project(
    project_dir: Path,
    framework: Framework,
    build_output_directory: str,
    environment: Optional[Environment] = None,
    **extra,
) -> ProjectStore:
    store = ProjectStore(project_dir / ".preview-environment.json")
    store.save(ProjectConfig(
        framework=framework,
        aws_hosted_zone=TEST_HOSTED_ZONE,
        build_output_directory=build_output_directory,
        environment=environment,
        **extra,
    ))
    return store

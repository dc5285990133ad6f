"""
Project configuration store and version ledger.

The project file holds {framework, awsHostedZone, buildOutputDirectory, ...,
environment}. Every write goes through an exclusive lock on a sidecar file and
an atomic rename, so a read-modify-write is never interleaved with another.
"""
import fcntl
import json
import logging
import os
import stat
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Union

from preview_deploy.exceptions import ConfigurationError, NotFoundError
from preview_deploy.models import Environment, ProjectConfig, Version
from preview_deploy.settings import append_to_gitignore

logger = logging.getLogger(__name__)

_LOCK_SUFFIX = ".lock"

# rw-r--r-- for a newly created project file
DEFAULT_FILE_MODE = 0o644

EnvironmentUpdate = Callable[[Optional[Environment]], Optional[Environment]]


def append_version(environment: Environment, version: Version) -> Environment:
    """Return environment with version appended as the only latest entry."""
    previous = [v.model_copy(update={"is_latest": False}) for v in environment.versions]
    latest = version.model_copy(update={"is_latest": True})
    return environment.model_copy(update={"versions": previous + [latest]})


def latest_version(environment: Environment) -> Optional[Version]:
    for version in reversed(environment.versions):
        if version.is_latest:
            return version
    return None


def find_version(environment: Environment, version_id: str) -> Version:
    for version in environment.versions:
        if version.version_id == version_id:
            return version
    raise NotFoundError(f"The specified source version '{version_id}' does not exist.")


@contextmanager
def _locked_file(path: Path) -> Iterator[None]:
    """Hold an exclusive lock on path's .lock sidecar for the duration of the context."""
    lock_path = path.with_name(path.name + _LOCK_SUFFIX)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+", encoding="utf-8") as lock_handle:
        fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # mkstemp creates 0600; keep the existing file's mode across rewrites
    mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else DEFAULT_FILE_MODE
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class ProjectStore:
    """Reads and writes the per-project configuration file."""

    def __init__(self, config_file: Union[str, Path] = ".preview-environment.json"):
        self.config_file = Path(config_file)

    def exists(self) -> bool:
        return self.config_file.exists()

    def _read_raw(self) -> Dict[str, Any]:
        if not self.config_file.exists():
            raise ConfigurationError(
                f"Config file {self.config_file} does not exist. Run `preview-deploy init` to create it."
            )
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Config file {self.config_file} is not valid JSON: {e}") from e

    def load(self) -> ProjectConfig:
        return ProjectConfig.model_validate(self._read_raw())

    def save(self, config: ProjectConfig) -> None:
        """Write the full project record, creating the file (and its .gitignore entry) if needed."""
        with _locked_file(self.config_file):
            created = not self.config_file.exists()
            _atomic_write_text(self.config_file, self._dump(config))
        if created:
            append_to_gitignore(self.config_file.name, self.config_file.parent)
            logger.info(f"📋 Created project config {self.config_file}")

    def update_environment(self, update: EnvironmentUpdate) -> ProjectConfig:
        """
        Apply update to the environment record under the file lock.

        update receives the environment as currently on disk and returns its
        replacement. Other keys in the file are preserved.
        """
        with _locked_file(self.config_file):
            raw = self._read_raw()
            current = ProjectConfig.model_validate(raw)
            environment = update(current.environment)
            if environment is None:
                raw.pop("environment", None)
            else:
                raw["environment"] = environment.model_dump(mode="json", by_alias=True, exclude_none=True)
            _atomic_write_text(self.config_file, json.dumps(raw, indent=2))
        return ProjectConfig.model_validate(raw)

    @staticmethod
    def _dump(config: ProjectConfig) -> str:
        return json.dumps(config.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2)


class VersionLedger:
    """Version history of the project's environment, backed by a ProjectStore."""

    def __init__(self, store: ProjectStore):
        self.store = store

    def environment(self) -> Environment:
        environment = self.store.load().environment
        if environment is None:
            raise ConfigurationError("No environment found. Run `preview-deploy deploy` to create one.")
        return environment

    def latest(self) -> Version:
        environment = self.environment()
        version = latest_version(environment)
        if version is None:
            raise NotFoundError("No deployed version found. Run `preview-deploy deploy` first.")
        return version

    def find(self, version_id: str) -> Version:
        return find_version(self.environment(), version_id)

    def record(self, version: Version) -> Environment:
        """Append version as latest. Only call after the remote deployment succeeded."""
        def _append(environment: Optional[Environment]) -> Environment:
            if environment is None:
                raise ConfigurationError("Cannot record a version without an environment")
            return append_version(environment, version)

        config = self.store.update_environment(_append)
        logger.info(f"✅ Recorded version {version.version_id} as latest")
        return config.environment

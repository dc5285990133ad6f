#######################################
# --- Preview environment models --- #
#######################################

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class Framework(str, Enum):
    """Frontend frameworks whose build output can be deployed."""
    DASH = "dash"
    REACT = "react"
    GATSBY = "gatsby"
    REMIX = "remix"
    VUE = "vue"
    NEXTJS = "nextjs"
    ASTRO = "astro"


class DeploymentStatus(str, Enum):
    """Deployment states reported by the control plane."""
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Version(_CamelModel):
    """One uploaded, addressable snapshot of a preview environment."""
    version_id: str = Field(alias="versionId", description="Object version or source version ID.")
    message: Optional[str] = Field(
        default=None,
        description="Short message describing the change, like a commit message.",
    )
    is_latest: bool = Field(default=False, alias="isLatest")
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")


class Environment(_CamelModel):
    """A preview environment and its locally known version history."""
    environment_id: str = Field(alias="environmentId")
    endpoint: str = Field(
        default="",
        description="Environment URL, https://<endpoint-id>.preview.<mydomain.com>",
    )
    versions: List[Version] = Field(default_factory=list)


class ProjectConfig(_CamelModel):
    """Per-project configuration record, persisted as JSON next to the project."""
    framework: Framework
    aws_hosted_zone: str = Field(alias="awsHostedZone", description="Hosted zone name, not ID.")
    build_output_directory: str = Field(alias="buildOutputDirectory")
    package_json_path: Optional[str] = Field(
        default=None,
        alias="packageJsonPath",
        description="Remix only: manifest copied into the server build before installing dependencies.",
    )
    public_directory: Optional[str] = Field(
        default=None,
        alias="publicDirectory",
        description="Next.js only: static files bundled alongside a combined deployment.",
    )
    environment: Optional[Environment] = None


class DeploymentStatusResult(_CamelModel):
    """Status of one deployment of a preview environment."""
    status: DeploymentStatus
    environment_id: Optional[str] = Field(default=None, alias="environmentId")
    source_version: Optional[str] = Field(default=None, alias="sourceVersion")
    error: Optional[str] = None


@dataclass(frozen=True)
class DeploymentDirectoryMetadata:
    """Canonical client/server layout produced by a normalizer."""
    client_directory: Path
    has_index_html: bool
    server_directory: Optional[Path] = None


@dataclass(frozen=True)
class DirectTarget:
    """Signed PUT URL; the whole archive is the request body."""
    endpoint: str


@dataclass(frozen=True)
class MultipartTarget:
    """Signed POST form; fields are sent in order with the archive as the last field."""
    url: str
    fields: Tuple[Tuple[str, str], ...]
    max_total_size: int


UploadTarget = Union[DirectTarget, MultipartTarget]


@dataclass(frozen=True)
class DeploymentEndpoint:
    """Upload destinations issued by the control plane for one deployment."""
    source_version: Optional[str]
    client_target: Optional[UploadTarget] = None
    server_target: Optional[UploadTarget] = None
    combined_target: Optional[DirectTarget] = None
    max_size: Optional[int] = None

    @property
    def is_split(self) -> bool:
        return self.client_target is not None


@dataclass(frozen=True)
class UploadResult:
    """Version identifiers returned by the object store for one deployment."""
    client_version: str
    server_version: Optional[str] = None

    @property
    def version_ids(self) -> List[str]:
        if self.server_version is None:
            return [self.client_version]
        return [self.client_version, self.server_version]

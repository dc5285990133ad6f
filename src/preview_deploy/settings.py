# src/preview_deploy/settings.py
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from preview_deploy.exceptions import ConfigurationError

CREDENTIALS_FILE = ".env.preview"
DEFAULT_API_ENDPOINT = "https://zonke.dev/api/rest"


class Settings(BaseSettings):
    """
    Single source of truth for deployment client settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env.preview credentials file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from preview_deploy.settings import get_settings
        settings = get_settings()
        endpoint = settings.api_endpoint
    """

    # Control plane credentials
    api_key: Optional[str] = Field(
        default=None,
        alias="ZONKE_API_KEY",
        description="API key found in the dashboard"
    )

    api_token: Optional[str] = Field(
        default=None,
        alias="ZONKE_API_TOKEN",
        description="API secret token found in the dashboard"
    )

    api_endpoint: str = Field(
        default=DEFAULT_API_ENDPOINT,
        alias="ZONKE_API_ENDPOINT",
        description="Control plane REST base URL"
    )

    # Project state
    config_file: str = Field(
        default=".preview-environment.json",
        alias="PREVIEW_CONFIG_FILE",
        description="Project configuration and version ledger file"
    )

    # Transfer
    upload_link_expiration: int = Field(
        default=60,
        alias="PREVIEW_UPLOAD_LINK_EXPIRATION",
        description="Seconds the signed upload links stay valid"
    )

    request_timeout: int = Field(
        default=30,
        alias="PREVIEW_REQUEST_TIMEOUT",
        description="Control plane request timeout in seconds"
    )

    archive_compression: Literal["deflate", "store"] = Field(
        default="deflate",
        alias="PREVIEW_ARCHIVE_COMPRESSION",
        description="Zip method for deployment archives: maximum deflate or stored"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=CREDENTIALS_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def require_credentials(self) -> None:
        """Raise ConfigurationError unless both key and token are available."""
        if not self.api_key or not self.api_token:
            raise ConfigurationError(
                f"Credentials not found. Run `preview-deploy init` to create {CREDENTIALS_FILE} "
                f"or export ZONKE_API_KEY and ZONKE_API_TOKEN."
            )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()


def append_to_gitignore(entry: str, directory: Union[str, Path] = ".") -> None:
    """Add a local state file to .gitignore unless it is already listed."""
    gitignore = Path(directory) / ".gitignore"
    existing = gitignore.read_text(encoding="utf-8").splitlines() if gitignore.exists() else []
    if entry in existing:
        return
    with open(gitignore, "a", encoding="utf-8") as f:
        f.write(f"\n{entry}\n")


def write_credentials_file(
    api_key: str,
    api_token: str,
    api_endpoint: str = DEFAULT_API_ENDPOINT,
    directory: Union[str, Path] = ".",
) -> Path:
    """Write the credentials record and keep it out of version control."""
    path = Path(directory) / CREDENTIALS_FILE
    path.write_text(
        f"ZONKE_API_KEY={api_key}\n"
        f"ZONKE_API_TOKEN={api_token}\n"
        f"ZONKE_API_ENDPOINT={api_endpoint}\n",
        encoding="utf-8",
    )
    append_to_gitignore(CREDENTIALS_FILE, directory)
    get_settings.cache_clear()
    return path

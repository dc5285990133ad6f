"""
Deployment pipeline exceptions.

Every failure raised by the pipeline derives from PreviewDeployError so the CLI
can report it without a traceback. None of these are retried internally.
"""
from typing import List, Optional, Sequence


class PreviewDeployError(Exception):
    """Base class for all preview deployment failures."""
    pass


class ConfigurationError(PreviewDeployError):
    """
    Raised when local configuration is missing or unusable.

    Examples:
        - Credentials file absent and no ZONKE_API_KEY in the environment
        - Project config file not initialized
    """
    pass


class ControlPlaneError(PreviewDeployError):
    """Raised when a control-plane call fails. The message comes from the response body."""

    def __init__(self, message: str, status_code: Optional[int] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation


class SizeLimitExceeded(PreviewDeployError):
    """Raised before any transfer when the combined artifact size is over quota."""

    def __init__(self, total_size: int, max_total_size: int):
        super().__init__(
            f"Deployment size {total_size} bytes exceeds the maximum of {max_total_size} bytes"
        )
        self.total_size = total_size
        self.max_total_size = max_total_size


class BuildNormalizationError(PreviewDeployError):
    """Raised when an expected directory or file is missing from the build output."""
    pass


class SubprocessFailure(PreviewDeployError):
    """Raised when an external build or package-manager command exits non-zero."""

    def __init__(self, command: Sequence[str], returncode: int, cwd: Optional[str] = None):
        self.command: List[str] = list(command)
        self.returncode = returncode
        self.cwd = cwd
        location = f" in {cwd}" if cwd else ""
        super().__init__(
            f"Command '{' '.join(self.command)}'{location} failed with exit code {returncode}"
        )


class UploadError(PreviewDeployError):
    """Raised on transport failure or when the object store returns no version header."""
    pass


class NotFoundError(PreviewDeployError):
    """Raised when a requested version is not present in the local ledger."""
    pass

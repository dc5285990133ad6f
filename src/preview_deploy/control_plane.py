"""Control plane HTTP client for preview environments."""
import logging
from typing import Any, Dict, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from preview_deploy.exceptions import ControlPlaneError
from preview_deploy.models import (
    DeploymentEndpoint,
    DeploymentStatusResult,
    DirectTarget,
    Environment,
    Framework,
    MultipartTarget,
    UploadTarget,
)
from preview_deploy.settings import Settings

logger = logging.getLogger(__name__)

RESOURCE_PATH = "preview-environment"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(model: Type[ModelT], data: Any, operation: str) -> ModelT:
    """Validate a response body, reporting a malformed one as a control plane failure."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error(f"Unexpected '{operation or 'get'}' response from control plane: {e}")
        raise ControlPlaneError(
            f"Unexpected response from control plane operation '{operation or 'get'}': "
            f"{e.error_count()} invalid field(s)",
            operation=operation,
        ) from e


class ControlPlaneClient:
    """HTTP client for the preview environment REST API."""

    def __init__(
        self,
        api_key: str,
        api_token: str,
        api_endpoint: str,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ):
        """Initialize the control plane client.

        Args:
            api_key: Value of the x-zonke-api-key header
            api_token: Value of the x-zonke-api-token header
            api_endpoint: REST base URL, e.g. https://zonke.dev/api/rest
            session: HTTP session to reuse; a new one is created if omitted
            timeout: Request timeout in seconds
        """
        self.base_url = api_endpoint.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
            "x-zonke-api-key": api_key,
            "x-zonke-api-token": api_token,
        })

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "ControlPlaneClient":
        settings.require_credentials()
        return cls(
            api_key=settings.api_key,
            api_token=settings.api_token,
            api_endpoint=settings.api_endpoint,
            session=session,
            timeout=settings.request_timeout,
        )

    def _execute(self, operation: str, payload: Dict[str, Any]) -> Any:
        """POST a JSON payload to one control plane operation and return the decoded body."""
        url = f"{self.base_url}/{RESOURCE_PATH}" + (f"/{operation}" if operation else "")
        body = {key: value for key, value in payload.items() if value is not None}
        try:
            response = self.session.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Control plane request '{operation or 'get'}' failed: {e}")
            raise ControlPlaneError(str(e), operation=operation) from e

        if not response.ok:
            message = self._error_message(response)
            logger.error(f"Control plane '{operation or 'get'}' returned {response.status_code}: {message}")
            raise ControlPlaneError(message, status_code=response.status_code, operation=operation)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ControlPlaneError(
                f"Invalid JSON from control plane operation '{operation}'",
                status_code=response.status_code,
                operation=operation,
            ) from e

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return response.text or f"HTTP {response.status_code}"

    # Environment lifecycle

    def create_environment(
        self,
        aws_hosted_zone: str,
        framework: Framework,
        owner_id: Optional[str] = None,
    ) -> Environment:
        """Define a preview environment. The returned versions list is always empty."""
        data = self._execute("create", {
            "userId": owner_id,
            "framework": Framework(framework).value,
            "awsHostedZone": aws_hosted_zone,
        })
        environment = _parse(Environment, data, "create")
        logger.info(f"Created preview environment {environment.environment_id}")
        return environment

    def get_environment(self, environment_id: str) -> Environment:
        data = self._execute("", {"environmentId": environment_id})
        return _parse(Environment, data, "")

    def delete_environment(self, environment_id: str) -> bool:
        """Delete an environment and all of its versions."""
        data = self._execute("delete", {"environmentId": environment_id})
        logger.info(f"Deleted preview environment {environment_id}")
        return bool(data) if data is not None else True

    # Deployments

    def request_deployment_endpoint(
        self,
        environment_id: str,
        message: Optional[str] = None,
        expires_in: int = 60,
    ) -> DeploymentEndpoint:
        """Obtain signed upload destinations and a source version for the next deployment."""
        data = self._execute("deployment-endpoint", {
            "message": message,
            "environmentId": environment_id,
            "expiresIn": expires_in,
        })
        return parse_deployment_endpoint(data or {})

    def complete_deployment(
        self,
        environment_id: str,
        source_version: str,
        client_version: str,
        server_version: Optional[str],
        has_index_html: bool,
    ) -> None:
        self._execute("complete-deployment", {
            "environmentId": environment_id,
            "serverVersion": server_version,
            "clientVersion": client_version,
            "sourceVersion": source_version,
            "hasIndexHtml": has_index_html,
        })

    def set_deployment_message(self, environment_id: str, source_version: str, message: str) -> None:
        self._execute("set-deployment-message", {
            "message": message,
            "environmentId": environment_id,
            "sourceVersion": source_version,
        })

    def deployment_status(self, environment_id: str, source_version: str) -> DeploymentStatusResult:
        data = self._execute("deployment-status", {
            "environmentId": environment_id,
            "sourceVersion": source_version,
        })
        return _parse(DeploymentStatusResult, data, "deployment-status")

    def revert_to_version(self, environment_id: str, source_version: str) -> str:
        """Redeploy an earlier version. Returns the new version's identifier."""
        data = self._execute("deploy-version", {
            "environmentId": environment_id,
            "sourceVersion": source_version,
        })
        new_version = data.get("sourceVersion") if isinstance(data, dict) else None
        if not new_version:
            raise ControlPlaneError("Failed to revert to the specified source version.", operation="deploy-version")
        return new_version


def _post_target(configuration: Dict[str, Any], max_size: Optional[int]) -> MultipartTarget:
    if max_size is None:
        raise ControlPlaneError(
            "Signed POST configuration issued without maxDeploymentSize",
            operation="deployment-endpoint",
        )
    try:
        return MultipartTarget(
            url=configuration["presignedUrl"],
            fields=tuple((field["key"], field["value"]) for field in configuration.get("fields", [])),
            max_total_size=int(max_size),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ControlPlaneError(
            f"Malformed signed POST configuration: {e!r}",
            operation="deployment-endpoint",
        ) from e


def _target(
    data: Dict[str, Any],
    configuration_key: str,
    endpoint_key: str,
    max_size: Optional[int],
) -> Optional[UploadTarget]:
    if data.get(configuration_key):
        return _post_target(data[configuration_key], max_size)
    if data.get(endpoint_key):
        return DirectTarget(endpoint=data[endpoint_key])
    return None


def parse_deployment_endpoint(data: Dict[str, Any]) -> DeploymentEndpoint:
    """
    Turn a deployment-endpoint response into upload targets.

    Signed POST configurations take precedence over signed PUT URLs. A response
    carrying only presignedDeploymentEndpoint selects the combined bundle flow.
    """
    max_size = data.get("maxDeploymentSize")
    client_target = _target(
        data, "presignedClientDeploymentConfiguration", "presignedClientDeploymentEndpoint", max_size
    )
    server_target = _target(
        data, "presignedServerDeploymentConfiguration", "presignedServerDeploymentEndpoint", max_size
    )
    combined = data.get("presignedDeploymentEndpoint")

    if client_target is None and not combined:
        raise ControlPlaneError("Control plane returned no upload destination", operation="deployment-endpoint")

    return DeploymentEndpoint(
        source_version=data.get("sourceVersion"),
        client_target=client_target,
        server_target=server_target,
        combined_target=DirectTarget(endpoint=combined) if combined else None,
        max_size=max_size,
    )

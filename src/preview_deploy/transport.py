"""
Upload transport for deployment archives.

Two strategies share one contract, upload(archive, target) -> version id:
    - DirectTarget: signed PUT with the archive as the body
    - MultipartTarget: signed multi-field POST, archive as the final field
Both read the object version from the x-amz-version-id response header.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

import requests

from preview_deploy.exceptions import SizeLimitExceeded, UploadError
from preview_deploy.models import DirectTarget, MultipartTarget, UploadResult, UploadTarget
from preview_deploy.utils.decorators import log_operation

logger = logging.getLogger(__name__)

VERSION_HEADER = "x-amz-version-id"
ARCHIVE_CONTENT_TYPE = "application/zip"
ARCHIVE_FIELD = "file"
ARCHIVE_FILENAME = "build.zip"


def check_size_limit(archives: Iterable[Optional[bytes]], targets: Iterable[Optional[UploadTarget]]) -> int:
    """
    Compare the combined archive size against every multipart quota.

    Returns:
        The combined size in bytes

    Raises:
        SizeLimitExceeded: If any multipart target's max_total_size is exceeded
    """
    total_size = sum(len(archive) for archive in archives if archive is not None)
    limits = [t.max_total_size for t in targets if isinstance(t, MultipartTarget)]
    if limits and total_size > min(limits):
        logger.error(f"❌ Deployment is {total_size} bytes, limit is {min(limits)} bytes")
        raise SizeLimitExceeded(total_size, min(limits))
    return total_size


class UploadTransport:
    """Sends archives to signed object-store destinations."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        """Initialize the transport.

        Args:
            session: HTTP session to reuse; a new one is created if omitted
            timeout: Per-request timeout in seconds, None for the requests default
        """
        self.session = session or requests.Session()
        self.timeout = timeout

    def upload(self, archive: bytes, target: UploadTarget) -> str:
        """Upload one archive and return the object version identifier."""
        if isinstance(target, DirectTarget):
            return self._put(archive, target)
        if isinstance(target, MultipartTarget):
            check_size_limit([archive], [target])
            return self._post(archive, target)
        raise TypeError(f"Unsupported upload target: {type(target).__name__}")

    @log_operation("Uploading deployment archives")
    def upload_all(
        self,
        client_archive: bytes,
        client_target: UploadTarget,
        server_archive: Optional[bytes] = None,
        server_target: Optional[UploadTarget] = None,
    ) -> UploadResult:
        """
        Upload the client archive and, when present, the server archive concurrently.

        The combined size is checked against multipart quotas before either
        request is issued. Both uploads run to completion; if either fails the
        first error is raised.
        """
        if server_archive is not None and server_target is None:
            raise UploadError("A server archive was built but no server upload target was issued")

        check_size_limit([client_archive, server_archive], [client_target, server_target])

        if server_archive is None:
            return UploadResult(client_version=self._dispatch(client_archive, client_target))

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="upload") as pool:
            client_future = pool.submit(self._dispatch, client_archive, client_target)
            server_future = pool.submit(self._dispatch, server_archive, server_target)
            client_version = client_future.result()
            server_version = server_future.result()

        return UploadResult(client_version=client_version, server_version=server_version)

    def _dispatch(self, archive: bytes, target: UploadTarget) -> str:
        # Size already checked for the combined payload
        if isinstance(target, MultipartTarget):
            return self._post(archive, target)
        return self.upload(archive, target)

    def _put(self, archive: bytes, target: DirectTarget) -> str:
        try:
            response = self.session.put(
                target.endpoint,
                data=archive,
                headers={
                    "Content-Type": ARCHIVE_CONTENT_TYPE,
                    "Content-Length": str(len(archive)),
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"PUT upload failed: {e}")
            raise UploadError(f"Upload failed: {e}") from e

        return self._version_from(response)

    def _post(self, archive: bytes, target: MultipartTarget) -> str:
        try:
            response = self.session.post(
                target.url,
                data=list(target.fields),
                files=[(ARCHIVE_FIELD, (ARCHIVE_FILENAME, archive, ARCHIVE_CONTENT_TYPE))],
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"POST upload failed: {e}")
            raise UploadError(f"Upload failed: {e}") from e

        return self._version_from(response)

    @staticmethod
    def _version_from(response: requests.Response) -> str:
        version_id = response.headers.get(VERSION_HEADER)
        if not version_id:
            raise UploadError(f"Object store response is missing the {VERSION_HEADER} header")
        logger.info(f"Uploaded archive, object version {version_id}")
        return version_id

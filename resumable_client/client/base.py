"""TUS protocol client implementation."""

import logging
import posixpath
from typing import Optional, Union
from urllib.parse import quote, urlsplit, urlunsplit

from resumable_client.client.uploader import Uploader
from resumable_client.config import Config
from resumable_client.exceptions import (
    ConflictError,
    FingerprintNotSetError,
    NotFoundError,
    ProtocolError,
    ResumeNotEnabledError,
    TooLargeError,
    VersionMismatchError,
)
from resumable_client.transport import CancelToken, HTTPRequest, HTTPResponse, UrllibTransport
from resumable_client.upload import Upload

logger = logging.getLogger(__name__)

# Statuses meaning the upload resource no longer exists on the server.
GONE_STATUSES = (403, 404, 410)


def resolve_location_url(location: str, source_url: str) -> str:
    """Resolve a Location header value against the URL of the request.

    Args:
        location: Value of the Location response header
        source_url: URL of the request that produced the response

    Returns:
        Absolute, percent-escaped URL of the upload resource

    Example:
        >>> resolve_location_url("/upload/123", "http://h/uploads/")
        'http://h/upload/123'
        >>> resolve_location_url("somewhere/123", "http://h/uploads/")
        'http://h/uploads/somewhere/123'
    """
    source = urlsplit(source_url)
    target = urlsplit(location)

    if target.scheme:
        return location

    if location.startswith("//"):
        netloc, path = target.netloc, target.path
    elif location.startswith("/"):
        netloc, path = source.netloc, target.path
    elif not target.path:
        netloc, path = source.netloc, source.path or "/"
    else:
        netloc = source.netloc
        path = posixpath.normpath(posixpath.join(source.path or "/", target.path))
        if target.path.endswith("/") and not path.endswith("/"):
            path += "/"

    return urlunsplit(
        (source.scheme, netloc, quote(path, safe="/%:@!$&'()*+,;=~"), target.query, target.fragment)
    )


class TusClient:
    """TUS protocol client for uploading files.

    This client implements TUS protocol version 1.0.0 as specified at:
    https://tus.io/protocols/resumable-upload.html

    Version Handling:
        - Uses TUS version 1.0.0
        - Sends "Tus-Resumable: 1.0.0" header with all requests
        - A 412 response raises VersionMismatchError and is never retried

    The client holds no per-upload state and can be shared by threads
    running uploads in parallel. Each upload is driven by its own Uploader.

    Example:
        >>> store = MemoryStore()
        >>> client = TusClient(
        ...     "http://localhost:8080/files/",
        ...     Config(resume=True, store=store),
        ... )
        >>> upload = Upload.from_file("large_file.bin")
        >>> uploader = client.create_upload(upload)
        >>> uploader.upload()
        >>> # After an interruption, continue where the server stopped
        >>> client.resume_upload(upload).upload()
    """

    TUS_VERSION = "1.0.0"

    def __init__(self, url: str, config: Optional[Config] = None):
        """Initialize TUS client.

        Args:
            url: Creation endpoint of the TUS server
            config: Client configuration (default: Config())

        Raises:
            ValueError: If the configuration is invalid
        """
        config = config or Config()
        config.validate()

        self.url = url
        self.config = config
        self.transport = config.transport or UrllibTransport(
            timeout=config.timeout, verify_tls_cert=config.verify_tls_cert
        )

    def create_upload(self, upload: Upload) -> Uploader:
        """Create an upload on the server, or resume the stored one.

        When resume is enabled and the upload has a fingerprint, a stored URL
        is probed first. If the server no longer knows it, the stale entry
        is dropped and a new upload is created.

        Args:
            upload: Upload to transfer

        Returns:
            Uploader positioned at the server's offset

        Raises:
            VersionMismatchError: If the server rejects the protocol version
            TooLargeError: If the upload exceeds the server's maximum size
            ProtocolError: On any other unexpected response
        """
        if self._resumable(upload):
            url = self.config.store.get_url(upload.fingerprint)
            if url:
                offset = self._get_offset(url, upload)
                if offset is not None:
                    logger.info(f"Resuming upload {url} at offset {offset}/{upload.size}")
                    return Uploader(self, url, upload, offset)
                logger.warning(f"Stored upload {url} is gone, creating a new one")
                self.config.store.remove_url(upload.fingerprint)

        url = self._create(upload)

        if self._resumable(upload):
            self.config.store.set_url(upload.fingerprint, url)

        return Uploader(self, url, upload, 0)

    def resume_upload(self, upload: Upload) -> Uploader:
        """Resume a previously created upload.

        Unlike create_upload() this never falls back to creating a new
        upload.

        Args:
            upload: Upload to transfer, with the fingerprint it was created with

        Returns:
            Uploader positioned at the server's offset

        Raises:
            ResumeNotEnabledError: If the client was configured without resume
            FingerprintNotSetError: If the upload has no fingerprint
            NotFoundError: If no URL is stored or the server no longer has it
            VersionMismatchError: If the server rejects the protocol version
            ProtocolError: On any other unexpected response
        """
        if not self.config.resume:
            raise ResumeNotEnabledError("Resuming is not enabled for this client")

        if not upload.fingerprint:
            raise FingerprintNotSetError("Upload has no fingerprint and can't be resumed")

        url = self.config.store.get_url(upload.fingerprint)
        if not url:
            raise NotFoundError(f"No stored upload for fingerprint '{upload.fingerprint}'")

        offset = self._get_offset(url, upload)
        if offset is None:
            self.config.store.remove_url(upload.fingerprint)
            raise NotFoundError(f"Upload {url} no longer exists on the server")

        logger.info(f"Resuming upload {url} at offset {offset}/{upload.size}")
        return Uploader(self, url, upload, offset)

    def delete_upload(self, upload_url: str) -> None:
        """Terminate an upload on the server.

        Args:
            upload_url: URL of the upload to delete

        Raises:
            VersionMismatchError: If the server rejects the protocol version
            ProtocolError: On any other unexpected response
        """
        response = self._send("DELETE", upload_url)

        if response.status in (200, 204, 404, 410):
            logger.info(f"Deleted upload {upload_url}")
            return
        if response.status == 412:
            raise self._version_mismatch("delete upload", upload_url, response)
        raise self._unexpected("delete upload", upload_url, response)

    def get_server_info(self) -> dict[str, Union[str, list[str], Optional[int]]]:
        """Get server information and capabilities via OPTIONS request.

        Returns:
            Dictionary containing:
                - version (str): TUS protocol versions supported by server
                - extensions (list[str]): List of supported TUS extensions
                - max_size (int | None): Maximum upload size in bytes (None if unlimited)

        Raises:
            ProtocolError: If the request fails or Tus-Max-Size is malformed
        """
        response = self._send("OPTIONS", self.url, include_version=False)

        if response.status not in (200, 204):
            raise self._unexpected("get server info", self.url, response)

        tus_extension = response.header("Tus-Extension", "")
        extensions = [ext.strip() for ext in tus_extension.split(",") if ext.strip()]

        tus_max_size = response.header("Tus-Max-Size")
        try:
            max_size = int(tus_max_size) if tus_max_size else None
        except ValueError as e:
            raise ProtocolError(
                f"Failed to get server info from '{self.url}': "
                f"invalid Tus-Max-Size {tus_max_size!r}",
                status_code=response.status,
            ) from e

        return {
            "version": response.header("Tus-Version", self.TUS_VERSION),
            "extensions": extensions,
            "max_size": max_size,
        }

    def resolve_location_url(self, location: str) -> str:
        """Resolve a Location header value against the client URL."""
        return resolve_location_url(location, self.url)

    def _resumable(self, upload: Upload) -> bool:
        return self.config.resume and bool(upload.fingerprint)

    def _create(self, upload: Upload) -> str:
        """Create a new upload on the server and return its URL."""
        headers = {"Upload-Length": str(upload.size)}

        encoded_metadata = upload.encoded_metadata(self.config.metadata_encoding)
        if encoded_metadata:
            headers["Upload-Metadata"] = encoded_metadata

        response = self._send("POST", self.url, headers)

        if response.status == 201:
            location = response.header("Location")
            if not location:
                raise ProtocolError(
                    f"Failed to create upload at '{self.url}': "
                    "server did not return Location header",
                    status_code=response.status,
                    response_content=response.body,
                )
            url = self.resolve_location_url(location)
            logger.info(f"Created upload {url} ({upload.size} bytes)")
            return url
        if response.status == 412:
            raise self._version_mismatch("create upload", self.url, response)
        if response.status == 413:
            raise TooLargeError(
                f"Failed to create upload at '{self.url}': "
                f"upload of {upload.size} bytes is too large",
                status_code=response.status,
                response_content=response.body,
            )
        raise self._unexpected("create upload", self.url, response)

    def _get_offset(self, upload_url: str, upload: Upload) -> Optional[int]:
        """Get the server's offset for an upload, or None if it is gone."""
        response = self._send("HEAD", upload_url)

        if response.status == 200:
            return self._parse_offset("resume upload", upload_url, response, upload.size)
        if response.status in GONE_STATUSES:
            return None
        if response.status == 412:
            raise self._version_mismatch("resume upload", upload_url, response)
        raise self._unexpected("resume upload", upload_url, response)

    def _upload_chunk(
        self,
        upload_url: str,
        body: bytes,
        size: int,
        offset: int,
        cancel: Optional[CancelToken] = None,
    ) -> int:
        """Send one chunk and return the offset acknowledged by the server."""
        method = "PATCH"
        headers = {
            "Content-Type": "application/offset+octet-stream",
            "Content-Length": str(size),
            "Upload-Offset": str(offset),
        }

        if self.config.override_patch_method:
            method = "POST"
            headers["X-HTTP-Method-Override"] = "PATCH"

        response = self._send(method, upload_url, headers, body, cancel)

        if response.status == 204:
            return self._parse_offset("upload chunk to", upload_url, response)
        if response.status == 409:
            raise ConflictError(
                f"Failed to upload chunk to '{upload_url}': "
                f"server offset doesn't match {offset}",
                status_code=response.status,
                response_content=response.body,
            )
        if response.status == 412:
            raise self._version_mismatch("upload chunk to", upload_url, response)
        if response.status == 413:
            raise TooLargeError(
                f"Failed to upload chunk to '{upload_url}': chunk of {size} bytes is too large",
                status_code=response.status,
                response_content=response.body,
            )
        raise self._unexpected("upload chunk to", upload_url, response)

    def _upload_finished(self, upload: Upload, upload_url: str) -> None:
        """Forget the stored URL of a completed upload."""
        if self._resumable(upload):
            self.config.store.remove_url(upload.fingerprint)
        logger.info(f"Upload {upload_url} completed ({upload.size} bytes)")

    def _send(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        body: Optional[bytes] = None,
        cancel: Optional[CancelToken] = None,
        include_version: bool = True,
    ) -> HTTPResponse:
        request_headers = dict(self.config.headers)
        if include_version:
            request_headers["Tus-Resumable"] = self.TUS_VERSION
        request_headers.update(headers or {})

        response = self.transport.send(HTTPRequest(method, url, request_headers, body), cancel)
        logger.debug(f"{method} {url} -> {response.status}")
        return response

    def _parse_offset(
        self, action: str, url: str, response: HTTPResponse, size: Optional[int] = None
    ) -> int:
        value = response.header("Upload-Offset")
        try:
            offset = int(value)
        except (TypeError, ValueError) as e:
            raise ProtocolError(
                f"Failed to {action} '{url}': can't parse Upload-Offset {value!r}",
                status_code=response.status,
                response_content=response.body,
            ) from e

        if offset < 0 or (size is not None and offset > size):
            raise ProtocolError(
                f"Failed to {action} '{url}': Upload-Offset {offset} outside of 0..{size}",
                status_code=response.status,
                response_content=response.body,
            )
        return offset

    def _version_mismatch(
        self, action: str, url: str, response: HTTPResponse
    ) -> VersionMismatchError:
        server_versions = response.header("Tus-Version")
        return VersionMismatchError(
            f"Failed to {action} '{url}': this client is incompatible with "
            f"TUS server version {server_versions or 'unknown'} "
            f"(client speaks {self.TUS_VERSION})",
            status_code=response.status,
            response_content=response.body,
            server_versions=server_versions,
        )

    def _unexpected(self, action: str, url: str, response: HTTPResponse) -> ProtocolError:
        return ProtocolError(
            f"Failed to {action} '{url}': unexpected status {response.status}",
            status_code=response.status,
            response_content=response.body,
        )

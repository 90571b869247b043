"""
Global resumable_client exception classes.

Every error the client raises derives from TusError. Errors caused by an
unexpected server response derive from TusCommunicationError and carry the
status code and response body.
"""

from typing import Optional


class TusError(Exception):
    """Base class for all resumable_client errors."""

    pass


class TusCommunicationError(TusError):
    """
    Exception raised when communication with TUS server behaves unexpectedly.

    Attributes:
        message (str): Main message of the exception
        status_code (int): HTTP status code of response indicating an error
        response_content (bytes): Content of response indicating an error
    """

    def __init__(self, message, status_code=None, response_content=None):
        default_message = f"Communication with TUS server failed with status {status_code}"
        message = message or default_message
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_content = response_content


class ProtocolError(TusCommunicationError):
    """Unexpected status code or malformed protocol header."""

    pass


class VersionMismatchError(TusCommunicationError):
    """
    The server rejected the request with 412 Precondition Failed.

    The server does not speak the protocol revision sent in Tus-Resumable.
    This is never retried.

    Attributes:
        server_versions (str): Value of the server's Tus-Version header, if any
    """

    def __init__(
        self,
        message,
        status_code=412,
        response_content=None,
        server_versions: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code, response_content=response_content)
        self.server_versions = server_versions


class TooLargeError(TusCommunicationError):
    """The server rejected the upload or chunk as too large (413)."""

    pass


class TusUploadFailed(TusCommunicationError):
    """Exception raised when an attempted upload fails."""

    pass


class ConflictError(TusUploadFailed):
    """
    The server's offset for the upload differs from the one sent (409).

    Recover by resolving the offset again (TusClient.resume_upload) before
    sending more data.
    """

    pass


class NotFoundError(TusError):
    """No resumable upload exists for the given fingerprint."""

    pass


class ResumeNotEnabledError(TusError):
    """resume_upload was called on a client configured without resume."""

    pass


class FingerprintNotSetError(TusError):
    """The upload has no fingerprint and therefore cannot be resumed."""

    pass


class AbortedError(TusError):
    """The upload was aborted locally before it finished."""

    pass


class RequestCancelled(TusError):
    """Raised by a transport when a request is cancelled while in flight."""

    pass

"""Resumable Upload Client

A Python client for the TUS resumable upload protocol.
Uploads are sent in chunks and can be resumed from the last offset the
server acknowledged, across process restarts, with minimal dependencies.
"""

__version__ = "0.1.0"

from resumable_client.client import TusClient, Uploader, resolve_location_url
from resumable_client.config import Config
from resumable_client.exceptions import (
    AbortedError,
    ConflictError,
    FingerprintNotSetError,
    NotFoundError,
    ProtocolError,
    RequestCancelled,
    ResumeNotEnabledError,
    TooLargeError,
    TusCommunicationError,
    TusError,
    TusUploadFailed,
    VersionMismatchError,
)
from resumable_client.fingerprint import Fingerprint
from resumable_client.sqlite_store import SQLiteStore
from resumable_client.store import FileStore, MemoryStore, Store
from resumable_client.transport import (
    CancelToken,
    HTTPRequest,
    HTTPResponse,
    Transport,
    UrllibTransport,
)
from resumable_client.upload import Upload

__all__ = [
    "TusClient",
    "Uploader",
    "Upload",
    "Config",
    "resolve_location_url",
    "Store",
    "MemoryStore",
    "FileStore",
    "SQLiteStore",
    "Fingerprint",
    "Transport",
    "UrllibTransport",
    "HTTPRequest",
    "HTTPResponse",
    "CancelToken",
    "TusError",
    "TusCommunicationError",
    "TusUploadFailed",
    "ProtocolError",
    "VersionMismatchError",
    "TooLargeError",
    "ConflictError",
    "NotFoundError",
    "ResumeNotEnabledError",
    "FingerprintNotSetError",
    "AbortedError",
    "RequestCancelled",
]

"""HTTP transport used by the TUS client.

The client only needs to send a request and read back status, headers and
body. Transports are shared by every Uploader created from one client and
must therefore be safe for concurrent use.
"""

import logging
import ssl
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterator, Optional
from urllib.error import HTTPError
from urllib.request import Request, urlopen

from resumable_client.exceptions import RequestCancelled

logger = logging.getLogger(__name__)


@dataclass
class HTTPRequest:
    """An outgoing HTTP request.

    Attributes:
        method: HTTP method
        url: Absolute request URL
        headers: Request headers
        body: Request body, None for requests without one
    """

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


@dataclass
class HTTPResponse:
    """A received HTTP response. Header names are matched case-insensitively."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self):
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)


class CancelToken:
    """Cancellation handle for one in-flight request.

    Cancelling is idempotent and may happen from any thread.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled("Request was cancelled")


class Transport(ABC):
    """Sends HTTP requests on behalf of the client."""

    @abstractmethod
    def send(self, request: HTTPRequest, cancel: Optional[CancelToken] = None) -> HTTPResponse:
        """
        Send a request and return the response, whatever its status code.

        Args:
            request: Request to send
            cancel: Optional token; when it fires the transport should stop
                the request and raise RequestCancelled

        Returns:
            The server's response

        Raises:
            RequestCancelled: If the request was cancelled
            OSError: On network failures
        """
        pass


class UrllibTransport(Transport):
    """Transport built on urllib.request.

    Request bodies are streamed in blocks so a cancel token is honoured while
    a chunk is being sent. The token is only checked between body blocks:
    once the body is out, waiting for the response is not interrupted and an
    abort takes effect at the next chunk boundary. Set timeout to bound that
    wait against a slow server.

    Example:
        >>> transport = UrllibTransport(timeout=30)
        >>> response = transport.send(HTTPRequest("OPTIONS", "http://localhost:8080/files"))
        >>> response.status
        204
    """

    BLOCK_SIZE = 65536  # 64KB blocks for streaming bodies

    def __init__(self, timeout: Optional[float] = None, verify_tls_cert: bool = True):
        """Initialize urllib transport.

        Args:
            timeout: Socket timeout in seconds (default: no timeout)
            verify_tls_cert: Verify TLS certificates (default: True)
        """
        self.timeout = timeout
        self.verify_tls_cert = verify_tls_cert
        self._ssl_context = None
        if not verify_tls_cert:
            self._ssl_context = ssl.create_default_context()
            self._ssl_context.check_hostname = False
            self._ssl_context.verify_mode = ssl.CERT_NONE

    def send(self, request: HTTPRequest, cancel: Optional[CancelToken] = None) -> HTTPResponse:
        if cancel is not None:
            cancel.raise_if_cancelled()

        data = request.body
        if data is not None and cancel is not None:
            data = self._stream_body(data, cancel)

        headers = dict(request.headers)
        if request.body is not None:
            headers["Content-Length"] = str(len(request.body))

        logger.debug(f"{request.method} {request.url}")
        req = Request(request.url, data=data, headers=headers, method=request.method)
        kwargs = {"timeout": self.timeout} if self.timeout is not None else {}
        if self._ssl_context is not None:
            kwargs["context"] = self._ssl_context

        try:
            with urlopen(req, **kwargs) as response:
                return HTTPResponse(
                    status=response.status,
                    headers=dict(response.headers.items()),
                    body=response.read(),
                )
        except HTTPError as e:
            return HTTPResponse(
                status=e.code,
                headers=dict(e.headers.items()) if e.headers else {},
                body=e.read(),
            )

    def _stream_body(self, body: bytes, cancel: CancelToken) -> Iterator[bytes]:
        view = memoryview(body)
        for start in range(0, len(body), self.BLOCK_SIZE):
            cancel.raise_if_cancelled()
            yield bytes(view[start : start + self.BLOCK_SIZE])
        cancel.raise_if_cancelled()

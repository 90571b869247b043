"""Shared fixtures: an in-memory TUS server and transports to reach it."""

import base64
import threading
import uuid
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from threading import Thread
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

import pytest

from resumable_client.transport import CancelToken, HTTPRequest, HTTPResponse, Transport


class TusTestServer:
    """Minimal TUS 1.0.0 server keeping uploads in memory.

    Supports creation, HEAD, PATCH (also as POST with
    X-HTTP-Method-Override), DELETE and OPTIONS.
    """

    TUS_VERSION = "1.0.0"

    def __init__(self, base_path: str = "/files", max_size: int = 0, keep_data: bool = True):
        self.base_path = base_path.rstrip("/")
        self.max_size = max_size
        self.keep_data = keep_data
        self.uploads: dict[str, dict[str, Any]] = {}
        self.lock = threading.Lock()

    def handle_request(
        self, method: str, path: str, headers: dict[str, str], body: bytes = b""
    ) -> tuple[int, dict[str, str], bytes]:
        headers = {k.lower(): v for k, v in headers.items()}

        if method == "POST" and headers.get("x-http-method-override") == "PATCH":
            method = "PATCH"

        if method != "OPTIONS" and headers.get("tus-resumable") != self.TUS_VERSION:
            return (412, {"Tus-Version": self.TUS_VERSION}, b"Precondition Failed")

        if method == "OPTIONS":
            response_headers = {
                "Tus-Resumable": self.TUS_VERSION,
                "Tus-Version": self.TUS_VERSION,
                "Tus-Extension": "creation,termination",
            }
            if self.max_size > 0:
                response_headers["Tus-Max-Size"] = str(self.max_size)
            return (204, response_headers, b"")
        if method == "POST" and path == self.base_path:
            return self._handle_create(headers)

        upload_id = path[len(self.base_path) + 1 :]
        if not path.startswith(self.base_path + "/"):
            return (404, {}, b"Not Found")
        if method == "HEAD":
            return self._handle_head(upload_id)
        if method == "PATCH":
            return self._handle_patch(upload_id, headers, body)
        if method == "DELETE":
            with self.lock:
                if self.uploads.pop(upload_id, None) is None:
                    return (404, {}, b"Upload not found")
            return (204, {"Tus-Resumable": self.TUS_VERSION}, b"")
        return (404, {}, b"Not Found")

    def _handle_create(self, headers: dict[str, str]) -> tuple[int, dict[str, str], bytes]:
        length = int(headers["upload-length"])
        if self.max_size > 0 and length > self.max_size:
            return (413, {}, b"Upload exceeds maximum size")

        metadata = {}
        for pair in filter(None, headers.get("upload-metadata", "").split(",")):
            key, value = pair.strip().split(" ", 1)
            metadata[key] = base64.b64decode(value).decode("utf-8")

        upload_id = uuid.uuid4().hex
        with self.lock:
            self.uploads[upload_id] = {
                "length": length,
                "offset": 0,
                "metadata": metadata,
                "data": bytearray(),
                "chunks": [],
            }
        return (201, {"Location": f"{self.base_path}/{upload_id}"}, b"")

    def _handle_head(self, upload_id: str) -> tuple[int, dict[str, str], bytes]:
        with self.lock:
            upload = self.uploads.get(upload_id)
            if upload is None:
                return (404, {}, b"")
            return (
                200,
                {
                    "Upload-Offset": str(upload["offset"]),
                    "Upload-Length": str(upload["length"]),
                    "Cache-Control": "no-store",
                },
                b"",
            )

    def _handle_patch(
        self, upload_id: str, headers: dict[str, str], body: bytes
    ) -> tuple[int, dict[str, str], bytes]:
        if headers.get("content-type") != "application/offset+octet-stream":
            return (415, {}, b"Invalid Content-Type")

        with self.lock:
            upload = self.uploads.get(upload_id)
            if upload is None:
                return (404, {}, b"Upload not found")
            if int(headers["upload-offset"]) != upload["offset"]:
                return (409, {}, b"Upload-Offset mismatch")
            if upload["offset"] + len(body) > upload["length"]:
                return (413, {}, b"Chunk exceeds upload length")

            if self.keep_data:
                upload["data"] += body
            upload["chunks"].append(len(body))
            upload["offset"] += len(body)
            return (204, {"Upload-Offset": str(upload["offset"])}, b"")

    def upload_for(self, url: str) -> dict[str, Any]:
        return self.uploads[url.rstrip("/").split("/")[-1]]


class LocalTransport(Transport):
    """Routes requests straight to a TusTestServer and records them."""

    def __init__(
        self,
        server: TusTestServer,
        after_send: Optional[Callable[[HTTPRequest, HTTPResponse], None]] = None,
    ):
        self.server = server
        self.after_send = after_send
        self.requests: list[HTTPRequest] = []
        self._lock = threading.Lock()

    def send(self, request: HTTPRequest, cancel: Optional[CancelToken] = None) -> HTTPResponse:
        if cancel is not None:
            cancel.raise_if_cancelled()
        with self._lock:
            self.requests.append(request)

        status, headers, body = self.server.handle_request(
            request.method, urlsplit(request.url).path, request.headers, request.body or b""
        )
        response = HTTPResponse(status, headers, body)
        if self.after_send is not None:
            self.after_send(request, response)
        return response

    def chunk_requests(self) -> list[HTTPRequest]:
        with self._lock:
            return [r for r in self.requests if "Upload-Offset" in r.headers]


class ScriptedTransport(Transport):
    """Returns canned responses in order and records the requests."""

    def __init__(self, *responses: HTTPResponse):
        self.responses = list(responses)
        self.requests: list[HTTPRequest] = []

    def send(self, request: HTTPRequest, cancel: Optional[CancelToken] = None) -> HTTPResponse:
        self.requests.append(request)
        return self.responses.pop(0)


class TusHTTPRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler delegating to a TusTestServer."""

    tus_server: TusTestServer = None

    def do_OPTIONS(self) -> None:
        self._handle_request("OPTIONS")

    def do_POST(self) -> None:
        self._handle_request("POST")

    def do_HEAD(self) -> None:
        self._handle_request("HEAD")

    def do_PATCH(self) -> None:
        self._handle_request("PATCH")

    def do_DELETE(self) -> None:
        self._handle_request("DELETE")

    def _handle_request(self, method: str) -> None:
        body = b""
        content_length = int(self.headers.get("Content-Length", 0))
        if content_length > 0:
            body = self.rfile.read(content_length)

        status, response_headers, response_body = self.tus_server.handle_request(
            method, self.path, dict(self.headers), body
        )

        self.send_response(status)
        for key, value in response_headers.items():
            self.send_header(key, value)
        if method != "HEAD":
            self.send_header("Content-Length", str(len(response_body)))
        self.end_headers()
        if response_body and method != "HEAD":
            self.wfile.write(response_body)

    def log_message(self, format: str, *args: Any) -> None:
        """Suppress default logging."""
        pass


@pytest.fixture
def tus_server():
    """In-memory TUS server."""
    return TusTestServer(base_path="/files")


@pytest.fixture
def local_transport(tus_server):
    """Transport reaching the in-memory server without sockets."""
    return LocalTransport(tus_server)


@pytest.fixture
def http_server(tus_server):
    """Serve the in-memory TUS server over real HTTP in a thread."""

    class Handler(TusHTTPRequestHandler):
        pass

    Handler.tus_server = tus_server

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    port = server.server_address[1]
    thread = Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield f"http://127.0.0.1:{port}/files"

    server.shutdown()
    server.server_close()

"""TUS protocol uploader: the chunk loop for one upload resource."""

import logging
import queue
import threading
from typing import TYPE_CHECKING, Optional

from resumable_client.exceptions import AbortedError, ProtocolError, RequestCancelled
from resumable_client.transport import CancelToken
from resumable_client.upload import Upload

if TYPE_CHECKING:
    from resumable_client.client.base import TusClient

logger = logging.getLogger(__name__)

_STOP = object()


class Uploader:
    """Transfers one Upload to one upload URL, chunk by chunk.

    Uploaders are created by TusClient.create_upload() and
    TusClient.resume_upload() once the URL and the starting offset are
    known. An Uploader is either active, finished (offset == size) or
    aborted; a new one is needed to continue after an abort.

    Chunks are sent strictly in sequence and the offset only moves forward,
    to the value the server acknowledged. abort() may be called from any
    thread and cancels the chunk in flight.

    Progress:
        notify_upload_progress() registers a queue.Queue that receives a
        snapshot of the Upload after every acknowledged chunk, delivered in
        subscription order by a background thread. Puts block: a subscriber
        whose queue is full and never drained holds back every later
        notification, and with it the end of upload(). Size the queues
        accordingly.

    Example:
        >>> uploader = client.create_upload(Upload.from_file("file.bin"))
        >>> progress = queue.Queue(maxsize=100)
        >>> uploader.notify_upload_progress(progress)
        >>> uploader.upload_chunk()  # Upload single chunk
        >>> uploader.upload()  # Upload the rest
    """

    def __init__(self, client: "TusClient", url: str, upload: Upload, offset: int):
        """Initialize uploader.

        Args:
            client: Client used to send chunks
            url: Upload URL (must already exist on server)
            upload: Upload to transfer
            offset: Offset acknowledged by the server
        """
        self._client = client
        self._url = url
        self._upload = upload
        self._offset = offset
        self._upload._update_progress(offset)

        self._lock = threading.Lock()
        self._aborted = False
        self._cancel = CancelToken()

        self._subscribers: list[queue.Queue] = []
        self._signal: queue.Queue = queue.Queue(maxsize=1)
        self._broadcaster: Optional[threading.Thread] = None
        self._completed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def url(self) -> str:
        return self._url

    @property
    def offset(self) -> int:
        with self._lock:
            return self._offset

    def get_upload(self) -> Upload:
        """The Upload being transferred."""
        return self._upload

    @property
    def finished(self) -> bool:
        return self._upload.finished

    @property
    def is_aborted(self) -> bool:
        """True once abort() has been called."""
        with self._lock:
            return self._aborted

    def abort(self) -> None:
        """Abort the upload and cancel the chunk in flight.

        Safe to call any number of times from any thread. The stored URL is
        kept, so the upload can be resumed later.
        """
        with self._lock:
            first = not self._aborted
            self._aborted = True
            cancel = self._cancel
            offset = self._offset
        cancel.cancel()
        if first:
            logger.info(f"Aborting upload {self._url} at offset {offset}")

    def notify_upload_progress(self, subscriber: queue.Queue) -> None:
        """Subscribe a queue to progress updates."""
        with self._lock:
            self._subscribers.append(subscriber)

    def upload(self) -> None:
        """Upload the remaining chunks.

        Raises:
            AbortedError: If the upload was aborted before it finished
            ConflictError: If the server's offset differs from ours
            TusCommunicationError: On any other protocol failure
        """
        try:
            while not self._upload.finished:
                if self.is_aborted:
                    raise AbortedError(
                        f"Upload {self._url} aborted at offset {self.offset}/{self._upload.size}"
                    )
                self.upload_chunk()
        finally:
            self.close()

        self._complete()

    def upload_chunk(self) -> None:
        """Upload a single chunk.

        Raises:
            AbortedError: If the upload was aborted
            EOFError: If the stream ends before the declared size
            ProtocolError: If the server acknowledges an impossible offset or
                accepts none of the chunk
        """
        with self._lock:
            if self._aborted:
                raise AbortedError(f"Upload {self._url} was aborted")
            cancel = self._cancel = CancelToken()
            offset = self._offset

        size = self._upload.size
        if offset >= size:
            return

        stream = self._upload.stream
        stream.seek(offset)
        data = stream.read(min(self._client.config.chunk_size, size - offset))
        if not data:
            raise EOFError(
                f"Stream for upload {self._url} ended at offset {offset}, expected {size} bytes"
            )

        logger.debug(f"Uploading {len(data)} bytes to {self._url} at offset {offset}/{size}")

        try:
            new_offset = self._client._upload_chunk(self._url, data, len(data), offset, cancel)
        except RequestCancelled as e:
            raise AbortedError(f"Upload {self._url} aborted during chunk at {offset}") from e
        except OSError as e:
            if self.is_aborted:
                raise AbortedError(f"Upload {self._url} aborted during chunk at {offset}") from e
            raise

        if not offset <= new_offset <= size:
            raise ProtocolError(
                f"Failed to upload chunk to '{self._url}': server acknowledged "
                f"offset {new_offset}, expected a value between {offset} and {size}",
                status_code=204,
            )
        if new_offset == offset:
            raise ProtocolError(
                f"Failed to upload chunk to '{self._url}': server acknowledged "
                f"no bytes of the {len(data)} sent at offset {offset}",
                status_code=204,
            )

        with self._lock:
            self._offset = new_offset
            self._upload._update_progress(new_offset)
            snapshot = self._upload._snapshot()

        self._publish(snapshot)
        if new_offset == size:
            self._complete()

    def close(self) -> None:
        """Stop the progress broadcaster once pending snapshots are delivered."""
        with self._lock:
            broadcaster, self._broadcaster = self._broadcaster, None
        if broadcaster is not None:
            self._signal.put(_STOP)
            broadcaster.join()

    def _complete(self) -> None:
        """Forget the stored URL once, however the last chunk was sent."""
        with self._lock:
            if self._completed:
                return
            self._completed = True
        self._client._upload_finished(self._upload, self._url)

    def _publish(self, snapshot: Upload) -> None:
        with self._lock:
            if not self._subscribers:
                return
            if self._broadcaster is None:
                self._broadcaster = threading.Thread(
                    target=self._broadcast_progress,
                    name=f"tus-progress-{self._url}",
                    daemon=True,
                )
                self._broadcaster.start()
        self._signal.put(snapshot)

    def _broadcast_progress(self) -> None:
        """Republish every signalled snapshot to all subscribers."""
        while True:
            snapshot = self._signal.get()
            if snapshot is _STOP:
                return
            with self._lock:
                subscribers = list(self._subscribers)
            for subscriber in subscribers:
                subscriber.put(snapshot)

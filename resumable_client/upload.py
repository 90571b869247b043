"""Upload data entity: a seekable byte source plus its transfer progress."""

import base64
import copy
import io
import os
import re
from typing import IO, Optional, Union

from resumable_client.fingerprint import Fingerprint


class Upload:
    """A byte source to transfer, with its size, offset, fingerprint and metadata.

    The offset is the number of bytes the server has acknowledged. It only
    changes through the Uploader driving the transfer, and always satisfies
    ``0 <= offset <= size``.

    Example:
        >>> upload = Upload.from_bytes(b"1234567890")
        >>> upload.size
        10
        >>> upload.finished
        False
    """

    def __init__(
        self,
        stream: IO,
        size: Optional[int] = None,
        metadata: Optional[dict[str, str]] = None,
        fingerprint: str = "",
    ):
        """Initialize an upload.

        Args:
            stream: Binary source. Readers that cannot seek are read fully
                into memory.
            size: Total size in bytes (default: measured from the stream)
            metadata: Key/value pairs sent when the upload is created
            fingerprint: Identity used as resume key; empty disables resuming

        Raises:
            ValueError: If size is negative
        """
        if not _seekable(stream):
            stream = io.BytesIO(stream.read())

        if size is None:
            current = stream.tell()
            stream.seek(0, os.SEEK_END)
            size = stream.tell()
            stream.seek(current)

        if size < 0:
            raise ValueError(f"size must not be negative, got {size}")

        self.stream = stream
        self._size = int(size)
        self._offset = 0
        self.fingerprint = fingerprint or ""
        self.metadata = dict(metadata or {})
        self._owns_stream = False

    @classmethod
    def from_file(
        cls, file_source: Union[str, IO], fingerprinter: Optional[Fingerprint] = None
    ) -> "Upload":
        """Create an upload from a file path or an open binary file.

        The filename is added to the metadata and the fingerprint is derived
        from the file's name, size and modification time. When a path is
        given the upload opens the file and closes it in close().

        Raises:
            FileNotFoundError: If the path does not exist
            IsADirectoryError: If the path is a directory
        """
        fingerprinter = fingerprinter or Fingerprint()

        if isinstance(file_source, str):
            if os.path.isdir(file_source):
                raise IsADirectoryError(f"'{file_source}' is a directory")
            if not os.path.exists(file_source):
                raise FileNotFoundError(f"File not found: {file_source}")
            stream = open(file_source, "rb")  # noqa: SIM115
            name = file_source
            owns_stream = True
        else:
            stream = file_source
            name = getattr(file_source, "name", "") or ""
            owns_stream = False

        size = os.fstat(stream.fileno()).st_size
        upload = cls(
            stream,
            size=size,
            metadata={"filename": os.path.basename(name)},
            fingerprint=fingerprinter.get_fingerprint(file_source),
        )
        upload._owns_stream = owns_stream
        return upload

    @classmethod
    def from_bytes(cls, data: bytes) -> "Upload":
        """Create a non-resumable upload from an in-memory byte string."""
        return cls(io.BytesIO(data), size=len(data))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        """Close the stream if it was opened by from_file()."""
        if self._owns_stream and not self.stream.closed:
            self.stream.close()

    @property
    def size(self) -> int:
        return self._size

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def finished(self) -> bool:
        """True once the server acknowledged every byte."""
        return self._offset >= self._size

    @property
    def progress(self) -> int:
        """Progress as an integer percentage (0-100)."""
        if self._size == 0:
            return 100
        return (self._offset * 100) // self._size

    def _update_progress(self, offset: int) -> None:
        self._offset = offset

    def _snapshot(self) -> "Upload":
        """Copy of the current state sharing the stream, which it never closes."""
        snapshot = copy.copy(self)
        snapshot.metadata = dict(self.metadata)
        snapshot._owns_stream = False
        return snapshot

    def encoded_metadata(self, encoding: str = "utf-8") -> str:
        """
        Encode metadata for the Upload-Metadata header.

        Pairs are written as "key base64(value)", joined by commas, in
        insertion order and without a trailing separator.

        Args:
            encoding: Text encoding applied to values before base64

        Returns:
            Encoded header value (empty string when there is no metadata)

        Raises:
            ValueError: If metadata keys are empty or contain spaces or commas
        """
        encoded = []
        for key, value in self.metadata.items():
            key_str = str(key)

            if re.search(r"^$|[\s,]+", key_str):
                raise ValueError(
                    f'Upload-metadata key "{key_str}" cannot be empty nor contain spaces or commas.'
                )

            encoded_value = base64.b64encode(str(value).encode(encoding)).decode("ascii")
            encoded.append(f"{key_str} {encoded_value}")

        return ",".join(encoded)

    def __repr__(self) -> str:
        return (
            f"Upload(size={self._size}, offset={self._offset}, "
            f"fingerprint={self.fingerprint!r}, metadata={self.metadata!r})"
        )


def _seekable(stream: IO) -> bool:
    seekable = getattr(stream, "seekable", None)
    if seekable is None:
        return hasattr(stream, "seek") and hasattr(stream, "tell")
    try:
        return bool(seekable())
    except (OSError, ValueError):
        return False

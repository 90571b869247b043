"""
File fingerprinting for unique identification of uploads.

A fingerprint combines the file name, its size and its modification time, so
an unchanged file maps to the same stored upload URL across processes.
"""

import os
from typing import IO, Union


class Fingerprint:
    """
    Generate stable fingerprints for files to enable resumable uploads.

    Only file system attributes are used; the content is never read, which
    keeps fingerprinting cheap for very large files.
    """

    def get_fingerprint(self, file_source: Union[str, IO]) -> str:
        """
        Generate a fingerprint for a file.

        Args:
            file_source: Either a file path (str) or an open file object
                backed by a real file (it must provide fileno())

        Returns:
            str: Fingerprint in format "{name}-{size}-{mtime_ns}"
        """
        if isinstance(file_source, str):
            st = os.stat(file_source)
            name = os.path.basename(file_source)
        else:
            st = os.fstat(file_source.fileno())
            name = os.path.basename(getattr(file_source, "name", "") or "")
        return f"{name}-{st.st_size}-{st.st_mtime_ns}"

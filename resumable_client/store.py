"""
Store interface and implementations for resumable uploads.

A store maps upload fingerprints to the resource URLs the server assigned,
so an interrupted upload can be resumed later, possibly from another process.
Implementations must be safe to share between threads.
"""

import json
import os
import threading
from abc import ABC, abstractmethod
from typing import Optional


class Store(ABC):
    """Abstract interface for fingerprint to upload URL storage."""

    @abstractmethod
    def get_url(self, fingerprint: str) -> Optional[str]:
        """
        Retrieve upload URL for a given fingerprint.

        Args:
            fingerprint: Unique upload fingerprint

        Returns:
            Upload URL if found, None otherwise
        """
        pass

    @abstractmethod
    def set_url(self, fingerprint: str, url: str) -> None:
        """
        Store upload URL for a given fingerprint.

        Args:
            fingerprint: Unique upload fingerprint
            url: Upload URL to store
        """
        pass

    @abstractmethod
    def remove_url(self, fingerprint: str) -> None:
        """
        Remove stored URL for a given fingerprint.

        Args:
            fingerprint: Unique upload fingerprint
        """
        pass

    def close(self) -> None:
        """Release resources held by the store."""
        pass


class MemoryStore(Store):
    """In-memory store. Entries live as long as the instance."""

    def __init__(self):
        self._urls: dict[str, str] = {}
        self._lock = threading.Lock()

    def get_url(self, fingerprint: str) -> Optional[str]:
        with self._lock:
            return self._urls.get(fingerprint)

    def set_url(self, fingerprint: str, url: str) -> None:
        with self._lock:
            self._urls[fingerprint] = url

    def remove_url(self, fingerprint: str) -> None:
        with self._lock:
            self._urls.pop(fingerprint, None)

    def close(self) -> None:
        """Forget every entry."""
        with self._lock:
            self._urls.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)


class FileStore(Store):
    """
    File-based store using JSON.

    Stores upload URLs in a JSON file for persistence across sessions. The
    file is replaced atomically on every write.
    """

    def __init__(self, storage_path: str = ".tus_urls.json"):
        """
        Initialize file-based store.

        Args:
            storage_path: Path to JSON file for storing URLs
        """
        self.storage_path = storage_path
        self._lock = threading.Lock()
        self._ensure_file_exists()

    def _ensure_file_exists(self):
        """Create storage file if it doesn't exist."""
        if not os.path.exists(self.storage_path):
            self._save_data({})

    def _load_data(self) -> dict:
        """Load data from storage file."""
        try:
            with open(self.storage_path) as f:
                return json.load(f)
        except (json.JSONDecodeError, FileNotFoundError):
            return {}

    def _save_data(self, data: dict):
        """Save data to storage file."""
        tmp_path = f"{self.storage_path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.storage_path)

    def get_url(self, fingerprint: str) -> Optional[str]:
        """Retrieve upload URL for fingerprint."""
        with self._lock:
            return self._load_data().get(fingerprint)

    def set_url(self, fingerprint: str, url: str) -> None:
        """Store upload URL for fingerprint."""
        with self._lock:
            data = self._load_data()
            data[fingerprint] = url
            self._save_data(data)

    def remove_url(self, fingerprint: str) -> None:
        """Remove URL for fingerprint."""
        with self._lock:
            data = self._load_data()
            if fingerprint in data:
                del data[fingerprint]
                self._save_data(data)

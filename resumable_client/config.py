"""Client configuration."""

from dataclasses import dataclass, field
from typing import Optional

from resumable_client.store import Store
from resumable_client.transport import Transport


@dataclass
class Config:
    """Configuration for TusClient.

    Attributes:
        chunk_size: Size of upload chunks in bytes (default: 2MB)
        resume: Remember upload URLs in ``store`` so uploads can be resumed
        override_patch_method: Send chunks as POST with an
            X-HTTP-Method-Override header, for proxies that drop PATCH
        store: Backend for fingerprint to URL mappings, required by ``resume``
        headers: Extra headers sent with every request
        transport: HTTP transport (default: UrllibTransport)
        timeout: Socket timeout for the default transport, in seconds
        verify_tls_cert: Verify TLS certificates in the default transport
        metadata_encoding: Encoding for metadata values (default: utf-8)
    """

    chunk_size: int = 2 * 1024 * 1024
    resume: bool = False
    override_patch_method: bool = False
    store: Optional[Store] = None
    headers: dict[str, str] = field(default_factory=dict)
    transport: Optional[Transport] = None
    timeout: Optional[float] = None
    verify_tls_cert: bool = True
    metadata_encoding: str = "utf-8"

    def validate(self) -> None:
        """Check the configuration.

        Raises:
            ValueError: If a setting is invalid
        """
        if self.chunk_size < 1:
            raise ValueError(
                f"invalid configuration: chunk_size must be at least 1 byte, got {self.chunk_size}"
            )

        if self.resume and self.store is None:
            raise ValueError("invalid configuration: store can't be None if resume is enabled")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(
                f"invalid configuration: timeout must be positive, got {self.timeout}"
            )

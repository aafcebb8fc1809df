"""TLS helpers for switch connections.

Provides utilities for:
- Loading the server CA certificate (and optional client certificate)
- Creating gRPC channel credentials
- Opening secure asyncio gRPC channels
"""

import logging
from pathlib import Path

import grpc

from .config import Settings

logger = logging.getLogger(__name__)


class TLSConfig:
    """Certificate material for a switch connection."""

    def __init__(
        self,
        ca_cert_path: str | Path,
        cert_path: str | Path | None = None,
        key_path: str | Path | None = None,
    ):
        """
        Initialize TLS configuration.

        Args:
            ca_cert_path: Certificate used to verify the switch (PEM format)
            cert_path: Optional client certificate for mutual TLS
            key_path: Optional client private key for mutual TLS
        """
        self.ca_cert_path = Path(ca_cert_path)
        self.cert_path = Path(cert_path) if cert_path else None
        self.key_path = Path(key_path) if key_path else None

        self._validate_paths()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TLSConfig":
        return cls(
            ca_cert_path=settings.tls_cert_path,
            cert_path=settings.tls_client_cert_path or None,
            key_path=settings.tls_client_key_path or None,
        )

    @property
    def mutual(self) -> bool:
        return self.cert_path is not None and self.key_path is not None

    def _validate_paths(self) -> None:
        """Validate certificate and key files exist."""
        if not self.ca_cert_path.exists():
            raise FileNotFoundError(f"CA certificate not found: {self.ca_cert_path}")
        if (self.cert_path is None) != (self.key_path is None):
            raise ValueError("Client certificate and key must be configured together")
        if self.cert_path and not self.cert_path.exists():
            raise FileNotFoundError(f"Certificate not found: {self.cert_path}")
        if self.key_path and not self.key_path.exists():
            raise FileNotFoundError(f"Private key not found: {self.key_path}")

    def load_ca_cert(self) -> bytes:
        return self.ca_cert_path.read_bytes()

    def load_cert_chain(self) -> tuple[bytes, bytes] | tuple[None, None]:
        """
        Load client certificate chain and private key.

        Returns:
            Tuple of (certificate_chain, private_key), or (None, None) without mutual TLS
        """
        if not self.mutual:
            return None, None
        return self.cert_path.read_bytes(), self.key_path.read_bytes()


def create_channel_credentials(tls_config: TLSConfig) -> grpc.ChannelCredentials:
    """
    Create gRPC channel credentials.

    Args:
        tls_config: TLS configuration

    Returns:
        gRPC ChannelCredentials
    """
    cert_chain, private_key = tls_config.load_cert_chain()

    credentials = grpc.ssl_channel_credentials(
        root_certificates=tls_config.load_ca_cert(),
        private_key=private_key,
        certificate_chain=cert_chain,
    )

    logger.debug(f"gRPC channel credentials created (mutual={tls_config.mutual})")
    return credentials


def open_secure_channel(address: str, settings: Settings) -> grpc.aio.Channel:
    """
    Open a TLS-secured asyncio gRPC channel.

    Args:
        address: Switch address (host:port)
        settings: Application settings holding the certificate paths

    Returns:
        Secure gRPC channel

    Raises:
        FileNotFoundError: If certificate material is missing
    """
    credentials = create_channel_credentials(TLSConfig.from_settings(settings))
    return grpc.aio.secure_channel(address, credentials)

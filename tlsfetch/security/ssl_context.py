"""SSL context management for the fetch client.

This module builds the client SSL/TLS context: trust anchors from a PEM
bundle and a fixed, restrictive cipher and protocol policy.
"""

from __future__ import annotations

import logging
import ssl
from pathlib import Path

from tlsfetch.config.config import get_config
from tlsfetch.models import TLSConfig
from tlsfetch.utils.exceptions import ConfigurationError, TrustStoreError

logger = logging.getLogger(__name__)


class SSLContextBuilder:
    """Build SSL contexts for outgoing fetch connections."""

    def __init__(self, config: TLSConfig | None = None):
        """Initialize SSL context builder.

        Args:
            config: TLS policy; defaults to the global configuration

        """
        self.config = config if config is not None else get_config().tls
        self.logger = logging.getLogger(__name__)

    def create_client_context(self) -> ssl.SSLContext:
        """Create SSL context for the fetch connection.

        Returns:
            Configured SSL context

        Raises:
            TrustStoreError: If the CA bundle is missing or cannot be loaded
            ConfigurationError: If the cipher or version policy is rejected

        """
        tls_config = self.config

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

        # Must set check_hostname BEFORE verify_mode when disabling verification
        if tls_config.verify_certificates:
            context.check_hostname = tls_config.check_hostname
            context.verify_mode = ssl.CERT_REQUIRED
        else:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            self.logger.warning("SSL certificate verification is disabled")

        self._load_trust_anchors(context, tls_config.ca_certificates)

        context.minimum_version = self._get_protocol_version(
            tls_config.min_protocol_version
        )
        if tls_config.max_protocol_version:
            context.maximum_version = self._get_protocol_version(
                tls_config.max_protocol_version
            )

        if tls_config.cipher_suites:
            ciphers = ":".join(tls_config.cipher_suites)
            try:
                context.set_ciphers(ciphers)
            except ssl.SSLError as e:
                msg = f"Failed to set cipher suites {ciphers}: {e}"
                raise ConfigurationError(msg) from e

        context.options |= ssl.OP_NO_COMPRESSION
        if tls_config.disable_renegotiation:
            context.options |= ssl.OP_NO_RENEGOTIATION

        self.logger.debug(
            "Created client context (min=%s, max=%s, verify=%s)",
            tls_config.min_protocol_version,
            tls_config.max_protocol_version or "library default",
            tls_config.verify_certificates,
        )
        return context

    def _load_trust_anchors(self, context: ssl.SSLContext, path: str) -> None:
        """Load CA certificates from a PEM file or directory.

        Args:
            context: Context to load into
            path: CA bundle file or hashed certificate directory

        Raises:
            TrustStoreError: If the path is invalid or unreadable

        """
        ca_path = Path(path).expanduser()
        if not ca_path.exists():
            msg = f"CA certificates path does not exist: {ca_path}"
            raise TrustStoreError(msg)

        try:
            if ca_path.is_file():
                context.load_verify_locations(cafile=str(ca_path))
            elif ca_path.is_dir():
                context.load_verify_locations(capath=str(ca_path))
            else:
                msg = f"CA certificates path is not a file or directory: {ca_path}"
                raise TrustStoreError(msg)
        except ssl.SSLError as e:
            msg = f"Failed to load CA certificates from {ca_path}: {e}"
            raise TrustStoreError(msg) from e
        except OSError as e:
            msg = f"Failed to read CA certificates from {ca_path}: {e}"
            raise TrustStoreError(msg) from e

        self.logger.debug("Loaded CA certificates from %s", ca_path)

    def _get_protocol_version(self, version_str: str) -> ssl.TLSVersion:
        """Map protocol version string to ssl.TLSVersion constant.

        Args:
            version_str: Protocol version string (TLSv1.2, TLSv1.3)

        Returns:
            ssl.TLSVersion constant

        Raises:
            ConfigurationError: If version string is invalid

        """
        version_map = {
            "TLSv1.2": ssl.TLSVersion.TLSv1_2,
            "TLSv1.3": ssl.TLSVersion.TLSv1_3,
        }

        if version_str not in version_map:
            msg = f"Invalid SSL protocol version: {version_str}"
            raise ConfigurationError(msg)

        return version_map[version_str]

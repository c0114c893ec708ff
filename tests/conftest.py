"""Pytest configuration and shared fixtures for tlsfetch tests."""

from __future__ import annotations

import datetime
import ipaddress
import logging
import socket
import ssl
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from tlsfetch.config.config import ENV_MAPPINGS, reset_config


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("integration", "marks tests as integration tests"),
        ("slow", "marks tests as slow (deselect with '-m \"not slow\"')"),
        ("cli", "marks tests as CLI tests"),
        ("config", "marks tests as configuration tests"),
        ("network", "marks tests as transport tests"),
        ("security", "marks tests as security tests"),
        ("fetch", "marks tests as fetch workflow tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Keep tests away from the user's config files and TLSFETCH_* variables."""
    for env_name in ENV_MAPPINGS:
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)


@dataclass
class CertificatePair:
    """PEM files for a self-signed certificate."""

    cert_file: Path
    key_file: Path


def make_self_signed(directory: Path, common_name: str = "localhost") -> CertificatePair:
    """Write a self-signed CA-capable certificate valid for localhost and 127.0.0.1."""
    directory.mkdir(parents=True, exist_ok=True)
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName(
                [
                    x509.DNSName("localhost"),
                    x509.IPAddress(ipaddress.IPv4Address("127.0.0.1")),
                ]
            ),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    pair = CertificatePair(directory / "cert.pem", directory / "key.pem")
    pair.cert_file.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    pair.key_file.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return pair


@pytest.fixture(scope="session")
def server_certificate(tmp_path_factory) -> CertificatePair:
    """Self-signed certificate used by the local TLS server."""
    return make_self_signed(tmp_path_factory.mktemp("server-cert"))


@pytest.fixture(scope="session")
def untrusted_certificate(tmp_path_factory) -> CertificatePair:
    """A second self-signed certificate that never signed the server's."""
    return make_self_signed(tmp_path_factory.mktemp("other-cert"), "other")


ServerHandler = Callable[[ssl.SSLSocket], None]


class LocalTLSServer:
    """Single-connection TLS server running in a background thread.

    Accepts one client, reads the request up to the blank line and then hands
    the connection to ``handler``, which scripts the response.
    """

    def __init__(self, certificate: CertificatePair, handler: ServerHandler):
        self.context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        self.context.load_cert_chain(certificate.cert_file, certificate.key_file)
        self.handler = handler
        self.request = b""
        self.errors: list[BaseException] = []
        self._listener = socket.create_server(("127.0.0.1", 0))
        self._listener.settimeout(10)
        self.port = self._listener.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def start(self) -> LocalTLSServer:
        self._thread.start()
        return self

    def _serve(self) -> None:
        try:
            raw, _ = self._listener.accept()
        except OSError as e:
            self.errors.append(e)
            return
        raw.settimeout(10)
        try:
            with self.context.wrap_socket(raw, server_side=True) as conn:
                while b"\r\n\r\n" not in self.request:
                    chunk = conn.recv(1024)
                    if not chunk:
                        break
                    self.request += chunk
                self.handler(conn)
        except OSError as e:
            self.errors.append(e)

    def stop(self) -> None:
        self._thread.join(timeout=10)
        self._listener.close()


@pytest.fixture
def tls_server(server_certificate) -> Callable[[ServerHandler], LocalTLSServer]:
    """Factory starting a :class:`LocalTLSServer` with the given handler."""
    servers: list[LocalTLSServer] = []

    def _start(handler: ServerHandler) -> LocalTLSServer:
        server = LocalTLSServer(server_certificate, handler).start()
        servers.append(server)
        return server

    yield _start
    for server in servers:
        server.stop()


@pytest.fixture
def chdir_tmp(tmp_path, monkeypatch) -> Path:
    """Run the test from an empty working directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


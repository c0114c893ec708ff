"""Unit tests for the fetch workflow with patched network collaborators."""

from __future__ import annotations

import threading
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

pytestmark = [pytest.mark.unit, pytest.mark.fetch]

from tlsfetch.fetch.drain import DrainOutcome
from tlsfetch.fetch.fetcher import Fetcher
from tlsfetch.models import Config, OutputConfig, TargetConfig, TerminationReason, TLSConfig
from tlsfetch.utils.exceptions import (
    ConnectError,
    HandshakeFailedError,
    ResolutionError,
    TrustStoreError,
)

MODULE = "tlsfetch.fetch.fetcher"


def _drain_stub(data: bytes, reason: TerminationReason, captured: dict | None = None):
    """Return a DrainLoop replacement that feeds ``data`` and ends with ``reason``."""

    def factory(session, monitor, demux, handle, config, **kwargs):
        if captured is not None:
            captured.update(kwargs, handle=handle, config=config)
        loop = MagicMock()

        def run():
            demux.feed(data)
            return DrainOutcome(
                reason=reason,
                reads=1,
                bytes_read=len(data),
                content_bytes=demux.content_bytes,
            )

        loop.run.side_effect = run
        return loop

    return factory


@pytest.fixture
def config(tmp_path):
    return Config(
        target=TargetConfig(host="example.test"),
        output=OutputConfig(path=str(tmp_path / "out" / "page.html")),
    )


@pytest.fixture
def network():
    """Patch session, resolver, transport and monitor; yield the mocks."""
    session = MagicMock()
    session.negotiated_version = "TLSv1.3"
    session.negotiated_cipher = "TLS_AES_256_GCM_SHA384"
    transport = MagicMock()
    with (
        patch(f"{MODULE}.SecureSession", return_value=session) as session_cls,
        patch(f"{MODULE}.resolve", return_value="192.0.2.10") as resolve,
        patch(f"{MODULE}.TcpTransport.connect", return_value=transport) as connect,
        patch(f"{MODULE}.ReadinessMonitor") as monitor_cls,
    ):
        yield SimpleNamespace(
            session=session,
            session_cls=session_cls,
            transport=transport,
            resolve=resolve,
            connect=connect,
            monitor_cls=monitor_cls,
        )


class TestFetchSuccess:
    """Happy-path wiring."""

    def test_progress_lines_and_output(self, config, network):
        messages: list[str] = []
        stub = _drain_stub(
            b"HTTP/1.0 200 OK\r\nContent-Type: text/html\r\n\r\n<html></html>",
            TerminationReason.PEER_CLOSED,
        )
        with patch(f"{MODULE}.DrainLoop", side_effect=stub):
            result = Fetcher(config, progress=messages.append).fetch()

        assert messages == [
            "Handshake completed",
            "Sending HTTP request",
            "Reading response",
            "Headers received",
            "Reading content",
            "Finished",
        ]
        assert result.ok
        assert result.address == "192.0.2.10"
        assert result.tls_version == "TLSv1.3"
        assert result.response_head.status_code == 200
        assert result.output_path.read_bytes() == b"<html></html>"

    def test_collaborators_called_in_order(self, config, network):
        with patch(
            f"{MODULE}.DrainLoop",
            side_effect=_drain_stub(b"", TerminationReason.IDLE),
        ):
            Fetcher(config).fetch()

        session = network.session
        session.configure.assert_called_once_with(policy=config.tls)
        network.resolve.assert_called_once_with("example.test")
        network.connect.assert_called_once_with(
            "192.0.2.10", 443, connect_timeout=10.0, io_timeout=30.0
        )
        session.bind.assert_called_once_with(network.transport, "example.test")
        session.handshake.assert_called_once_with()
        session.write.assert_called_once_with(b"GET / HTTP/1.0\r\n\r\n")
        network.monitor_cls.assert_called_once_with(network.transport)
        network.monitor_cls.return_value.close.assert_called_once_with()
        network.transport.close.assert_called_once_with()

    def test_server_hostname_overrides_sni(self, config, network):
        config = config.model_copy(
            update={"target": TargetConfig(host="127.0.0.1", server_hostname="localhost")}
        )
        network.resolve.return_value = "127.0.0.1"
        with patch(
            f"{MODULE}.DrainLoop",
            side_effect=_drain_stub(b"", TerminationReason.IDLE),
        ):
            Fetcher(config).fetch()

        network.session.bind.assert_called_once_with(network.transport, "localhost")

    def test_drain_receives_config_and_cancel_event(self, config, network):
        captured: dict = {}
        event = threading.Event()
        sleep = MagicMock()
        with patch(
            f"{MODULE}.DrainLoop",
            side_effect=_drain_stub(b"", TerminationReason.IDLE, captured),
        ):
            Fetcher(config, cancel_event=event, sleep=sleep).fetch()

        assert captured["cancel_event"] is event
        assert captured["sleep"] is sleep
        assert captured["handle"] is network.transport
        assert captured["config"] == config.drain


class TestFetchFailures:
    """Setup failures raise, drain failures are reported."""

    def test_fatal_outcome_is_returned_with_partial_output(self, config, network):
        stub = _drain_stub(b"HTTP/1.0 200 OK\r\n\r\npartial", TerminationReason.SESSION_ERROR)
        with patch(f"{MODULE}.DrainLoop", side_effect=stub):
            result = Fetcher(config).fetch()

        assert not result.ok
        assert result.outcome.reason is TerminationReason.SESSION_ERROR
        assert result.output_path.read_bytes() == b"partial"
        network.transport.close.assert_called_once_with()

    def test_unresolvable_host(self, config, network):
        network.resolve.return_value = ""

        with pytest.raises(ResolutionError):
            Fetcher(config).fetch()
        network.connect.assert_not_called()

    def test_connect_failure_propagates(self, config, network):
        network.connect.side_effect = ConnectError("refused")

        with pytest.raises(ConnectError):
            Fetcher(config).fetch()
        network.session.bind.assert_not_called()

    def test_handshake_failure_closes_transport(self, config, network):
        network.session.handshake.side_effect = HandshakeFailedError("bad cert", code=1)
        messages: list[str] = []

        with pytest.raises(HandshakeFailedError):
            Fetcher(config, progress=messages.append).fetch()

        assert messages == []
        network.transport.close.assert_called_once_with()
        network.monitor_cls.assert_not_called()
        assert not Path(config.output.path).exists()


class TestTrustStore:
    """Trust anchors are loaded before any network activity."""

    def test_missing_bundle_fails_before_resolving(self, tmp_path):
        config = Config(
            tls=TLSConfig(ca_certificates=str(tmp_path / "missing.pem")),
            output=OutputConfig(path=str(tmp_path / "out.html")),
        )
        with (
            patch(f"{MODULE}.resolve") as resolve,
            patch(f"{MODULE}.TcpTransport.connect") as connect,
        ):
            with pytest.raises(TrustStoreError):
                Fetcher(config).fetch()

        resolve.assert_not_called()
        connect.assert_not_called()

"""Tests for cluster connection resolution."""

import threading
from pathlib import Path

import httpx
import pytest

from kfa.core.config import ClusterConfig
from kfa.core.errors import ClusterConfigError
from kfa.credentials.types import Credentials
from kfa.kube.connection import (
    InClusterConfigError,
    KubeConnection,
    TokenFileAuth,
    cluster_connection,
    load_incluster_connection,
)
from tests.fakes import ca_pem

REMOTE = ClusterConfig(
    issuer="https://kubernetes.default.svc.cluster.local",
    api_server="https://remote.example.test:6443",
    token="static-token",
)


class TestClusterConnection:
    """Tests for cluster_connection."""

    def test_registered_credentials_win(self) -> None:
        creds = Credentials(token="registered", ca_cert=ca_pem("remote-ca"))
        conn = cluster_connection(REMOTE, creds)
        assert conn.host == "https://remote.example.test:6443"
        assert conn.token == "registered"
        assert conn.ca_pem == ca_pem("remote-ca")

    def test_static_token_fallback(self) -> None:
        conn = cluster_connection(REMOTE, None)
        assert conn.token == "static-token"
        assert conn.ca_pem is None

    def test_inline_ca(self) -> None:
        cfg = ClusterConfig(issuer="https://a.test", ca_cert_data=ca_pem("inline").decode())
        conn = cluster_connection(cfg, None)
        assert conn.ca_pem == ca_pem("inline")
        assert not conn.has_identity

    def test_unreadable_ca_file(self, tmp_path: Path) -> None:
        cfg = ClusterConfig(issuer="https://a.test", ca_cert=str(tmp_path / "missing.crt"))
        with pytest.raises(ClusterConfigError):
            cluster_connection(cfg, None)

    def test_token_path_used_without_token(self, tmp_path: Path) -> None:
        token_file = tmp_path / "token"
        token_file.write_text("file-token\n")
        cfg = ClusterConfig(issuer="https://a.test", token_path=str(token_file))
        conn = cluster_connection(cfg, None)
        assert conn.token is None
        assert conn.token_path == str(token_file)
        assert conn.has_identity

    def test_host_override(self) -> None:
        conn = cluster_connection(REMOTE, None, host="https://other.test")
        assert conn.host == "https://other.test"


class TestKubeConnectionTLS:
    """Tests for CA handling."""

    def test_bad_ca_rejected(self) -> None:
        conn = KubeConnection(host="https://a.test", ca_pem=b"not a certificate")
        with pytest.raises(ClusterConfigError, match="failed to parse CA cert"):
            conn.ssl_verify()

    def test_system_roots_without_ca(self) -> None:
        assert KubeConnection(host="https://a.test").ssl_verify() is True


class TestTokenFileAuth:
    """The token file is re-read on every request."""

    async def test_rotated_token_is_picked_up(self, tmp_path: Path) -> None:
        token_file = tmp_path / "token"
        token_file.write_text("first")
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, json={})

        conn = KubeConnection(host="https://a.test", token_path=str(token_file))
        async with conn.http_client(
            timeout=5, transport=httpx.MockTransport(handler)
        ) as client:
            await client.get("/")
            token_file.write_text("second")
            await client.get("/")

        assert seen == ["Bearer first", "Bearer second"]

    async def test_async_read_runs_off_the_event_loop(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        token_file = tmp_path / "token"
        token_file.write_text("projected")
        readers: list[int] = []
        original = TokenFileAuth._read_token

        def recording_read(self: TokenFileAuth) -> str:
            readers.append(threading.get_ident())
            return original(self)

        monkeypatch.setattr(TokenFileAuth, "_read_token", recording_read)
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text=request.headers["Authorization"])
        )
        async with httpx.AsyncClient(
            transport=transport, auth=TokenFileAuth(str(token_file))
        ) as client:
            resp = await client.get("https://a.test/")

        assert resp.text == "Bearer projected"
        assert readers and readers[0] != threading.get_ident()


class TestInClusterConnection:
    """Tests for load_incluster_connection."""

    def test_not_in_cluster(self, tmp_path: Path) -> None:
        with pytest.raises(InClusterConfigError):
            load_incluster_connection(str(tmp_path))

    def test_in_cluster(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "token").write_text("sa-token")
        (tmp_path / "ca.crt").write_bytes(ca_pem("local"))
        monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "10.96.0.1")
        monkeypatch.setenv("KUBERNETES_SERVICE_PORT", "443")

        conn = load_incluster_connection(str(tmp_path))

        assert conn.host == "https://10.96.0.1:443"
        assert conn.token_path == str(tmp_path / "token")
        assert conn.ca_pem == ca_pem("local")

    def test_ipv6_host_bracketed(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / "token").write_text("sa-token")
        (tmp_path / "ca.crt").write_bytes(ca_pem("local"))
        monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "fd00::1")
        monkeypatch.setenv("KUBERNETES_SERVICE_PORT", "443")

        assert load_incluster_connection(str(tmp_path)).host == "https://[fd00::1]:443"

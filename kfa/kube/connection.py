"""Connection parameters for talking to a cluster's API server."""

import asyncio
import os
import ssl
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import httpx
from pydantic import BaseModel, ConfigDict

from kfa.core.config import ClusterConfig
from kfa.core.errors import ClusterConfigError
from kfa.core.settings import SERVICE_ACCOUNT_DIR
from kfa.credentials.types import Credentials


class InClusterConfigError(Exception):
    """The process has no in-cluster ServiceAccount identity."""


class BearerAuth(httpx.Auth):
    """Attach a fixed bearer token."""

    def __init__(self, token: str) -> None:
        self._token = token

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


class TokenFileAuth(httpx.Auth):
    """Attach a bearer token re-read from disk on every request.

    Projected ServiceAccount tokens are rotated in place by the kubelet.
    """

    def __init__(self, path: str) -> None:
        self._path = path

    def _read_token(self) -> str:
        return Path(self._path).read_text(encoding="utf-8").strip()

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._read_token()}"
        yield request

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await asyncio.to_thread(self._read_token)
        request.headers["Authorization"] = f"Bearer {token}"
        yield request


class KubeConnection(BaseModel):
    """API endpoint plus the trust and identity used to reach it."""

    model_config = ConfigDict(frozen=True)

    host: str
    ca_pem: bytes | None = None
    token: str | None = None
    token_path: str | None = None

    @property
    def has_identity(self) -> bool:
        return bool(self.token or self.token_path)

    def auth(self) -> httpx.Auth | None:
        if self.token:
            return BearerAuth(self.token)
        if self.token_path:
            return TokenFileAuth(self.token_path)
        return None

    def ssl_verify(self) -> ssl.SSLContext | bool:
        """TLS verification setting for httpx; system roots without a CA."""
        if self.ca_pem is None:
            return True
        try:
            return ssl.create_default_context(cadata=self.ca_pem.decode())
        except (ssl.SSLError, ValueError) as exc:
            raise ClusterConfigError(f"failed to parse CA cert for {self.host}") from exc

    def http_client(
        self,
        *,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> httpx.AsyncClient:
        """An httpx client rooted at ``host`` with this trust and identity."""
        return httpx.AsyncClient(
            base_url=self.host,
            verify=self.ssl_verify(),
            auth=self.auth(),
            timeout=timeout,
            transport=transport,
        )


def _static_ca(cfg: ClusterConfig) -> bytes | None:
    if cfg.ca_cert_data:
        return cfg.ca_cert_data.encode()
    if cfg.ca_cert:
        try:
            return Path(cfg.ca_cert).read_bytes()
        except OSError as exc:
            raise ClusterConfigError(f"reading CA cert: {exc}") from exc
    return None


def cluster_connection(
    cfg: ClusterConfig,
    credentials: Credentials | None,
    host: str | None = None,
) -> KubeConnection:
    """Build a connection, preferring registered credentials over static ones."""
    ca_pem = credentials.ca_cert if credentials is not None else None
    if ca_pem is None:
        ca_pem = _static_ca(cfg)

    token = credentials.token if credentials is not None and credentials.token else None
    token = token or cfg.token
    return KubeConnection(
        host=host or cfg.discovery_url,
        ca_pem=ca_pem,
        token=token,
        token_path=None if token else cfg.token_path,
    )


def load_incluster_connection(sa_dir: str = SERVICE_ACCOUNT_DIR) -> KubeConnection:
    """Connection for the local cluster using the pod's own ServiceAccount."""
    host = os.environ.get("KUBERNETES_SERVICE_HOST", "")
    port = os.environ.get("KUBERNETES_SERVICE_PORT", "")
    if not host or not port:
        raise InClusterConfigError("KUBERNETES_SERVICE_HOST/PORT not set")

    token_path = Path(sa_dir) / "token"
    ca_path = Path(sa_dir) / "ca.crt"
    if not token_path.is_file():
        raise InClusterConfigError(f"missing ServiceAccount token at {token_path}")
    try:
        ca_pem = ca_path.read_bytes()
    except OSError as exc:
        raise InClusterConfigError(f"reading in-cluster CA: {exc}") from exc

    if ":" in host:
        host = f"[{host}]"
    return KubeConnection(
        host=f"https://{host}:{port}",
        ca_pem=ca_pem,
        token_path=str(token_path),
    )

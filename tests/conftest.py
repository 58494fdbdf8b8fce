"""Shared test fixtures for kube-federated-auth."""

from collections.abc import AsyncIterator, Callable

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from kfa.core.app import create_app
from kfa.core.config import FederationConfig, parse_config
from kfa.core.settings import ServerSettings
from kfa.credentials.store import CredentialStore
from kfa.kube.connection import KubeConnection
from kfa.oidc.verifier import VerifierManager
from tests.fakes import (
    AGENT_SUBJECT,
    LOCAL_SA_TOKEN,
    REMOTE_API_SERVER,
    FakeCluster,
    FakeNetwork,
)


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set environment variables for test settings."""
    monkeypatch.setenv("KFA_CONFIG_PATH", "/nonexistent/clusters.yaml")
    monkeypatch.setenv("KFA_HTTP_TIMEOUT", "5")
    monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)
    monkeypatch.delenv("KUBERNETES_SERVICE_PORT", raising=False)


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def cluster_a(network: FakeNetwork) -> FakeCluster:
    """The local cluster, reached through its issuer URL."""
    return network.add(FakeCluster("cluster-a"))


@pytest.fixture
def cluster_b(network: FakeNetwork) -> FakeCluster:
    """A remote cluster with the same issuer but its own API endpoint."""
    return network.add(FakeCluster("cluster-b", api_server=REMOTE_API_SERVER))


@pytest.fixture
def federation_config(cluster_a: FakeCluster, cluster_b: FakeCluster) -> FederationConfig:
    return parse_config(
        {
            "clusters": {
                "cluster-a": {"issuer": cluster_a.issuer},
                "cluster-b": {
                    "issuer": cluster_b.issuer,
                    "api_server": cluster_b.api_server,
                    "ca_cert_data": cluster_b.ca_pem.decode(),
                },
            },
            "agents": {"cluster-b": {"serviceAccount": AGENT_SUBJECT}},
        }
    )


@pytest.fixture
def incluster(cluster_a: FakeCluster) -> Callable[[], KubeConnection]:
    """In-cluster identity of the service, running in cluster A."""

    def _load() -> KubeConnection:
        return KubeConnection(
            host=cluster_a.base_url, ca_pem=cluster_a.ca_pem, token=LOCAL_SA_TOKEN
        )

    return _load


@pytest.fixture
def verifier(
    federation_config: FederationConfig, network: FakeNetwork
) -> VerifierManager:
    return VerifierManager(
        federation_config, CredentialStore(), transport=network.transport
    )


@pytest.fixture
def app(
    federation_config: FederationConfig,
    network: FakeNetwork,
    incluster: Callable[[], KubeConnection],
) -> FastAPI:
    return create_app(
        ServerSettings(),
        config=federation_config,
        transport=network.transport,
        incluster=incluster,
    )


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Create an httpx test client bound to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

"""Tests for the minimal Kubernetes API client."""

import httpx
import pytest

from kfa.kube.client import KubeApiError, KubeClient
from kfa.kube.connection import KubeConnection
from tests.fakes import FakeCluster, FakeNetwork, ca_pem


@pytest.fixture
def fake(network: FakeNetwork) -> FakeCluster:
    return network.add(FakeCluster("kube", issuer="https://kube.example.test"))


@pytest.fixture
def connection(fake: FakeCluster) -> KubeConnection:
    return KubeConnection(host=fake.base_url, ca_pem=ca_pem("kube-ca"), token="api-token")


class TestKubeClient:
    """Tests for KubeClient requests."""

    async def test_token_review_sends_bearer(
        self, fake: FakeCluster, connection: KubeConnection, network: FakeNetwork
    ) -> None:
        token = fake.sign()
        async with KubeClient(connection, transport=network.transport) as client:
            result = await client.create_token_review(
                {
                    "apiVersion": "authentication.k8s.io/v1",
                    "kind": "TokenReview",
                    "spec": {"token": token},
                }
            )

        assert result["status"]["authenticated"] is True
        assert fake.reviews[0].authorization == "Bearer api-token"

    async def test_missing_secret_is_none(
        self, connection: KubeConnection, network: FakeNetwork
    ) -> None:
        async with KubeClient(connection, transport=network.transport) as client:
            assert await client.get_secret("ns", "absent") is None

    async def test_error_status_message(
        self, fake: FakeCluster, connection: KubeConnection, network: FakeNetwork
    ) -> None:
        fake.secret_status = 403
        async with KubeClient(connection, transport=network.transport) as client:
            with pytest.raises(KubeApiError) as info:
                await client.get_secret("ns", "creds")
        assert info.value.status_code == 403
        assert info.value.message == "secret api down"
        assert not info.value.not_found

    async def test_create_then_replace_secret(
        self, fake: FakeCluster, connection: KubeConnection, network: FakeNetwork
    ) -> None:
        secret = {"metadata": {"name": "creds", "namespace": "ns"}, "data": {"k": "dg=="}}
        async with KubeClient(connection, transport=network.transport) as client:
            await client.create_secret("ns", secret)
            await client.replace_secret(
                "ns", "creds", {**secret, "data": {"k": "dzI="}}
            )
            stored = await client.get_secret("ns", "creds")

        assert stored is not None
        assert stored["data"] == {"k": "dzI="}

    async def test_connection_error_propagates(self, network: FakeNetwork) -> None:
        conn = KubeConnection(host="https://nowhere.example.test")
        async with KubeClient(conn, transport=network.transport) as client:
            with pytest.raises(httpx.ConnectError):
                await client.get_secret("ns", "creds")

"""Tests for explicit-cluster token validation."""

from httpx import AsyncClient

from tests.fakes import FakeCluster, rsa_key


class TestValidateEndpoint:
    """Tests for POST /validate."""

    async def test_valid(self, client: AsyncClient, cluster_b: FakeCluster) -> None:
        resp = await client.post(
            "/validate",
            json={"cluster": "cluster-b", "token": cluster_b.sign("payments", "api")},
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["cluster"] == "cluster-b"
        assert data["sub"] == "system:serviceaccount:payments:api"
        assert data["kubernetes.io"]["namespace"] == "payments"
        assert cluster_b.reviews == []

    async def test_missing_fields(self, client: AsyncClient) -> None:
        resp = await client.post("/validate", json={"cluster": "cluster-b"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"

    async def test_unknown_cluster(self, client: AsyncClient, cluster_b: FakeCluster) -> None:
        resp = await client.post(
            "/validate", json={"cluster": "cluster-z", "token": cluster_b.sign()}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "cluster_not_found"

    async def test_expired(self, client: AsyncClient, cluster_b: FakeCluster) -> None:
        resp = await client.post(
            "/validate",
            json={"cluster": "cluster-b", "token": cluster_b.sign(expires_in=-120)},
        )
        assert resp.status_code == 401
        assert resp.json()["error"] == "token_expired"

    async def test_wrong_key(self, client: AsyncClient, cluster_b: FakeCluster) -> None:
        resp = await client.post(
            "/validate",
            json={"cluster": "cluster-b", "token": cluster_b.sign(key=rsa_key("attacker"))},
        )
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid_signature"

    async def test_discovery_failure(
        self, client: AsyncClient, cluster_b: FakeCluster
    ) -> None:
        cluster_b.discovery_status = 500
        resp = await client.post(
            "/validate", json={"cluster": "cluster-b", "token": cluster_b.sign()}
        )
        assert resp.status_code == 500
        assert resp.json()["error"] == "oidc_discovery_failed"

    async def test_jwks_failure(self, client: AsyncClient, cluster_b: FakeCluster) -> None:
        cluster_b.jwks_status = 500
        resp = await client.post(
            "/validate", json={"cluster": "cluster-b", "token": cluster_b.sign()}
        )
        assert resp.status_code == 500
        assert resp.json()["error"] == "jwks_fetch_failed"

"""Tests for the review state machine and wire types."""

from collections.abc import Callable

import pytest

from kfa.core.config import FederationConfig
from kfa.credentials.store import CredentialStore
from kfa.credentials.types import Credentials
from kfa.kube.connection import KubeConnection
from kfa.oidc.verifier import VerifierManager
from kfa.review.detector import DETECTION_FAILED_MESSAGE
from kfa.review.forwarder import ReviewForwarder
from kfa.review.service import ReviewState, TokenReviewer
from kfa.review.types import TokenReview, normalize_envelope, unauthenticated
from tests.fakes import FakeCluster, FakeNetwork


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore()


@pytest.fixture
def reviewer(
    federation_config: FederationConfig,
    store: CredentialStore,
    network: FakeNetwork,
    incluster: Callable[[], KubeConnection],
) -> TokenReviewer:
    verifier = VerifierManager(federation_config, store, transport=network.transport)
    forwarder = ReviewForwarder(
        federation_config, store, transport=network.transport, incluster=incluster
    )
    return TokenReviewer(federation_config, verifier, forwarder)


def _request(token: str) -> TokenReview:
    return TokenReview.model_validate(
        {
            "apiVersion": "authentication.k8s.io/v1",
            "kind": "TokenReview",
            "spec": {"token": token},
        }
    )


class TestTokenReviewer:
    """Tests for TokenReviewer.review outcomes."""

    async def test_responded(
        self, reviewer: TokenReviewer, store: CredentialStore, cluster_b: FakeCluster
    ) -> None:
        await store.set("cluster-b", Credentials(token="reviewer", ca_cert=cluster_b.ca_pem))

        outcome = await reviewer.review(_request(cluster_b.sign()))

        assert outcome.state == ReviewState.RESPONDED
        assert outcome.cluster == "cluster-b"
        assert outcome.body["status"]["authenticated"] is True

    async def test_rejected_on_detection(
        self, reviewer: TokenReviewer, cluster_a: FakeCluster, cluster_b: FakeCluster
    ) -> None:
        outcome = await reviewer.review(_request("invalid.token.here"))

        assert outcome.state == ReviewState.REJECTED
        assert outcome.cluster is None
        assert outcome.body["status"] == {
            "authenticated": False,
            "error": DETECTION_FAILED_MESSAGE,
        }
        assert cluster_a.reviews == []
        assert cluster_b.reviews == []

    async def test_rejected_on_forwarding(
        self, reviewer: TokenReviewer, cluster_b: FakeCluster
    ) -> None:
        outcome = await reviewer.review(_request(cluster_b.sign()))

        assert outcome.state == ReviewState.REJECTED
        assert outcome.cluster == "cluster-b"
        error = outcome.body["status"]["error"]
        assert error.startswith("failed to validate token:")
        assert error != DETECTION_FAILED_MESSAGE


class TestWireTypes:
    """Tests for TokenReview envelope helpers."""

    def test_unauthenticated_envelope(self) -> None:
        assert unauthenticated("nope").to_wire() == {
            "apiVersion": "authentication.k8s.io/v1",
            "kind": "TokenReview",
            "metadata": {},
            "spec": {},
            "status": {"authenticated": False, "error": "nope"},
        }

    def test_normalize_fills_type_meta(self) -> None:
        body = normalize_envelope({"status": {"authenticated": True}})
        assert body["apiVersion"] == "authentication.k8s.io/v1"
        assert body["kind"] == "TokenReview"

    def test_unknown_fields_kept(self) -> None:
        review = TokenReview.model_validate(
            {"apiVersion": "authentication.k8s.io/v1", "spec": {"token": "t"}, "x": 1}
        )
        assert review.to_wire()["x"] == 1


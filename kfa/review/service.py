"""Identity review: detect the issuing cluster, then ask it."""

import logging
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from kfa.core.config import FederationConfig
from kfa.core.errors import ForwardingError
from kfa.oidc.verifier import VerifierManager
from kfa.review.detector import NoMatchingClusterError, detect_cluster
from kfa.review.forwarder import ReviewForwarder
from kfa.review.types import TokenReview, unauthenticated

logger = logging.getLogger(__name__)


class ReviewState(StrEnum):
    RECEIVED = "received"
    DETECTING = "detecting"
    FORWARDING = "forwarding"
    RESPONDED = "responded"
    REJECTED = "rejected"


class ReviewOutcome(BaseModel):
    """Terminal state of one review and the envelope to return."""

    state: ReviewState
    cluster: str | None = None
    retryable: bool = False
    body: dict[str, Any]


class TokenReviewer:
    """Runs RECEIVED -> DETECTING -> FORWARDING -> RESPONDED | REJECTED."""

    def __init__(
        self,
        config: FederationConfig,
        verifier: VerifierManager,
        forwarder: ReviewForwarder,
    ) -> None:
        self._config = config
        self._verifier = verifier
        self._forwarder = forwarder

    async def review(self, request: TokenReview) -> ReviewOutcome:
        token = request.spec.token or ""

        try:
            cluster = await detect_cluster(
                self._verifier, self._config.cluster_names(), token
            )
        except NoMatchingClusterError as exc:
            logger.info("Cluster detection failed")
            return ReviewOutcome(
                state=ReviewState.REJECTED,
                body=unauthenticated(str(exc)).to_wire(),
            )

        logger.info("Detected cluster %s", cluster)
        try:
            result = await self._forwarder.forward(cluster, request)
        except ForwardingError as exc:
            logger.warning("TokenReview forwarding failed for cluster %s: %s", cluster, exc)
            return ReviewOutcome(
                state=ReviewState.REJECTED,
                cluster=cluster,
                retryable=exc.retryable,
                body=unauthenticated(f"failed to validate token: {exc}").to_wire(),
            )

        return ReviewOutcome(state=ReviewState.RESPONDED, cluster=cluster, body=result)

"""Forward a TokenReview to the cluster that issued the token."""

import logging
from collections.abc import Callable
from typing import Any

import httpx

from kfa.core.config import FederationConfig
from kfa.core.errors import ClusterConfigError, ForwardingError
from kfa.core.settings import HTTP_TIMEOUT_DEFAULT
from kfa.credentials.store import CredentialStore
from kfa.kube.client import KubeApiError, KubeClient
from kfa.kube.connection import (
    InClusterConfigError,
    KubeConnection,
    cluster_connection,
    load_incluster_connection,
)
from kfa.review.types import TokenReview, normalize_envelope

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500


class ReviewForwarder:
    """Submits reviews using credentials scoped to the detected cluster."""

    def __init__(
        self,
        config: FederationConfig,
        store: CredentialStore | None = None,
        *,
        timeout: float = HTTP_TIMEOUT_DEFAULT,
        transport: httpx.AsyncBaseTransport | None = None,
        incluster: Callable[[], KubeConnection] = load_incluster_connection,
    ) -> None:
        self._config = config
        self._store = store
        self._timeout = timeout
        self._transport = transport
        self._incluster = incluster

    def connection_for(self, cluster: str) -> KubeConnection:
        """Resolve endpoint and identity for ``cluster``.

        Remote clusters (with ``api_server``) use registered credentials,
        falling back to static ones. The local cluster uses the pod's own
        identity, or the issuer URL when not running in a cluster.
        """
        cfg = self._config.get(cluster)
        if cfg is None:
            raise ForwardingError(f"cluster not found: {cluster}")

        if cfg.api_server:
            creds = self._store.get(cluster) if self._store is not None else None
            try:
                conn = cluster_connection(cfg, creds, host=cfg.api_server)
            except ClusterConfigError as exc:
                raise ForwardingError(str(exc)) from exc
            if not conn.has_identity:
                raise ForwardingError(f"no credentials available for cluster {cluster}")
            return conn

        try:
            return self._incluster()
        except InClusterConfigError as exc:
            logger.debug("No in-cluster identity (%s), using issuer for %s", exc, cluster)
            return KubeConnection(host=cfg.issuer)

    async def forward(self, cluster: str, review: TokenReview) -> dict[str, Any]:
        """Return the authoritative TokenReview response for ``cluster``."""
        connection = self.connection_for(cluster)
        try:
            async with KubeClient(
                connection, timeout=self._timeout, transport=self._transport
            ) as client:
                result = await client.create_token_review(review.forward_body())
        except KubeApiError as exc:
            retryable = (
                exc.status_code >= HTTP_SERVER_ERROR
                or exc.status_code == HTTP_TOO_MANY_REQUESTS
            )
            raise ForwardingError(
                f"calling TokenReview API: {exc.message}", retryable=retryable
            ) from exc
        except (httpx.HTTPError, OSError) as exc:
            raise ForwardingError(
                f"calling TokenReview API: {exc}", retryable=True
            ) from exc
        except ClusterConfigError as exc:
            raise ForwardingError(str(exc)) from exc
        except ValueError as exc:
            raise ForwardingError(f"decoding TokenReview response: {exc}") from exc
        return normalize_envelope(result)

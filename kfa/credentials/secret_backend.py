"""Kubernetes Secret used as the durable credential map."""

import logging

import httpx

from kfa.core.errors import ClusterConfigError, PersistenceError
from kfa.core.settings import HTTP_TIMEOUT_DEFAULT
from kfa.kube.client import KubeApiError, KubeClient
from kfa.kube.connection import KubeConnection

logger = logging.getLogger(__name__)

_PERSISTENCE_FAILURES = (
    KubeApiError,
    ClusterConfigError,
    httpx.HTTPError,
    OSError,
    ValueError,
)


class KubernetesSecretBackend:
    """Read and replace one namespaced Secret through the API server."""

    def __init__(
        self,
        connection: KubeConnection,
        namespace: str,
        name: str,
        *,
        timeout: float = HTTP_TIMEOUT_DEFAULT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._connection = connection
        self._namespace = namespace
        self._name = name
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> KubeClient:
        return KubeClient(
            self._connection, timeout=self._timeout, transport=self._transport
        )

    def _body(self, data: dict[str, str]) -> dict[str, object]:
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": self._name, "namespace": self._namespace},
            "type": "Opaque",
            "data": data,
        }

    async def read(self) -> dict[str, str] | None:
        try:
            async with self._client() as client:
                secret = await client.get_secret(self._namespace, self._name)
        except _PERSISTENCE_FAILURES as exc:
            raise PersistenceError(
                f"reading secret {self._namespace}/{self._name}: {exc}"
            ) from exc
        if secret is None:
            return None
        return dict(secret.get("data") or {})

    async def write(self, data: dict[str, str]) -> None:
        body = self._body(data)
        try:
            async with self._client() as client:
                try:
                    await client.replace_secret(self._namespace, self._name, body)
                except KubeApiError as exc:
                    if not exc.not_found:
                        raise
                    await client.create_secret(self._namespace, body)
                    logger.info(
                        "Created credentials secret %s/%s", self._namespace, self._name
                    )
                    return
        except _PERSISTENCE_FAILURES as exc:
            raise PersistenceError(
                f"writing secret {self._namespace}/{self._name}: {exc}"
            ) from exc
        logger.info("Updated credentials secret %s/%s", self._namespace, self._name)

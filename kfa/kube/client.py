"""Minimal async client for the Kubernetes API calls this service needs."""

from types import TracebackType
from typing import Any

import httpx

from kfa.core.settings import HTTP_TIMEOUT_DEFAULT
from kfa.kube.connection import KubeConnection

TOKEN_REVIEW_PATH = "/apis/authentication.k8s.io/v1/tokenreviews"
HTTP_NOT_FOUND = 404


class KubeApiError(Exception):
    """The API server answered with a non-success status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message

    @property
    def not_found(self) -> bool:
        return self.status_code == HTTP_NOT_FOUND


def _status_message(resp: httpx.Response) -> str:
    """Extract the message from a metav1.Status body, falling back to text."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return resp.text or resp.reason_phrase


class KubeClient:
    """Thin wrapper over httpx for TokenReview and Secret operations."""

    def __init__(
        self,
        connection: KubeConnection,
        *,
        timeout: float = HTTP_TIMEOUT_DEFAULT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = connection.http_client(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "KubeClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self, method: str, path: str, body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        resp = await self._client.request(method, path, json=body)
        if resp.is_error:
            raise KubeApiError(resp.status_code, _status_message(resp))
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return data

    async def create_token_review(self, review: dict[str, Any]) -> dict[str, Any]:
        """POST a TokenReview and return the API server's answer."""
        return await self._request("POST", TOKEN_REVIEW_PATH, review)

    async def get_secret(self, namespace: str, name: str) -> dict[str, Any] | None:
        """Return the Secret object, or None when it does not exist."""
        try:
            return await self._request(
                "GET", f"/api/v1/namespaces/{namespace}/secrets/{name}"
            )
        except KubeApiError as exc:
            if exc.not_found:
                return None
            raise

    async def replace_secret(
        self, namespace: str, name: str, secret: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request(
            "PUT", f"/api/v1/namespaces/{namespace}/secrets/{name}", secret
        )

    async def create_secret(
        self, namespace: str, secret: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request(
            "POST", f"/api/v1/namespaces/{namespace}/secrets", secret
        )

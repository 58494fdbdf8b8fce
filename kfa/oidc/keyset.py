"""Lazily fetched, refresh-on-rotation JSON Web Key Set."""

import asyncio
import logging
import time
from collections.abc import Callable

import httpx
import jwt
from jwt import PyJWK, PyJWKSet

from kfa.core.errors import KeysetError
from kfa.core.settings import JWKS_MIN_REFRESH_DEFAULT
from kfa.kube.connection import KubeConnection

logger = logging.getLogger(__name__)

HTTP_OK = 200

# JWS "alg" prefix -> JWK "kty"
_ALG_KEY_TYPES = {"RS": "RSA", "PS": "RSA", "ES": "EC", "Ed": "OKP"}


def key_type_for_alg(alg: str) -> str | None:
    return _ALG_KEY_TYPES.get(alg[:2])


class RemoteKeySet:
    """Public keys served at ``url``, fetched on first use.

    An unknown ``kid`` triggers one refetch so signing-key rotation is picked
    up. Concurrent refetches are coalesced, and a refetch within
    ``min_refresh_interval`` of the last fetch reuses the cached keys.
    """

    def __init__(
        self,
        url: str,
        connection: KubeConnection,
        *,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
        min_refresh_interval: float = JWKS_MIN_REFRESH_DEFAULT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url
        self._connection = connection
        self._timeout = timeout
        self._transport = transport
        self._min_refresh_interval = min_refresh_interval
        self._clock = clock
        self._keys: PyJWKSet | None = None
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> PyJWKSet | None:
        return self._keys

    async def _fetch(self) -> PyJWKSet:
        try:
            async with self._connection.http_client(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.get(self.url)
        except (httpx.HTTPError, OSError) as exc:
            raise KeysetError(f"fetching JWKS from {self.url}: {exc}") from exc

        if resp.status_code != HTTP_OK:
            raise KeysetError(
                f"JWKS returned status {resp.status_code}: {resp.text[:200]}"
            )
        try:
            return PyJWKSet.from_dict(resp.json())
        except (ValueError, jwt.PyJWTError) as exc:
            raise KeysetError(f"decoding JWKS from {self.url}: {exc}") from exc

    async def refresh(self, stale: PyJWKSet | None = None) -> PyJWKSet:
        """Refetch unless ``stale`` was already replaced or was fetched too recently."""
        async with self._lock:
            if self._keys is not None and self._keys is not stale:
                return self._keys
            if (
                self._keys is not None
                and self._clock() - self._fetched_at < self._min_refresh_interval
            ):
                logger.debug("Skipping JWKS refetch from %s; fetched recently", self.url)
                return self._keys
            self._keys = await self._fetch()
            self._fetched_at = self._clock()
            logger.debug("Fetched %d key(s) from %s", len(self._keys.keys), self.url)
            return self._keys

    async def candidates(self, kid: str | None) -> list[PyJWK]:
        """Keys that may have signed a token carrying ``kid``."""
        keys = self._keys
        if keys is None:
            keys = await self.refresh()
        if kid is None:
            return list(keys.keys)

        matches = [k for k in keys.keys if k.key_id == kid]
        if not matches:
            keys = await self.refresh(stale=keys)
            matches = [k for k in keys.keys if k.key_id == kid]
        return matches

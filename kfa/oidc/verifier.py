"""Per-cluster JWT verification against each cluster's published key set."""

import asyncio
import hashlib
import logging
from typing import Any

import httpx
import jwt
from cryptography.hazmat.primitives import serialization

from kfa.core.config import ClusterConfig, FederationConfig
from kfa.core.errors import (
    ClaimInvalidError,
    ClusterNotFoundError,
    SignatureMismatchError,
    TokenExpiredError,
)
from kfa.core.settings import HTTP_TIMEOUT_DEFAULT, JWKS_MIN_REFRESH_DEFAULT
from kfa.credentials.store import CredentialStore
from kfa.kube.connection import cluster_connection
from kfa.oidc.discovery import DiscoveryDocument, fetch_discovery, rewrite_jwks_url
from kfa.oidc.keyset import RemoteKeySet, key_type_for_alg
from kfa.oidc.types import Claims

logger = logging.getLogger(__name__)

# Audience is left to the authoritative TokenReview downstream.
DECODE_OPTIONS: dict[str, Any] = {
    "verify_aud": False,
    "require": ["iss", "sub", "exp"],
}


def unverified_header(raw_token: str) -> dict[str, Any]:
    try:
        return jwt.get_unverified_header(raw_token)
    except jwt.PyJWTError as exc:
        raise ClaimInvalidError(f"malformed token: {exc}") from exc


def _fingerprint(key: jwt.PyJWK) -> str | None:
    public_bytes = getattr(key.key, "public_bytes", None)
    if public_bytes is None:
        return None
    der = public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(der).hexdigest()


class VerifierEntry:
    """Verification context for one cluster. Replaced, never mutated."""

    def __init__(
        self,
        cluster: str,
        issuer: str,
        discovery: DiscoveryDocument,
        key_set: RemoteKeySet,
    ) -> None:
        self.cluster = cluster
        self.issuer = issuer
        self.discovery = discovery
        self.key_set = key_set
        self.algorithms = list(discovery.id_token_signing_alg_values_supported)

    def fingerprints(self) -> set[str]:
        keys = self.key_set.cached
        if keys is None:
            return set()
        return {fp for fp in (_fingerprint(k) for k in keys.keys) if fp}

    async def verify(self, raw_token: str, header: dict[str, Any]) -> dict[str, Any]:
        """Check signature, issuer and time claims; return the payload."""
        alg = header.get("alg")
        if not isinstance(alg, str) or alg not in self.algorithms:
            raise SignatureMismatchError(f"unsupported signing algorithm: {alg!r}")

        key_type = key_type_for_alg(alg)
        candidates = await self.key_set.candidates(header.get("kid"))
        for key in candidates:
            if key.key_type != key_type:
                continue
            try:
                return jwt.decode(
                    raw_token,
                    key.key,
                    algorithms=[alg],
                    issuer=self.issuer,
                    options=DECODE_OPTIONS,
                )
            except jwt.InvalidSignatureError:
                continue
            except jwt.ExpiredSignatureError as exc:
                raise TokenExpiredError("token is expired") from exc
            except jwt.PyJWTError as exc:
                raise ClaimInvalidError(f"invalid token claims: {exc}") from exc
        raise SignatureMismatchError("failed to verify signature")


def _consume_exception(task: "asyncio.Task[VerifierEntry]") -> None:
    if not task.cancelled():
        task.exception()


class VerifierManager:
    """Lazily built, per-cluster verifiers sharing one cache.

    Builds are single-flight per cluster and run without the cache lock
    held. ``invalidate`` bumps the cluster's generation, so a build that
    started with superseded credentials is never cached.
    """

    def __init__(
        self,
        config: FederationConfig,
        store: CredentialStore | None = None,
        *,
        timeout: float = HTTP_TIMEOUT_DEFAULT,
        transport: httpx.AsyncBaseTransport | None = None,
        jwks_min_refresh: float = JWKS_MIN_REFRESH_DEFAULT,
    ) -> None:
        self._config = config
        self._store = store
        self._timeout = timeout
        self._transport = transport
        self._jwks_min_refresh = jwks_min_refresh
        self._entries: dict[str, VerifierEntry] = {}
        self._building: dict[str, asyncio.Task[VerifierEntry]] = {}
        self._generations: dict[str, int] = {}
        self._lock = asyncio.Lock()

    def cached(self, cluster: str) -> VerifierEntry | None:
        return self._entries.get(cluster)

    async def verify(self, cluster: str, raw_token: str) -> Claims:
        """Verify ``raw_token`` locally against ``cluster``'s key set.

        Raises ClusterNotFoundError, ClusterConfigError, DiscoveryError,
        KeysetError or a VerificationError subclass.
        """
        cfg = self._config.get(cluster)
        if cfg is None:
            raise ClusterNotFoundError(cluster)

        header = unverified_header(raw_token)
        entry = await self._get_or_build(cluster, cfg)
        payload = await entry.verify(raw_token, header)
        try:
            return Claims.from_payload(cluster, payload)
        except ValueError as exc:
            raise ClaimInvalidError(f"parsing claims: {exc}") from exc

    async def invalidate(self, cluster: str) -> None:
        """Drop the cached verifier so the next call rebuilds it."""
        async with self._lock:
            self._generations[cluster] = self._generations.get(cluster, 0) + 1
            self._entries.pop(cluster, None)
            self._building.pop(cluster, None)

    async def _get_or_build(self, name: str, cfg: ClusterConfig) -> VerifierEntry:
        entry = self._entries.get(name)
        if entry is not None:
            return entry

        async with self._lock:
            entry = self._entries.get(name)
            if entry is not None:
                return entry
            task = self._building.get(name)
            if task is None:
                generation = self._generations.get(name, 0)
                task = asyncio.create_task(self._build(name, cfg, generation))
                task.add_done_callback(_consume_exception)
                self._building[name] = task

        # A cancelled caller must not cancel a build other callers share.
        return await asyncio.shield(task)

    def _forget_build(self, name: str, task: asyncio.Task[Any] | None) -> None:
        if self._building.get(name) is task:
            del self._building[name]

    async def _build(
        self, name: str, cfg: ClusterConfig, generation: int
    ) -> VerifierEntry:
        task = asyncio.current_task()
        try:
            entry = await self._construct(name, cfg)
        except BaseException:
            self._forget_build(name, task)
            raise

        async with self._lock:
            self._forget_build(name, task)
            if self._generations.get(name, 0) != generation:
                logger.debug("Verifier for %s superseded during build", name)
                return entry
            self._warn_on_shared_keys(name, entry)
            self._entries[name] = entry
        return entry

    async def _construct(self, name: str, cfg: ClusterConfig) -> VerifierEntry:
        credentials = self._store.get(name) if self._store is not None else None
        connection = cluster_connection(cfg, credentials)

        async with connection.http_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            discovery = await fetch_discovery(client, cfg.discovery_url)

        jwks_url = rewrite_jwks_url(discovery.jwks_uri, cfg.api_server)
        key_set = RemoteKeySet(
            jwks_url,
            connection,
            timeout=self._timeout,
            transport=self._transport,
            min_refresh_interval=self._jwks_min_refresh,
        )
        await key_set.refresh()
        logger.info("Built verifier for cluster %s using %s", name, jwks_url)
        return VerifierEntry(name, cfg.issuer, discovery, key_set)

    def _warn_on_shared_keys(self, name: str, entry: VerifierEntry) -> None:
        mine = entry.fingerprints()
        for other, other_entry in self._entries.items():
            if other != name and mine & other_entry.fingerprints():
                logger.error(
                    "Clusters %s and %s publish the same signing key; "
                    "detection between them is ambiguous",
                    name,
                    other,
                )

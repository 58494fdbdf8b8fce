"""Concurrent credential cache with best-effort Secret persistence."""

import asyncio
import base64
import binascii
import logging
from collections.abc import Mapping
from typing import Protocol

from kfa.core.errors import PersistenceError
from kfa.credentials.types import Credentials

logger = logging.getLogger(__name__)

KEY_PREFIX = "cluster-"
TOKEN_SUFFIX = "-token"
CA_SUFFIX = "-ca.crt"


class SecretBackend(Protocol):
    """Durable string map holding base64-encoded values."""

    async def read(self) -> dict[str, str] | None: ...

    async def write(self, data: dict[str, str]) -> None: ...


def token_key(cluster: str) -> str:
    return f"{KEY_PREFIX}{cluster}{TOKEN_SUFFIX}"


def ca_key(cluster: str) -> str:
    return f"{KEY_PREFIX}{cluster}{CA_SUFFIX}"


def encode_secret_data(credentials: Mapping[str, Credentials]) -> dict[str, str]:
    """Flatten credentials into Secret data entries."""
    data: dict[str, str] = {}
    for cluster, creds in credentials.items():
        data[token_key(cluster)] = base64.b64encode(creds.token.encode()).decode()
        data[ca_key(cluster)] = base64.b64encode(creds.ca_cert).decode()
    return data


def _cluster_from_key(key: str) -> str | None:
    if not key.startswith(KEY_PREFIX):
        return None
    rest = key[len(KEY_PREFIX) :]
    for suffix in (TOKEN_SUFFIX, CA_SUFFIX):
        if rest.endswith(suffix) and len(rest) > len(suffix):
            return rest[: -len(suffix)]
    return None


def decode_secret_data(
    data: Mapping[str, str],
) -> tuple[dict[str, Credentials], list[str]]:
    """Rebuild credentials from Secret data.

    Returns the usable entries and the names of clusters whose entries could
    not be decoded. Clusters missing either half of the pair are skipped.
    """
    clusters = {c for c in (_cluster_from_key(k) for k in data) if c is not None}
    loaded: dict[str, Credentials] = {}
    corrupt: list[str] = []
    for cluster in sorted(clusters):
        raw_token = data.get(token_key(cluster))
        raw_ca = data.get(ca_key(cluster))
        if raw_token is None or raw_ca is None:
            continue
        try:
            token = base64.b64decode(raw_token, validate=True).decode()
            ca_cert = base64.b64decode(raw_ca, validate=True)
        except (binascii.Error, UnicodeDecodeError):
            corrupt.append(cluster)
            continue
        loaded[cluster] = Credentials(token=token, ca_cert=ca_cert)
    return loaded, corrupt


class CredentialStore:
    """Cluster name -> Credentials, last writer wins.

    Reads are lock-free: values are immutable and swapped whole, so a reader
    sees either the previous or the new pair. Writers serialise on a lock
    that covers only the map mutation; persistence runs outside it.
    """

    def __init__(self, backend: SecretBackend | None = None) -> None:
        self._credentials: dict[str, Credentials] = {}
        self._lock = asyncio.Lock()
        self._persist_lock = asyncio.Lock()
        self._backend = backend

    @property
    def persistent(self) -> bool:
        return self._backend is not None

    def get(self, cluster: str) -> Credentials | None:
        return self._credentials.get(cluster)

    def snapshot(self) -> dict[str, Credentials]:
        return dict(self._credentials)

    async def set(self, cluster: str, credentials: Credentials) -> None:
        """Replace a cluster's credentials, then persist.

        The in-memory update always takes effect. A durable write failure is
        raised as PersistenceError afterwards so the caller can report it.
        """
        async with self._lock:
            self._credentials[cluster] = credentials

        if self._backend is None:
            return

        # Persist the newest map, not the one this call wrote; concurrent
        # writers then converge on the latest state.
        async with self._persist_lock:
            await self._backend.write(encode_secret_data(self.snapshot()))

    async def load(self) -> int:
        """Load persisted credentials once at startup.

        A missing Secret starts an empty store. Corrupt entries are skipped
        and reported with PersistenceError after the good ones are loaded.
        """
        if self._backend is None:
            return 0

        data = await self._backend.read()
        if data is None:
            logger.info("No persisted credentials found, starting empty")
            return 0

        loaded, corrupt = decode_secret_data(data)
        async with self._lock:
            for cluster, creds in loaded.items():
                # A registration that arrived first is newer than the Secret.
                self._credentials.setdefault(cluster, creds)
        for cluster in loaded:
            logger.info("Loaded persisted credentials for cluster %s", cluster)

        if corrupt:
            raise PersistenceError(
                f"unreadable persisted credentials for: {', '.join(corrupt)}"
            )
        return len(loaded)

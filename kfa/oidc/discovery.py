"""OpenID Connect discovery document retrieval."""

from urllib.parse import urlsplit, urlunsplit

import httpx
from pydantic import BaseModel, ConfigDict, Field

from kfa.core.errors import DiscoveryError

WELL_KNOWN_PATH = "/.well-known/openid-configuration"
DEFAULT_SIGNING_ALGS = ["RS256"]
HTTP_OK = 200


class DiscoveryDocument(BaseModel):
    """The subset of .well-known/openid-configuration used for verification."""

    model_config = ConfigDict(extra="allow")

    issuer: str
    jwks_uri: str
    id_token_signing_alg_values_supported: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SIGNING_ALGS)
    )


def discovery_url(base_url: str) -> str:
    return base_url.rstrip("/") + WELL_KNOWN_PATH


async def fetch_discovery(client: httpx.AsyncClient, base_url: str) -> DiscoveryDocument:
    """GET the discovery document relative to ``base_url``."""
    url = discovery_url(base_url)
    try:
        resp = await client.get(url)
    except (httpx.HTTPError, OSError) as exc:
        raise DiscoveryError(f"fetching discovery from {url}: {exc}") from exc

    if resp.status_code != HTTP_OK:
        raise DiscoveryError(
            f"discovery returned status {resp.status_code}: {resp.text[:200]}"
        )
    try:
        return DiscoveryDocument.model_validate(resp.json())
    except ValueError as exc:
        raise DiscoveryError(f"decoding discovery from {url}: {exc}") from exc


def rewrite_jwks_url(jwks_uri: str, api_server: str | None) -> str:
    """Point the advertised key-set URL at the reachable API endpoint.

    Remote clusters advertise a JWKS URL on their in-cluster issuer host,
    which is not routable from here; keep the path, swap the origin.
    """
    if not api_server:
        return jwks_uri
    advertised = urlsplit(jwks_uri)
    target = urlsplit(api_server)
    if (advertised.scheme, advertised.netloc) == (target.scheme, target.netloc):
        return jwks_uri
    path = target.path.rstrip("/") + advertised.path
    return urlunsplit((target.scheme, target.netloc, path, advertised.query, ""))

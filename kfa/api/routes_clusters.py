"""Read-only listing of configured clusters and credential freshness."""

from datetime import UTC, datetime, timedelta

import jwt
from fastapi import APIRouter

from kfa.api.deps import State
from kfa.api.schemas import ClusterInfo, ClustersResponse, TokenStatus
from kfa.credentials.types import Credentials

router = APIRouter()

EXPIRING_SOON = timedelta(minutes=10)
RFC3339_UTC = "%Y-%m-%dT%H:%M:%SZ"


def format_remaining(delta: timedelta) -> str:
    """Render a duration as ``1h2m3s`` / ``4m5s`` / ``6s``."""
    total = max(int(round(delta.total_seconds())), 0)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"


def _unverified_expiry(token: str) -> int | None:
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)) or exp <= 0:
        return None
    return int(exp)


def token_status(credentials: Credentials, now: datetime | None = None) -> TokenStatus:
    """Display-only status from the token's ``exp``; the signature is not checked."""
    exp = _unverified_expiry(credentials.token) if credentials.token else None
    if exp is None:
        return TokenStatus(status="unknown")

    now = now or datetime.now(UTC)
    expires_at = datetime.fromtimestamp(exp, UTC)
    formatted = expires_at.strftime(RFC3339_UTC)
    if now >= expires_at:
        return TokenStatus(status="expired", expires_at=formatted, expires_in="expired")

    remaining = expires_at - now
    status = "expiring_soon" if remaining < EXPIRING_SOON else "valid"
    return TokenStatus(
        status=status, expires_at=formatted, expires_in=format_remaining(remaining)
    )


@router.get("/clusters", response_model_exclude_none=True)
async def list_clusters(state: State) -> ClustersResponse:
    """GET /clusters -- configured clusters with registered-token status."""
    clusters = []
    for name in state.config.cluster_names():
        cfg = state.config.clusters[name]
        creds = state.store.get(name)
        clusters.append(
            ClusterInfo(
                name=name,
                issuer=cfg.issuer,
                api_server=cfg.api_server,
                token_status=token_status(creds) if creds is not None else None,
            )
        )
    return ClustersResponse(clusters=clusters)

"""Credential registration endpoint used by remote cluster agents."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from kfa.api.deps import State, extract_bearer
from kfa.api.schemas import RegisterRequest, RegisterResponse, error_response
from kfa.core.errors import (
    ClusterConfigError,
    DiscoveryError,
    FederationError,
    KeysetError,
    PersistenceError,
)
from kfa.credentials.certs import parse_base64_ca_cert
from kfa.credentials.types import Credentials

logger = logging.getLogger(__name__)

router = APIRouter()

HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_INTERNAL_ERROR = 500

RFC3339_UTC = "%Y-%m-%dT%H:%M:%SZ"


@router.post("/register", response_model=None)
async def register(request: Request, state: State) -> RegisterResponse | JSONResponse:
    """POST /register -- accept fresh credentials from an authorized agent.

    The agent authenticates with a token issued by the cluster it registers
    for, and its subject must match that cluster's allow-list entry.
    """
    if not request.headers.get("Authorization"):
        return error_response(
            HTTP_UNAUTHORIZED, "unauthorized", "Authorization header required"
        )
    agent_token = extract_bearer(request)
    if not agent_token:
        return error_response(HTTP_UNAUTHORIZED, "unauthorized", "Bearer token required")

    try:
        payload = RegisterRequest.model_validate(await request.json())
    except ValueError:
        return error_response(HTTP_BAD_REQUEST, "invalid_request", "invalid request body")

    cluster = payload.cluster
    if not cluster:
        return error_response(HTTP_BAD_REQUEST, "invalid_request", "cluster is required")
    if state.config.get(cluster) is None:
        return error_response(
            HTTP_BAD_REQUEST,
            "cluster_not_found",
            f"no configuration found for cluster: {cluster}",
        )

    try:
        claims = await state.verifier.verify(cluster, agent_token)
    except (DiscoveryError, KeysetError, ClusterConfigError) as exc:
        logger.warning("Cannot validate agent token for cluster %s: %s", cluster, exc)
        return error_response(
            HTTP_INTERNAL_ERROR,
            "internal_error",
            "failed to load key material for cluster",
        )
    except FederationError as exc:
        logger.warning("Agent token validation failed for cluster %s: %s", cluster, exc)
        return error_response(
            HTTP_UNAUTHORIZED, "invalid_token", "agent token validation failed"
        )

    if not state.config.is_agent_authorized(cluster, claims.subject):
        logger.warning("Unauthorized agent %s for cluster %s", claims.subject, cluster)
        return error_response(
            HTTP_FORBIDDEN,
            "unauthorized_agent",
            f"ServiceAccount not authorized to register credentials for {cluster}",
        )

    if not payload.credentials.token:
        return error_response(
            HTTP_BAD_REQUEST, "invalid_request", "credentials.token is required"
        )
    try:
        ca_cert = parse_base64_ca_cert(payload.credentials.ca_cert)
    except ValueError:
        return error_response(
            HTTP_BAD_REQUEST, "invalid_request", "invalid CA certificate encoding"
        )

    credentials = Credentials(token=payload.credentials.token, ca_cert=ca_cert)
    try:
        await state.store.set(cluster, credentials)
    except PersistenceError as exc:
        logger.warning("Failed to persist credentials for cluster %s: %s", cluster, exc)

    await state.verifier.invalidate(cluster)
    logger.info("Registered credentials for cluster %s from agent %s", cluster, claims.subject)

    expires_at = datetime.now(UTC) + state.settings.registration_ttl
    return RegisterResponse(
        status="accepted",
        cluster=cluster,
        expires_at=expires_at.strftime(RFC3339_UTC),
    )

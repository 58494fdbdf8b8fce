"""Local token validation against one named cluster."""

import logging

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from kfa.api.deps import State
from kfa.api.schemas import ValidateRequest, error_response
from kfa.core.errors import ClusterNotFoundError, FederationError, VerificationError

logger = logging.getLogger(__name__)

router = APIRouter()

HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_INTERNAL_ERROR = 500


def _status_for(exc: FederationError) -> int:
    if isinstance(exc, ClusterNotFoundError):
        return HTTP_BAD_REQUEST
    if isinstance(exc, VerificationError):
        return HTTP_UNAUTHORIZED
    return HTTP_INTERNAL_ERROR


@router.post("/validate")
async def validate(request: Request, state: State) -> JSONResponse:
    """POST /validate -- verify a token's signature and claims locally.

    The token is checked against the cluster's published keys only; it is
    never sent to the cluster.
    """
    try:
        payload = ValidateRequest.model_validate(await request.json())
    except ValueError:
        return error_response(HTTP_BAD_REQUEST, "invalid_request", "invalid request body")
    if not payload.cluster or not payload.token:
        return error_response(
            HTTP_BAD_REQUEST, "invalid_request", "cluster and token are required"
        )

    try:
        claims = await state.verifier.verify(payload.cluster, payload.token)
    except FederationError as exc:
        logger.info("Validation failed for cluster %s: %s", payload.cluster, exc)
        return error_response(_status_for(exc), exc.code, str(exc))

    return JSONResponse(claims.to_response())

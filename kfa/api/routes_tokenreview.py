"""Kubernetes-compatible TokenReview endpoint serving every cluster."""

import logging

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from kfa.api.deps import State
from kfa.review.types import TokenReview, unauthenticated

logger = logging.getLogger(__name__)

router = APIRouter()

TOKEN_REVIEW_ROUTE = "/apis/authentication.k8s.io/v1/tokenreviews"
HTTP_BAD_REQUEST = 400


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(
        unauthenticated(message).to_wire(), status_code=HTTP_BAD_REQUEST
    )


@router.post(TOKEN_REVIEW_ROUTE)
async def token_review(request: Request, state: State) -> JSONResponse:
    """POST /apis/authentication.k8s.io/v1/tokenreviews -- review a token.

    Detection and forwarding failures still answer 200 with an
    unauthenticated envelope; only malformed requests get 400.
    """
    try:
        review = TokenReview.model_validate(await request.json())
    except ValueError:
        return _bad_request("invalid request body")

    if not review.spec.token:
        return _bad_request("token is required")

    outcome = await state.reviewer.review(review)
    return JSONResponse(outcome.body)

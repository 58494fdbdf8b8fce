"""Liveness endpoint."""

from fastapi import APIRouter

from kfa.api.deps import State
from kfa.api.schemas import HealthResponse

router = APIRouter()


@router.get("/health")
async def health(state: State) -> HealthResponse:
    return HealthResponse(status="ok", version=state.version)

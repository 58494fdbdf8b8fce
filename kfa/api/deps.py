"""FastAPI dependencies exposing the service components."""

from typing import Annotated

from fastapi import Depends, Request
from pydantic import BaseModel, ConfigDict

from kfa.core.config import FederationConfig
from kfa.core.settings import ServerSettings
from kfa.credentials.store import CredentialStore
from kfa.oidc.verifier import VerifierManager
from kfa.review.service import TokenReviewer


class ServiceState(BaseModel):
    """Components shared by every request, built once per application."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    settings: ServerSettings
    config: FederationConfig
    store: CredentialStore
    verifier: VerifierManager
    reviewer: TokenReviewer
    version: str


def get_state(request: Request) -> ServiceState:
    return request.app.state.service


State = Annotated[ServiceState, Depends(get_state)]


def extract_bearer(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth[len("Bearer ") :]
    return None

"""Request and response bodies for the JSON endpoints."""

from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import JSONResponse


class ErrorResponse(BaseModel):
    """Structured error body: ``{"error": code, "message": text}``."""

    error: str
    message: str


class RegisterCredentials(BaseModel):
    token: str = ""
    ca_cert: str = Field(default="", description="Base64-encoded PEM CA bundle")


class RegisterRequest(BaseModel):
    """Body of POST /register, sent by a cluster's registration agent."""

    cluster: str = ""
    credentials: RegisterCredentials = Field(default_factory=RegisterCredentials)


class RegisterResponse(BaseModel):
    status: str
    cluster: str
    expires_at: str | None = None


class TokenStatus(BaseModel):
    """Display-only freshness of a registered bearer token."""

    status: str
    expires_at: str | None = None
    expires_in: str | None = None


class ClusterInfo(BaseModel):
    name: str
    issuer: str
    api_server: str | None = None
    token_status: TokenStatus | None = None


class ClustersResponse(BaseModel):
    clusters: list[ClusterInfo] = Field(default_factory=list)


class ValidateRequest(BaseModel):
    """Body of POST /validate."""

    model_config = ConfigDict(extra="ignore")

    cluster: str = ""
    token: str = ""


class HealthResponse(BaseModel):
    status: str
    version: str


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        ErrorResponse(error=error, message=message).model_dump(),
        status_code=status_code,
    )

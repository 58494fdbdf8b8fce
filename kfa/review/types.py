"""TokenReview wire types (authentication.k8s.io/v1)."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

TOKEN_REVIEW_API_VERSION = "authentication.k8s.io/v1"
TOKEN_REVIEW_KIND = "TokenReview"


class TokenReviewSpec(BaseModel):
    token: str | None = None
    audiences: list[str] | None = None


class UserInfo(BaseModel):
    username: str = ""
    uid: str | None = None
    groups: list[str] | None = None
    extra: dict[str, list[str]] | None = None


class TokenReviewStatus(BaseModel):
    authenticated: bool = False
    user: UserInfo | None = None
    audiences: list[str] | None = None
    error: str | None = None


class TokenReview(BaseModel):
    """Request or response envelope; unknown top-level fields are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: str = Field(default=TOKEN_REVIEW_API_VERSION, alias="apiVersion")
    kind: str = TOKEN_REVIEW_KIND
    metadata: dict[str, Any] = Field(default_factory=dict)
    spec: TokenReviewSpec = Field(default_factory=TokenReviewSpec)
    status: TokenReviewStatus | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def forward_body(self) -> dict[str, Any]:
        """The request as submitted to the authoritative cluster."""
        return {
            "apiVersion": TOKEN_REVIEW_API_VERSION,
            "kind": TOKEN_REVIEW_KIND,
            "spec": self.spec.model_dump(exclude_none=True),
        }


def unauthenticated(message: str) -> TokenReview:
    """A well-formed negative review carrying ``message``."""
    return TokenReview(
        status=TokenReviewStatus(authenticated=False, error=message),
    )


def normalize_envelope(result: dict[str, Any]) -> dict[str, Any]:
    """Fill in apiVersion/kind, which API servers may omit on responses."""
    return {
        **result,
        "apiVersion": TOKEN_REVIEW_API_VERSION,
        "kind": TOKEN_REVIEW_KIND,
    }

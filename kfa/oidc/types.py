"""Type definitions for verified ServiceAccount token claims."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SERVICE_ACCOUNT_PREFIX = "system:serviceaccount:"
SERVICE_ACCOUNTS_GROUP = "system:serviceaccounts"
EXTRA_PREFIX = "authentication.kubernetes.io/"


class Claims(BaseModel):
    """Claims of a token that passed signature and standard-claim checks.

    ``kubernetes`` holds the raw ``kubernetes.io`` claim untouched; the
    properties below read the parts of it the review contract uses.
    """

    model_config = ConfigDict(populate_by_name=True)

    cluster: str
    issuer: str = Field(alias="iss")
    subject: str = Field(alias="sub")
    audience: list[str] = Field(default_factory=list, alias="aud")
    expiry: int = Field(alias="exp")
    issued_at: int | None = Field(default=None, alias="iat")
    not_before: int | None = Field(default=None, alias="nbf")
    token_id: str | None = Field(default=None, alias="jti")
    kubernetes: dict[str, Any] | None = Field(default=None, alias="kubernetes.io")

    @classmethod
    def from_payload(cls, cluster: str, payload: dict[str, Any]) -> "Claims":
        aud = payload.get("aud")
        if isinstance(aud, str):
            aud = [aud]
        return cls.model_validate({**payload, "cluster": cluster, "aud": aud or []})

    def _section(self, name: str) -> dict[str, Any]:
        value = (self.kubernetes or {}).get(name)
        return value if isinstance(value, dict) else {}

    def _subject_parts(self) -> list[str]:
        if not self.subject.startswith(SERVICE_ACCOUNT_PREFIX):
            return []
        parts = self.subject[len(SERVICE_ACCOUNT_PREFIX) :].split(":")
        return parts if len(parts) == 2 else []

    @property
    def is_service_account(self) -> bool:
        return bool(self._subject_parts())

    @property
    def namespace(self) -> str | None:
        ns = (self.kubernetes or {}).get("namespace")
        if isinstance(ns, str):
            return ns
        parts = self._subject_parts()
        return parts[0] if parts else None

    @property
    def service_account_name(self) -> str | None:
        name = self._section("serviceaccount").get("name")
        if isinstance(name, str):
            return name
        parts = self._subject_parts()
        return parts[1] if parts else None

    @property
    def service_account_uid(self) -> str | None:
        return self._section("serviceaccount").get("uid")

    @property
    def pod_name(self) -> str | None:
        return self._section("pod").get("name")

    @property
    def pod_uid(self) -> str | None:
        return self._section("pod").get("uid")

    @property
    def node_name(self) -> str | None:
        return self._section("node").get("name")

    @property
    def node_uid(self) -> str | None:
        return self._section("node").get("uid")

    @property
    def groups(self) -> list[str]:
        """Groups the API server assigns to this ServiceAccount."""
        if not self.is_service_account or self.namespace is None:
            return []
        return [SERVICE_ACCOUNTS_GROUP, f"{SERVICE_ACCOUNTS_GROUP}:{self.namespace}"]

    @property
    def extra(self) -> dict[str, list[str]]:
        """Pod/node binding and credential id in TokenReview ``extra`` form."""
        values = {
            "pod-name": self.pod_name,
            "pod-uid": self.pod_uid,
            "node-name": self.node_name,
            "node-uid": self.node_uid,
            "credential-id": f"JTI={self.token_id}" if self.token_id else None,
        }
        return {f"{EXTRA_PREFIX}{k}": [v] for k, v in values.items() if v}

    def to_response(self) -> dict[str, Any]:
        """JSON body in wire (claim-name) form."""
        return self.model_dump(by_alias=True, exclude_none=True)

"""Type definitions for dynamically registered cluster credentials."""

from pydantic import BaseModel, ConfigDict


class Credentials(BaseModel):
    """Bearer token and CA bundle pushed by a cluster's registration agent.

    Instances are immutable; a registration replaces the whole pair.
    """

    model_config = ConfigDict(frozen=True)

    token: str
    ca_cert: bytes

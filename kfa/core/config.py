"""Static cluster trust configuration loaded from YAML."""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kfa.core.errors import ConfigError


class ClusterConfig(BaseModel):
    """One trusted cluster."""

    model_config = ConfigDict(frozen=True)

    issuer: str
    api_server: str | None = None
    ca_cert: str | None = None
    ca_cert_data: str | None = None
    token_path: str | None = None
    token: str | None = None

    @field_validator("issuer")
    @classmethod
    def _issuer_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("issuer is required")
        return value

    @property
    def discovery_url(self) -> str:
        """Endpoint for discovery and API calls; the issuer unless overridden."""
        return self.api_server or self.issuer


class AgentConfig(BaseModel):
    """ServiceAccount allowed to register credentials for a cluster."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service_account: str = Field(alias="serviceAccount")


class FederationConfig(BaseModel):
    """All trusted clusters plus the registration allow-list."""

    model_config = ConfigDict(frozen=True)

    clusters: dict[str, ClusterConfig]
    agents: dict[str, AgentConfig] = Field(default_factory=dict)

    def cluster_names(self) -> list[str]:
        """Configured cluster names in a stable order."""
        return sorted(self.clusters)

    def get(self, name: str) -> ClusterConfig | None:
        return self.clusters.get(name)

    def is_agent_authorized(self, cluster: str, subject: str) -> bool:
        """Check a token subject against the cluster's allow-list entry."""
        agent = self.agents.get(cluster)
        if agent is None:
            return False
        return agent.service_account == subject

    def agent_clusters(self) -> list[str]:
        return sorted(self.agents)


def parse_config(data: object) -> FederationConfig:
    """Validate a decoded YAML document."""
    if not isinstance(data, dict):
        raise ConfigError("config must be a mapping")
    try:
        cfg = FederationConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid config: {exc}") from exc

    if not cfg.clusters:
        raise ConfigError("no clusters configured")
    unknown = [name for name in cfg.agents if name not in cfg.clusters]
    if unknown:
        raise ConfigError(f"agents reference unknown clusters: {', '.join(unknown)}")
    return cfg


def load_config(path: str | Path) -> FederationConfig:
    """Read and validate the cluster configuration file."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"reading config file: {exc}") from exc
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"parsing config file: {exc}") from exc
    return parse_config(data)

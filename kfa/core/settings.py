"""Application settings loaded from environment variables."""

from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict

SERVER_PORT_DEFAULT = 8080
HTTP_TIMEOUT_DEFAULT = 10.0
# Seconds between refetches of a key set triggered by an unknown kid.
JWKS_MIN_REFRESH_DEFAULT = 5.0
REGISTRATION_TTL_DEFAULT = timedelta(days=7)
REFRESH_INTERVAL_DEFAULT = timedelta(days=7)
AGENT_MAX_ATTEMPTS_DEFAULT = 10
AGENT_BASE_DELAY_DEFAULT = 5.0
AGENT_MAX_DELAY_DEFAULT = 300.0
AGENT_REQUEST_TIMEOUT_DEFAULT = 30.0

SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"


class ServerSettings(BaseSettings):
    """Federation service settings."""

    model_config = SettingsConfigDict(env_prefix="KFA_")

    config_path: str = "config/clusters.yaml"
    host: str = "0.0.0.0"
    port: int = SERVER_PORT_DEFAULT
    namespace: str = "kube-federated-auth"
    secret_name: str = "kube-federated-auth-credentials"
    http_timeout: float = HTTP_TIMEOUT_DEFAULT
    registration_ttl: timedelta = REGISTRATION_TTL_DEFAULT
    jwks_min_refresh: float = JWKS_MIN_REFRESH_DEFAULT
    log_level: str = "INFO"


class AgentSettings(BaseSettings):
    """Registration agent settings for a remote cluster."""

    model_config = SettingsConfigDict(env_prefix="KFA_AGENT_")

    endpoint: str
    cluster_name: str
    refresh_interval: timedelta = REFRESH_INTERVAL_DEFAULT
    token_path: str = f"{SERVICE_ACCOUNT_DIR}/token"
    ca_path: str = f"{SERVICE_ACCOUNT_DIR}/ca.crt"
    max_attempts: int = AGENT_MAX_ATTEMPTS_DEFAULT
    base_delay: float = AGENT_BASE_DELAY_DEFAULT
    max_delay: float = AGENT_MAX_DELAY_DEFAULT
    request_timeout: float = AGENT_REQUEST_TIMEOUT_DEFAULT
    log_level: str = "INFO"

    @property
    def register_url(self) -> str:
        """Full URL of the service's registration endpoint."""
        return f"{self.endpoint.rstrip('/')}/register"

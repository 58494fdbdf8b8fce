"""Error taxonomy shared by verification, forwarding and persistence."""


class FederationError(Exception):
    """Base class for all service errors."""

    code = "internal_error"
    retryable = False


class ConfigError(FederationError):
    """The cluster configuration file could not be loaded."""

    code = "configuration_error"


class ClusterNotFoundError(FederationError):
    """The named cluster is absent from the configuration."""

    code = "cluster_not_found"

    def __init__(self, cluster: str) -> None:
        super().__init__(f"cluster not found: {cluster}")
        self.cluster = cluster


class ClusterConfigError(FederationError):
    """A configured cluster has unusable local settings (CA, token file)."""

    code = "configuration_error"


class DiscoveryError(FederationError):
    """The OIDC discovery document could not be fetched or parsed."""

    code = "oidc_discovery_failed"
    retryable = True


class KeysetError(FederationError):
    """The JSON Web Key Set could not be fetched or parsed."""

    code = "jwks_fetch_failed"
    retryable = True


class VerificationError(FederationError):
    """The token was rejected by a verifier."""

    code = "invalid_token"


class SignatureMismatchError(VerificationError):
    """No key in the cluster's key set validates the token signature."""

    code = "invalid_signature"


class ClaimInvalidError(VerificationError):
    """The signature is valid but the claims are not (issuer, nbf, shape)."""


class TokenExpiredError(ClaimInvalidError):
    code = "token_expired"


class ForwardingError(FederationError):
    """The detected cluster could not confirm the token."""

    code = "forwarding_failed"

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class PersistenceError(FederationError):
    """Credentials could not be read from or written to durable storage."""

    code = "persistence_error"

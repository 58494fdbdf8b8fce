"""Local detection of the cluster that signed a token."""

import logging
from collections.abc import Iterable

from kfa.core.errors import (
    FederationError,
    SignatureMismatchError,
    VerificationError,
)
from kfa.oidc.verifier import VerifierManager, unverified_header

logger = logging.getLogger(__name__)

DETECTION_FAILED_MESSAGE = "token not valid for any configured cluster"


class NoMatchingClusterError(VerificationError):
    """No configured cluster's key set validates the token."""


async def detect_cluster(
    verifier: VerifierManager, clusters: Iterable[str], raw_token: str
) -> str:
    """Return the first cluster whose keys verify ``raw_token``.

    Only public key material is fetched; the token never leaves the process.
    Per-cluster failures are logged and the next cluster is tried. The raised
    error never names the clusters that were tried.
    """
    try:
        unverified_header(raw_token)
    except VerificationError as exc:
        logger.debug("Rejecting malformed token before detection: %s", exc)
        raise NoMatchingClusterError(DETECTION_FAILED_MESSAGE) from None

    for name in clusters:
        try:
            await verifier.verify(name, raw_token)
        except SignatureMismatchError:
            logger.debug("Token signature does not match cluster %s", name)
            continue
        except VerificationError as exc:
            logger.debug("Token not valid for cluster %s: %s", name, exc)
            continue
        except FederationError as exc:
            logger.warning("Skipping cluster %s during detection: %s", name, exc)
            continue
        return name

    raise NoMatchingClusterError(DETECTION_FAILED_MESSAGE)

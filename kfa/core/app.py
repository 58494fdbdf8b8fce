"""FastAPI application factory for the federation service."""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from kfa.api.deps import ServiceState
from kfa.api.routes_clusters import router as clusters_router
from kfa.api.routes_health import router as health_router
from kfa.api.routes_register import router as register_router
from kfa.api.routes_tokenreview import router as tokenreview_router
from kfa.api.routes_validate import router as validate_router
from kfa.core.config import FederationConfig, load_config
from kfa.core.errors import PersistenceError
from kfa.core.settings import ServerSettings
from kfa.credentials.secret_backend import KubernetesSecretBackend
from kfa.credentials.store import CredentialStore
from kfa.kube.connection import (
    InClusterConfigError,
    KubeConnection,
    load_incluster_connection,
)
from kfa.oidc.verifier import VerifierManager
from kfa.review.forwarder import ReviewForwarder
from kfa.review.service import TokenReviewer

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def _secret_backend(
    settings: ServerSettings,
    incluster: Callable[[], KubeConnection],
    transport: httpx.AsyncBaseTransport | None,
) -> KubernetesSecretBackend | None:
    """Secret persistence when running inside a cluster, else None."""
    try:
        connection = incluster()
    except InClusterConfigError as exc:
        logger.info("Credential persistence disabled (%s); using memory only", exc)
        return None
    return KubernetesSecretBackend(
        connection,
        settings.namespace,
        settings.secret_name,
        timeout=settings.http_timeout,
        transport=transport,
    )


def create_app(
    settings: ServerSettings | None = None,
    *,
    config: FederationConfig | None = None,
    store: CredentialStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    incluster: Callable[[], KubeConnection] = load_incluster_connection,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Components are created here rather than in the lifespan so the app is
    usable by clients that do not run startup events. The lifespan only
    loads persisted credentials.
    """
    settings = settings or ServerSettings()
    if config is None:
        config = load_config(settings.config_path)
    if store is None:
        store = CredentialStore(_secret_backend(settings, incluster, transport))

    verifier = VerifierManager(
        config,
        store,
        timeout=settings.http_timeout,
        transport=transport,
        jwks_min_refresh=settings.jwks_min_refresh,
    )
    forwarder = ReviewForwarder(
        config,
        store,
        timeout=settings.http_timeout,
        transport=transport,
        incluster=incluster,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        try:
            loaded = await store.load()
        except PersistenceError as exc:
            logger.warning("Loading persisted credentials failed: %s", exc)
        else:
            if loaded:
                logger.info("Loaded persisted credentials for %d clusters", loaded)
        logger.info("Serving clusters: %s", ", ".join(config.cluster_names()))
        yield

    app = FastAPI(
        title="kube-federated-auth",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.service = ServiceState(
        settings=settings,
        config=config,
        store=store,
        verifier=verifier,
        reviewer=TokenReviewer(config, verifier, forwarder),
        version=VERSION,
    )

    app.include_router(health_router)
    app.include_router(clusters_router)
    app.include_router(tokenreview_router)
    app.include_router(validate_router)
    app.include_router(register_router)

    return app

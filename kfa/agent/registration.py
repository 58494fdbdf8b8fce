"""Registration agent: pushes this cluster's credentials to the service."""

import asyncio
import base64
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

import httpx

from kfa.api.schemas import RegisterCredentials, RegisterRequest, RegisterResponse
from kfa.core.settings import AgentSettings
from kfa.kube.connection import BearerAuth

logger = logging.getLogger(__name__)

HTTP_OK = 200
# 2**62 seconds already exceeds any sensible cap.
_MAX_EXPONENT = 62


class RegistrationError(Exception):
    """A registration attempt did not result in accepted credentials."""


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Seconds to wait after failed attempt ``attempt`` (0-based)."""
    exponent = min(max(attempt, 0), _MAX_EXPONENT)
    return min(base * 2.0**exponent, cap)


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict) and body.get("message"):
        return f"{body.get('error', 'error')}: {body['message']}"
    return resp.text


class RegistrationAgent:
    """Registers on startup, then again every ``refresh_interval``."""

    def __init__(
        self,
        settings: AgentSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._sleep = sleep

    def _read_credentials(self) -> tuple[str, str]:
        try:
            token = Path(self._settings.token_path).read_text(encoding="utf-8").strip()
            ca_pem = Path(self._settings.ca_path).read_bytes()
        except (OSError, UnicodeDecodeError) as exc:
            raise RegistrationError(f"reading credentials: {exc}") from exc
        if not token:
            raise RegistrationError(f"empty token at {self._settings.token_path}")
        return token, base64.b64encode(ca_pem).decode()

    async def register_once(self) -> RegisterResponse:
        """Read the current token and CA from disk and submit them once."""
        token, ca_cert = self._read_credentials()
        request = RegisterRequest(
            cluster=self._settings.cluster_name,
            credentials=RegisterCredentials(token=token, ca_cert=ca_cert),
        )
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.request_timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    self._settings.register_url,
                    json=request.model_dump(),
                    auth=BearerAuth(token),
                )
        except httpx.HTTPError as exc:
            raise RegistrationError(f"sending registration: {exc}") from exc

        if resp.status_code != HTTP_OK:
            raise RegistrationError(
                f"registration rejected ({resp.status_code}): {_error_message(resp)}"
            )
        try:
            return RegisterResponse.model_validate(resp.json())
        except ValueError as exc:
            raise RegistrationError(f"decoding registration response: {exc}") from exc

    async def register_with_retry(self) -> RegisterResponse:
        """Try up to ``max_attempts`` times with capped exponential backoff."""
        attempts = max(self._settings.max_attempts, 1)
        last_error: RegistrationError | None = None
        for attempt in range(attempts):
            try:
                result = await self.register_once()
            except RegistrationError as exc:
                last_error = exc
                logger.warning(
                    "Registration attempt %d/%d failed: %s", attempt + 1, attempts, exc
                )
                if attempt + 1 < attempts:
                    delay = backoff_delay(
                        attempt, self._settings.base_delay, self._settings.max_delay
                    )
                    logger.info("Retrying registration in %.1fs", delay)
                    await self._sleep(delay)
                continue
            logger.info(
                "Registered cluster %s (expires at %s)",
                result.cluster,
                result.expires_at or "unknown",
            )
            return result
        raise RegistrationError(
            f"registration failed after {attempts} attempts: {last_error}"
        )

    async def run(self, cycles: int | None = None) -> None:
        """Register now, then every ``refresh_interval``; never raises on failure.

        ``cycles`` bounds the number of registration cycles; None runs forever.
        """
        interval = self._settings.refresh_interval.total_seconds()
        completed = 0
        while True:
            try:
                await self.register_with_retry()
            except RegistrationError as exc:
                logger.error("%s; waiting for next cycle", exc)
            completed += 1
            if cycles is not None and completed >= cycles:
                return
            logger.info("Next registration in %s", self._settings.refresh_interval)
            await self._sleep(interval)

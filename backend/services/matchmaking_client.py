"""Async client for the external matchmaking / room assignment service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

import httpx

from backend.config import get_settings

logger = logging.getLogger(__name__)


class MatchmakingServiceError(ConnectionError):
    """Raised when the matchmaking service cannot be reached or has no room."""


@dataclass(frozen=True)
class RoomCredentials:
    room_id: str
    room_password: str | None = None


class MatchmakingClient:
    """HTTP client for fetching in-game room credentials for a match."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self._base_url)

    async def startup(self) -> None:
        """Initialize the underlying HTTP client."""
        async with self._lock:
            if self._client is None:
                logger.info("Connecting to matchmaking service at %s", self._base_url)
                self._client = httpx.AsyncClient(
                    base_url=self._base_url,
                    timeout=self._timeout,
                    transport=self._transport,
                )

    async def shutdown(self) -> None:
        """Close the underlying HTTP client."""
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.startup()
        assert self._client is not None
        return self._client

    async def fetch_room_credentials(self, match_id: UUID) -> RoomCredentials:
        """
        Look up the room assigned to a match.

        Raises:
            MatchmakingServiceError: Service disabled, unreachable, or no room assigned yet
        """
        if not self.enabled:
            raise MatchmakingServiceError("Matchmaking service is not configured")

        client = await self._ensure_client()
        try:
            response = await client.get(f"/rooms/{match_id}")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Room credential lookup for match %s failed: %s", match_id, exc)
            raise MatchmakingServiceError("Matchmaking service unavailable") from exc

        data = response.json()
        room_id = data.get("room_id")
        if not room_id:
            raise MatchmakingServiceError(f"No room assigned to match {match_id} yet")
        password = data.get("room_password")
        return RoomCredentials(room_id=str(room_id), room_password=str(password) if password else None)

    async def health_check(self) -> bool:
        """Check if the service is reachable."""
        if not self.enabled:
            return False
        client = await self._ensure_client()
        try:
            response = await client.get("/healthz")
            response.raise_for_status()
        except httpx.HTTPError as exc:  # pragma: no cover - network dependent
            logger.error("Matchmaking health check failed: %s", exc)
            return False
        return True


_matchmaking_client: MatchmakingClient | None = None


def get_matchmaking_client() -> MatchmakingClient:
    """Return the singleton matchmaking client."""
    global _matchmaking_client
    if _matchmaking_client is None:
        settings = get_settings()
        _matchmaking_client = MatchmakingClient(
            base_url=settings.matchmaking_api_url,
            timeout=settings.matchmaking_timeout,
        )
    return _matchmaking_client

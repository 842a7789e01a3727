from __future__ import annotations

from typing import Sequence

import httpx
import structlog

from avalon_alerts.models import Leader, coerce_leaders


logger = structlog.get_logger(__name__)

LEADERS_PATH = "/rank/leaders"


class LeaderFetchError(Exception):
    """The API node could not be reached or answered with an error status."""


class MalformedLeadersPayload(Exception):
    """The API node answered, but not with a JSON array of leaders."""


class LeaderApiClient:
    """Fetches the leader ranking from one of several API nodes, rotating on failure."""

    def __init__(self, client: httpx.AsyncClient, apis: Sequence[str], *, timeout_seconds: float = 15.0):
        if not apis:
            raise ValueError("LeaderApiClient needs at least one API node")
        self.client = client
        self.apis = [a.rstrip("/") for a in apis]
        self.timeout_seconds = timeout_seconds
        self.current = 0

    @property
    def current_api(self) -> str:
        return self.apis[self.current]

    def rotate(self) -> str:
        self.current = self.current + 1 if self.current < len(self.apis) - 1 else 0
        return self.current_api

    async def fetch_leaders(self) -> list[Leader]:
        url = f"{self.current_api}{LEADERS_PATH}"
        try:
            resp = await self.client.get(url, timeout=self.timeout_seconds)
            resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise LeaderFetchError(f"{type(exc).__name__}: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            raise MalformedLeadersPayload(f"invalid JSON from {self.current_api}: {exc}") from exc

        if not isinstance(payload, list):
            raise MalformedLeadersPayload(
                f"expected a JSON array from {self.current_api}, got {type(payload).__name__}"
            )

        leaders = coerce_leaders(payload)
        if len(leaders) != len(payload):
            logger.warning(
                "Dropped invalid leader entries",
                api=self.current_api,
                received=len(payload),
                kept=len(leaders),
            )
        return leaders

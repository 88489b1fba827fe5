"""
Arbox API client for the feeds the notification detectors consume.

Read-only: users (birthdays and membership lifecycle), leads, trial
bookings, session schedule and waitlist entries.
"""

import asyncio
from typing import Any

import httpx

from notifier.config import settings
from notifier.features.notifications.errors import ConfigurationError, UpstreamFetchError
from notifier.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_RETRIES = 3
BACKOFF_FACTOR = 1
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class ArboxClient:
    """
    Thin async wrapper over the Arbox REST API.

    Every call goes through one httpx.AsyncClient with an explicit timeout.
    Non-2xx responses and transport failures raise UpstreamFetchError so a
    detector fails without advancing its state.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.ARBOX_API_URL or "").rstrip("/")
        self.api_key = api_key or settings.ARBOX_API_KEY
        if not self.base_url or not self.api_key:
            raise ConfigurationError(
                "Arbox API configuration missing (ARBOX_API_URL / ARBOX_API_KEY)",
                operation="arbox_init",
            )

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"apiKey": self.api_key, "Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout or settings.UPSTREAM_TIMEOUT_SECONDS),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request_with_retry(self, method: str, path: str, **kwargs) -> httpx.Response:
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, path, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Arbox API retrying request",
                        path=path,
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise UpstreamFetchError(
                        f"Arbox request failed: {e}", operation=path, url=path
                    ) from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Arbox API request error, retrying",
                    path=path,
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise RuntimeError("Arbox API retry loop exhausted")

    async def _get(self, path: str, *, params: dict | None = None, body: dict | None = None) -> Any:
        # Some Arbox report endpoints take their filters as a JSON body on GET.
        response = await self._request_with_retry("GET", path, params=params, json=body)

        if not response.is_success:
            logger.error(
                "Arbox API request failed",
                path=path,
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise UpstreamFetchError(
                f"Arbox API error (HTTP {response.status_code}) for {path}",
                operation=path,
                status_code=response.status_code,
                url=path,
            )

        try:
            return response.json() if response.text else None
        except ValueError as e:
            raise UpstreamFetchError(
                f"Invalid JSON from Arbox {path}: {e}", operation=path, url=path
            ) from e

    @staticmethod
    def _as_list(payload: Any) -> list[dict]:
        """Arbox wraps some collections in {"data": [...]}; unwrap to a list."""
        if isinstance(payload, dict):
            payload = payload.get("data")
        return payload if isinstance(payload, list) else []

    async def get_users(self) -> list[dict]:
        return self._as_list(await self._get("/users"))

    async def get_leads(self) -> list[dict]:
        return self._as_list(await self._get("/leads"))

    async def get_trials(self, from_date: str, to_date: str) -> list[dict]:
        """Trial class bookings between two YYYY-MM-DD dates (inclusive)."""
        payload = await self._get(
            "/reports/trialClassesReport", body={"fromDate": from_date, "toDate": to_date}
        )
        return self._as_list(payload)

    async def get_waitlist_entries(self, from_date: str, to_date: str) -> list[dict]:
        """Waitlist entries between two YYYY-MM-DD dates; entry dates come back as DD/MM/YYYY."""
        payload = await self._get(
            "/schedule/entryFromWaitingList", params={"fDate": from_date, "tDate": to_date}
        )
        return self._as_list(payload)

    async def get_schedule(self, from_date: str, to_date: str) -> list[dict]:
        """Sessions with booking counts; the schedule endpoint wants DD-MM-YYYY dates."""
        payload = await self._get(
            "/schedule", body={"from": from_date, "to": to_date, "bookings": True}
        )
        return self._as_list(payload)

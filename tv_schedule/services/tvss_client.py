"""
TV Schedules Service (TVSS) API client

Fetches channel definitions and per-day listings for a station call sign.
Transient failures are retried with exponential backoff; anything else is
raised as RemoteFetchError.
"""
import asyncio
import logging
from datetime import date
from typing import Any

import httpx
from pydantic import ValidationError

from tv_schedule.config import settings
from tv_schedule.exceptions import ConfigurationError, RemoteFetchError
from tv_schedule.schemas import FeedChannel, FeedListing, FeedListingBatch


logger = logging.getLogger(__name__)

AUTH_HEADER = "X-PBSAUTH"


class TvssClient:
    """Async client for the TV Schedules Service API."""

    def __init__(
        self,
        api_key: str | None,
        call_sign: str | None,
        *,
        base_uri: str = "https://services.pbs.org/tvss/",
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.call_sign = call_sign
        self.base_uri = base_uri if base_uri.endswith("/") else f"{base_uri}/"
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "TvssClient":
        return cls(
            settings.tvss_api_key,
            settings.tvss_call_sign,
            base_uri=settings.tvss_base_uri,
            timeout=settings.tvss_timeout_sec,
            max_retries=settings.tvss_max_retries,
            backoff_factor=settings.tvss_backoff_factor,
        )

    async def get_feeds(self) -> list[FeedChannel]:
        """
        Get all channel feeds currently reported for the call sign.

        Returns:
            Channel records; malformed entries are logged and skipped
        """
        data = await self._get(f"{self.call_sign}/today/")
        return self._parse_feeds(data, "today")

    async def get_listings(
        self,
        day: date,
        fetch_images: bool = True,
    ) -> list[FeedListingBatch]:
        """
        Get listings for all channels on a calendar date.

        Args:
            day: Calendar date (channel-local interpretation happens later)
            fetch_images: Include show and episode image metadata

        Returns:
            One batch per channel; an empty list past the feed's horizon
        """
        path = f"{self.call_sign}/day/{day.strftime('%Y%m%d')}/"
        params = {"fetch-images": "true"} if fetch_images else None
        data = await self._get(path, params=params)
        return self._parse_listing_batches(data, day.isoformat())

    def _feed_entries(self, data: Any, label: str) -> list:
        if not isinstance(data, dict) or not isinstance(data.get("feeds", []), list):
            raise RemoteFetchError(f"Malformed TVSS response for {label}: missing 'feeds' list")
        return data.get("feeds", [])

    def _parse_feeds(self, data: Any, label: str) -> list[FeedChannel]:
        records = []
        for index, raw in enumerate(self._feed_entries(data, label)):
            try:
                records.append(FeedChannel.model_validate(raw))
            except ValidationError as exc:
                cid = raw.get("cid") if isinstance(raw, dict) else None
                logger.error(
                    "Skipping malformed TVSS feed %s (cid=%s) for %s: %s",
                    index,
                    cid,
                    label,
                    exc,
                )
        return records

    def _parse_listing_batches(self, data: Any, label: str) -> list[FeedListingBatch]:
        """
        Parse per-channel listing batches.

        The channel envelope and each listing are validated separately so a
        bad listing only costs that listing. Its CID, when readable, is kept
        on the batch so the stored item is not treated as removed upstream.
        """
        batches = []
        for index, raw in enumerate(self._feed_entries(data, label)):
            raw_listings = raw.get("listings") if isinstance(raw, dict) else None
            try:
                if raw_listings is not None and not isinstance(raw_listings, list):
                    raise ValueError("'listings' is not a list")
                envelope = {key: value for key, value in raw.items() if key != "listings"}
                batch = FeedListingBatch.model_validate(envelope)
            except (AttributeError, ValueError) as exc:
                cid = raw.get("cid") if isinstance(raw, dict) else None
                logger.error(
                    "Skipping malformed TVSS feed %s (cid=%s) for %s: %s",
                    index,
                    cid,
                    label,
                    exc,
                )
                continue

            for position, raw_listing in enumerate(raw_listings or []):
                try:
                    batch.listings.append(FeedListing.model_validate(raw_listing))
                except ValidationError as exc:
                    cid = raw_listing.get("cid") if isinstance(raw_listing, dict) else None
                    logger.error(
                        "Skipping malformed TVSS listing %s (cid=%s) on feed %s for %s: %s",
                        position,
                        cid,
                        batch.cid,
                        label,
                        exc,
                    )
                    if cid is not None and not isinstance(cid, bool) and str(cid):
                        batch.malformed_cids.append(str(cid))
            batches.append(batch)
        return batches

    async def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET a TVSS endpoint with exponential backoff retry logic.

        Does NOT retry on 4xx HTTP errors (client errors).
        """
        if not self.api_key or not self.call_sign:
            raise ConfigurationError("TVSS API key and call sign must be configured")

        url = f"{self.base_uri}{path}"
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout,
                    headers={AUTH_HEADER: self.api_key},
                    transport=self._transport,
                ) as client:
                    response = await client.get(url, params=params)
                    response.raise_for_status()
                    return response.json()

            except (httpx.TimeoutException, httpx.TransportError) as e:
                # Transient network errors - retry
                last_error = e
                if attempt < self.max_retries - 1:
                    wait_time = self.backoff_factor ** attempt
                    logger.warning(
                        "TVSS request attempt %s/%s failed (transient error): %s. Retrying in %.1fs...",
                        attempt + 1,
                        self.max_retries,
                        type(e).__name__,
                        wait_time,
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error("TVSS request failed after %s attempts (transient error)", self.max_retries)

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if 400 <= status < 500:
                    logger.error("TVSS HTTP %s (client error) for %s", status, path)
                    raise RemoteFetchError(
                        f"TVSS request failed with HTTP {status}", url=path, status_code=status
                    ) from e

                # 5xx server error - retry
                last_error = e
                if attempt < self.max_retries - 1:
                    wait_time = self.backoff_factor ** attempt
                    logger.warning(
                        "TVSS request attempt %s/%s failed (HTTP %s server error). Retrying in %.1fs...",
                        attempt + 1,
                        self.max_retries,
                        status,
                        wait_time,
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error("TVSS request failed after %s attempts (HTTP %s)", self.max_retries, status)

            except ValueError as e:
                raise RemoteFetchError(f"TVSS returned invalid JSON for {path}", url=path) from e

        raise RemoteFetchError(
            f"TVSS request for {path} failed after {self.max_retries} attempts: {last_error}",
            url=path,
        ) from last_error

"""
Geocoding lookups and the venue coordinate backfill.

``NominatimGeocoder`` resolves addresses through a Nominatim-compatible
search API. Every request carries its own timeout and is never retried; a
failed lookup raises ``ExternalLookupFailed`` and the caller skips that
record.
"""

import asyncio
import json
from typing import Any

import aiohttp

from driftfix.exceptions import ExternalLookupFailed
from driftfix.migrations.step import StepContext
from driftfix.steps.batch import BatchStats, process_in_batches
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.steps.geocode")

Coordinates = tuple[float, float]


class NominatimGeocoder:
    """
    Address to coordinates lookups via the Nominatim search API.

    Example:
        geocoder = NominatimGeocoder(timeout=5)
        results = geocoder.lookup_many(["Place de la Concorde, Paris"])
        # {"Place de la Concorde, Paris": (48.8656, 2.3212)}
    """

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        timeout: float = 10.0,
        user_agent: str = "driftfix",
        max_concurrent: int = 1,
    ):
        """
        Initialize geocoder.

        Args:
            base_url: Search API base URL
            timeout: Per-request timeout in seconds
            user_agent: User-Agent header (required by the public Nominatim service)
            max_concurrent: Maximum requests in flight
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.user_agent = user_agent
        self.max_concurrent = max(1, max_concurrent)

    @staticmethod
    def _parse(address: str, data: Any) -> Coordinates:
        """Extract (latitude, longitude) from a GeoJSON FeatureCollection."""
        try:
            lon, lat = data["features"][0]["geometry"]["coordinates"][:2]
            return float(lat), float(lon)
        except (KeyError, IndexError, TypeError, ValueError):
            raise ExternalLookupFailed(address, "no coordinates in response") from None

    async def lookup(self, session: aiohttp.ClientSession, address: str) -> Coordinates:
        """
        Geocode one address.

        Raises:
            ExternalLookupFailed: On network error, timeout, HTTP error or empty result
        """
        params = {"q": address, "format": "geojson", "limit": "1"}
        try:
            async with session.get(f"{self.base_url}/search", params=params) as response:
                if response.status != 200:
                    raise ExternalLookupFailed(address, f"HTTP {response.status}")
                data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise ExternalLookupFailed(address, "request timed out") from None
        except aiohttp.ClientError as e:
            raise ExternalLookupFailed(address, str(e) or type(e).__name__) from e
        except ValueError:
            raise ExternalLookupFailed(address, "undecodable response body") from None
        return self._parse(address, data)

    async def lookup_many_async(self, addresses: list[str]) -> dict[str, Coordinates | ExternalLookupFailed]:
        """Geocode addresses; each value is coordinates or the lookup error."""
        semaphore = asyncio.Semaphore(self.max_concurrent)
        results: dict[str, Coordinates | ExternalLookupFailed] = {}

        async with aiohttp.ClientSession(timeout=self.timeout, headers={"User-Agent": self.user_agent}) as session:

            async def one(address: str) -> None:
                async with semaphore:
                    try:
                        results[address] = await self.lookup(session, address)
                    except ExternalLookupFailed as e:
                        results[address] = e

            await asyncio.gather(*(one(a) for a in dict.fromkeys(addresses)))
        return results

    def lookup_many(self, addresses: list[str]) -> dict[str, Coordinates | ExternalLookupFailed]:
        """Synchronous wrapper around ``lookup_many_async`` for use inside steps."""
        if not addresses:
            return {}
        return asyncio.run(self.lookup_many_async(addresses))


def _needs_coordinates(info: Any) -> bool:
    return (
        isinstance(info, dict)
        and (not info.get("latitude") or not info.get("longitude"))
        and bool(info.get("fullAddress"))
    )


def backfill_venue_coordinates(ctx: StepContext, meta_key: str = "gatherpress_venue_information") -> BatchStats:
    """
    Add latitude/longitude to venue information meta that lacks them.

    Records that already have coordinates, have no address, or whose lookup
    fails are left unchanged.
    """
    postmeta_table = ctx.scope.table_name("postmeta")
    if not ctx.store.table_exists(postmeta_table):
        return BatchStats()

    postmeta = ctx.scope.table("postmeta")
    geocoder = ctx.services.get("geocoder") or NominatimGeocoder()

    def fetch_batch(after_id, limit):
        return ctx.store.fetch_all(
            f"SELECT meta_id, post_id, meta_value FROM {postmeta} "
            f"WHERE meta_key = ? AND meta_id > ? ORDER BY meta_id LIMIT ?",
            [meta_key, after_id if after_id is not None else -1, limit],
        )

    def prepare(rows):
        candidates = []
        for meta_id, post_id, raw in rows:
            try:
                info = json.loads(raw) if raw else None
            except json.JSONDecodeError:
                logger.warning(f"[{ctx.scope.id}] Venue meta {meta_id} of post {post_id} is not valid JSON; skipping")
                continue
            if _needs_coordinates(info):
                candidates.append((meta_id, post_id, info))

        lookups = geocoder.lookup_many([info["fullAddress"] for _, _, info in candidates])
        updates = []
        for meta_id, post_id, info in candidates:
            result = lookups.get(info["fullAddress"])
            if isinstance(result, ExternalLookupFailed) or result is None:
                logger.warning(f"[{ctx.scope.id}] Skipping venue of post {post_id}: {result}")
                continue
            info["latitude"], info["longitude"] = result
            updates.append((meta_id, json.dumps(info, separators=(",", ":"))))
        return updates

    def apply_batch(updates):
        for meta_id, value in updates:
            ctx.store.execute(f"UPDATE {postmeta} SET meta_value = ? WHERE meta_id = ?", [value, meta_id])
        return len(updates)

    return process_in_batches(ctx, fetch_batch, apply_batch, prepare=prepare)

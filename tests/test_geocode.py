"""
Tests for geocoding lookups and the venue coordinate backfill.
"""

import asyncio
import json

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from driftfix.exceptions import ExternalLookupFailed
from driftfix.migrations.registry import MigrationRegistry
from driftfix.migrations.runner import MigrationRunner
from driftfix.migrations.step import MigrationStep
from driftfix.steps.geocode import NominatimGeocoder, backfill_venue_coordinates


def venue(address=None, **extra):
    info = {"name": "Venue", **extra}
    if address is not None:
        info["fullAddress"] = address
    return json.dumps(info)


def feature_collection(lon, lat):
    return {
        "type": "FeatureCollection",
        "features": [{"type": "Feature", "geometry": {"type": "Point", "coordinates": [lon, lat]}}],
    }


# ---------------------------------------------------------------------------
# NominatimGeocoder against a local HTTP server
# ---------------------------------------------------------------------------


async def _search(request: web.Request) -> web.Response:
    query = request.query["q"]
    assert request.query["format"] == "geojson"
    assert request.headers["User-Agent"] == "driftfix-tests"
    if query == "Paris":
        return web.json_response(feature_collection(2.35, 48.85))
    if query == "Broken":
        return web.json_response({"error": "boom"}, status=500)
    if query == "Slow":
        await asyncio.sleep(1)
        return web.json_response(feature_collection(0, 0))
    if query == "Garbage":
        return web.Response(text="not json", content_type="text/plain")
    if query == "Mangled":
        return web.Response(body=b'{"features": "\xff\xfe"}', content_type="application/json")
    return web.json_response({"type": "FeatureCollection", "features": []})


@pytest_asyncio.fixture
async def geocoder_server():
    app = web.Application()
    app.router.add_get("/search", _search)
    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


def make_geocoder(server, **kwargs):
    return NominatimGeocoder(
        base_url=str(server.make_url("/")),
        user_agent="driftfix-tests",
        **kwargs,
    )


@pytest.mark.unit
class TestNominatimGeocoder:
    @pytest.mark.asyncio
    async def test_success(self, geocoder_server):
        results = await make_geocoder(geocoder_server).lookup_many_async(["Paris"])
        assert results == {"Paris": (48.85, 2.35)}

    @pytest.mark.asyncio
    async def test_failures_are_per_address(self, geocoder_server):
        geocoder = make_geocoder(geocoder_server, max_concurrent=4)
        results = await geocoder.lookup_many_async(["Paris", "Broken", "Nowhere", "Garbage"])

        assert results["Paris"] == (48.85, 2.35)
        for address in ("Broken", "Nowhere", "Garbage"):
            assert isinstance(results[address], ExternalLookupFailed)
        assert results["Broken"].reason == "HTTP 500"
        assert results["Nowhere"].reason == "no coordinates in response"

    @pytest.mark.asyncio
    async def test_timeout(self, geocoder_server):
        geocoder = make_geocoder(geocoder_server, timeout=0.2)
        results = await geocoder.lookup_many_async(["Slow"])
        assert isinstance(results["Slow"], ExternalLookupFailed)
        assert results["Slow"].reason == "request timed out"

    @pytest.mark.asyncio
    async def test_undecodable_body_skips_only_that_address(self, geocoder_server):
        results = await make_geocoder(geocoder_server).lookup_many_async(["Mangled", "Paris"])
        assert isinstance(results["Mangled"], ExternalLookupFailed)
        assert results["Mangled"].reason == "undecodable response body"
        assert results["Paris"] == (48.85, 2.35)

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        geocoder = NominatimGeocoder(base_url="http://127.0.0.1:1", timeout=1)
        results = await geocoder.lookup_many_async(["Paris"])
        assert isinstance(results["Paris"], ExternalLookupFailed)

    def test_lookup_many_empty(self):
        assert NominatimGeocoder().lookup_many([]) == {}

    def test_parse(self):
        assert NominatimGeocoder._parse("x", feature_collection("1.5", "2.5")) == (2.5, 1.5)
        with pytest.raises(ExternalLookupFailed):
            NominatimGeocoder._parse("x", {"features": [{"geometry": {}}]})


# ---------------------------------------------------------------------------
# Backfill step
# ---------------------------------------------------------------------------


@pytest.fixture
def venues(wp_store, insert):
    insert(
        "wp_postmeta",
        [
            (1, 10, "gatherpress_venue_information", venue("Paris")),
            (2, 11, "gatherpress_venue_information", venue("Atlantis")),
            (3, 12, "gatherpress_venue_information", venue("Berlin", latitude="52.5", longitude="13.4")),
            (4, 13, "gatherpress_venue_information", venue()),
            (5, 14, "gatherpress_venue_information", "{not json"),
            (6, 15, "other_key", venue("Paris")),
        ],
    )
    return wp_store


def meta_value(store, meta_id):
    return store.fetch_value('SELECT meta_value FROM "wp_postmeta" WHERE meta_id = ?', [meta_id])


@pytest.mark.unit
class TestBackfillVenueCoordinates:
    def test_failed_lookup_skipped_and_others_updated(self, venues, make_context, fake_geocoder):
        fake_geocoder.results["Paris"] = (48.85, 2.35)
        ctx = make_context(services={"geocoder": fake_geocoder})

        stats = backfill_venue_coordinates(ctx)

        assert stats.changed == 1
        assert fake_geocoder.calls == ["Paris", "Atlantis"]
        paris = json.loads(meta_value(venues, 1))
        assert (paris["latitude"], paris["longitude"]) == (48.85, 2.35)
        assert paris["fullAddress"] == "Paris"
        assert meta_value(venues, 2) == venue("Atlantis")
        assert meta_value(venues, 3) == venue("Berlin", latitude="52.5", longitude="13.4")
        assert meta_value(venues, 5) == "{not json"
        assert meta_value(venues, 6) == venue("Paris")

    def test_second_pass_only_retries_failures(self, venues, make_context, fake_geocoder):
        fake_geocoder.results["Paris"] = (48.85, 2.35)
        backfill_venue_coordinates(make_context(services={"geocoder": fake_geocoder}))

        fake_geocoder.calls.clear()
        stats = backfill_venue_coordinates(make_context(services={"geocoder": fake_geocoder}))

        assert fake_geocoder.calls == ["Atlantis"]
        assert stats.changed == 0

    def test_lookup_failures_never_fail_the_step(self, venues, main_site, fake_geocoder):
        step = MigrationStep("0.30.0", "backfill", backfill_venue_coordinates, transactional=False)
        runner = MigrationRunner(MigrationRegistry([step]), venues, services={"geocoder": fake_geocoder})

        result = runner.run(main_site)

        assert result.success
        assert result.mutations == 0
        assert sorted(fake_geocoder.calls) == ["Atlantis", "Paris"]

    def test_missing_table(self, store, make_context, fake_geocoder):
        stats = backfill_venue_coordinates(make_context(services={"geocoder": fake_geocoder}))
        assert stats.batches == 0
        assert fake_geocoder.calls == []

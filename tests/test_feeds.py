import json
import unittest
from urllib.parse import parse_qs

import httpx

from guide_sync.backoff import RateLimitBackoffCoordinator
from guide_sync.feeds.environmental import EnvironmentalImpactFeed, build_offline_placeholder
from guide_sync.feeds.pulse import CityPulseFeed, dedupe_by_title, has_local_city_signal, to_pulse_item
from guide_sync.feeds.visa import VisaLookup, normalize_visa_payload
from guide_sync.session_context import SessionContext
from guide_sync.storage.memory import InMemoryKeyValueStore
from guide_sync.ttl_cache import TTLResponseCache


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _report(city_id="lisbon-portugal", aqi=31):
    return {
        "cityId": city_id,
        "cityLabel": "Lisbon, Portugal",
        "aqiValue": aqi,
        "aqiCategory": "Good",
        "currentConditionsSummary": "Clear Atlantic air.",
        "whatYouCanDo": ["Take the tram."],
        "howItHelps": "Less congestion.",
        "isLive": True,
    }


class _Clock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class FeedTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.kv = InMemoryKeyValueStore()
        self.context = SessionContext()
        self.clock = _Clock()
        self.cache = TTLResponseCache(self.kv, self.context, clock=self.clock)

    async def asyncTearDown(self):
        await self.context.aclose()


class TestEnvironmentalImpactFeed(FeedTestCase):
    async def test_live_report_is_cached_for_thirty_minutes(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, json=_report(aqi=len(requests)))

        async with _client(handler) as client:
            feed = EnvironmentalImpactFeed("http://vitals.test/env", self.cache, client=client)
            first = await feed.get_report(" Lisbon-Portugal ", lat=38.7, lng=-9.1)
            second = await feed.get_report("lisbon-portugal")
            self.clock.now += 31 * 60
            third = await feed.get_report("lisbon-portugal")

        self.assertEqual(requests[0], {"cityId": "lisbon-portugal", "lat": 38.7, "lng": -9.1})
        self.assertEqual(first["aqiValue"], 1)
        self.assertEqual(second["aqiValue"], 1)
        self.assertEqual(third["aqiValue"], 2)
        self.assertEqual(len(requests), 2)

    async def test_invalid_response_falls_back_to_placeholder(self):
        async with _client(lambda request: httpx.Response(200, json={"aqiValue": "bad"})) as client:
            feed = EnvironmentalImpactFeed("http://vitals.test/env", self.cache, client=client)
            report = await feed.get_report("lisbon-portugal")
        self.assertFalse(report["isLive"])
        self.assertEqual(report["aqiCategory"], "Offline")
        self.assertEqual(report["cityLabel"], "Lisbon, Portugal")

    async def test_offline_uses_stale_cache_then_placeholder(self):
        async with _client(lambda request: httpx.Response(200, json=_report())) as client:
            feed = EnvironmentalImpactFeed("http://vitals.test/env", self.cache, client=client)
            await feed.get_report("lisbon-portugal")
            self.clock.now += 2 * 60 * 60
            self.context.set_online(False)
            stale = await feed.get_report("lisbon-portugal")
            missing = await feed.get_report("tokyo-japan")
        self.assertTrue(stale["isLive"])
        self.assertEqual(missing["cityId"], "tokyo-japan")
        self.assertEqual(missing["aqiCategory"], "Offline")
        self.assertEqual(feed.cached_report("lisbon-portugal")["aqiValue"], 31)

    def test_placeholder_shape(self):
        placeholder = build_offline_placeholder("bangkok-thailand")
        self.assertEqual(placeholder["aqiValue"], 0)
        self.assertEqual(len(placeholder["whatYouCanDo"]), 3)
        self.assertFalse(placeholder["isLive"])


class TestPulseHelpers(unittest.TestCase):
    def test_local_signal(self):
        self.assertTrue(has_local_city_signal({"title": "Lisbon metro strike"}, "Lisbon"))
        self.assertFalse(has_local_city_signal({"title": "Global markets slide"}, "Lisbon"))
        self.assertFalse(has_local_city_signal({"title": "Recipe of the day"}, "Lisbon"))
        self.assertTrue(has_local_city_signal({"title": "Tokyo world expo opens"}, "Tokyo"))
        self.assertFalse(has_local_city_signal({}, "Tokyo"))

    def test_classification(self):
        safety = to_pulse_item({"title": "Metro strike in Lisbon", "source": {"name": "RTP"}})
        event = to_pulse_item({"title": "Lisbon jazz festival", "description": " Live music "})
        news = to_pulse_item({"title": "Lisbon opens new park"})
        self.assertEqual((safety["type"], safety["urgency"], safety["source"]), ("safety", True, "RTP"))
        self.assertEqual((event["type"], event["urgency"], event["description"]), ("event", False, "Live music"))
        self.assertEqual((news["type"], news["source"], news["description"]), ("news", "News Feed", "No description provided."))
        self.assertIsNone(to_pulse_item({"title": "  "}))

    def test_dedupe(self):
        items = [{"title": "A"}, {"title": "a "}, {"title": "B"}]
        self.assertEqual([i["title"] for i in dedupe_by_title(items)], ["A", "B"])


class TestCityPulseFeed(FeedTestCase):
    async def test_fetch_filters_and_caches(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "articles": [
                        {"title": "Lisbon tram strike on Friday", "source": {"name": "Publico"}},
                        {"title": "Lisbon tram strike on Friday", "source": {"name": "Copy"}},
                        {"title": "World markets rally"},
                        {"title": "Lisbon book fair returns", "url": "https://example.com/fair"},
                    ]
                },
            )

        async with _client(handler) as client:
            feed = CityPulseFeed("http://news.test/v2/everything", "secret", self.cache, client=client)
            items = await feed.get_pulse("lisbon-portugal", "Lisbon")
            again = await feed.get_pulse("lisbon-portugal", "Lisbon")

        self.assertEqual([i["type"] for i in items], ["safety", "event"])
        self.assertEqual(again, items)
        self.assertEqual(len(requests), 1)
        params = parse_qs(requests[0].url.query.decode())
        self.assertEqual(params["q"], ["Lisbon"])
        self.assertEqual(params["pageSize"], ["3"])
        self.assertIn("pulse_data_lisbon-portugal", self.kv.keys())

    async def test_stale_pulse_is_served_while_refreshing(self):
        titles = ["Lisbon tram strike on Friday", "Lisbon book fair returns"]

        def handler(request):
            return httpx.Response(200, json={"articles": [{"title": titles.pop(0)}]})

        async with _client(handler) as client:
            feed = CityPulseFeed("http://news.test/v2/everything", "secret", self.cache, client=client)
            first = await feed.get_pulse("lisbon-portugal", "Lisbon")
            self.clock.now += 7 * 60 * 60
            stale = await feed.get_pulse("lisbon-portugal", "Lisbon")
            await self.context.drain()
            refreshed = await feed.get_pulse("lisbon-portugal", "Lisbon")

        self.assertEqual(stale, first)
        self.assertEqual(first[0]["title"], "Lisbon tram strike on Friday")
        self.assertEqual(refreshed[0]["title"], "Lisbon book fair returns")
        self.assertEqual(titles, [])

    async def test_missing_key_yields_empty_list(self):
        feed = CityPulseFeed("http://news.test/v2/everything", None, self.cache)
        self.assertEqual(await feed.get_pulse("lisbon-portugal", "Lisbon"), [])

    async def test_upstream_error_yields_empty_list(self):
        async with _client(lambda request: httpx.Response(500)) as client:
            feed = CityPulseFeed("http://news.test/v2/everything", "secret", self.cache, client=client)
            self.assertEqual(await feed.get_pulse("lisbon-portugal", "Lisbon"), [])


class TestVisaLookup(FeedTestCase):
    def setUp(self):
        super().setUp()
        self.coordinator = RateLimitBackoffCoordinator(self.kv, self.context, clock=self.clock)

    async def test_check_posts_form_and_normalizes(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={"data": {"visa_rules": {"primary_rule": {"name": "Visa free"}}, "registration": {"label": " Register ", "url": "https://reg.test"}}},
            )

        async with _client(handler) as client:
            visa = VisaLookup("visa.test", "k3y", self.coordinator, client=client)
            result = await visa.check(" us ", "fr")

        self.assertEqual(seen[0].method, "POST")
        self.assertEqual(str(seen[0].url), "https://visa.test/v2/visa/check")
        self.assertEqual(parse_qs(seen[0].content.decode()), {"passport": ["US"], "destination": ["FR"]})
        self.assertEqual(seen[0].headers["x-rapidapi-key"], "k3y")
        self.assertEqual(result["mandatory_registration"], {"text": "Register", "link": "https://reg.test", "color": "amber"})
        self.assertEqual(result["visa_rules"]["primary_rule"]["name"], "Visa free")

    async def test_invalid_codes_rejected(self):
        visa = VisaLookup("visa.test", "k3y", self.coordinator)
        with self.assertRaises(ValueError):
            await visa.check("U", "FR")
        with self.assertRaises(ValueError):
            await visa.check("US", "FR1")

    async def test_429_installs_cooldown_for_all_pairs(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, headers={"Retry-After": "120"})

        async with _client(handler) as client:
            visa = VisaLookup("visa.test", "k3y", self.coordinator, client=client)
            self.assertIsNone(await visa.check("US", "FR"))
            self.assertIsNone(await visa.check("GB", "JP"))

        self.assertEqual(len(calls), 1)
        self.assertAlmostEqual(self.coordinator.cooldown_remaining(), 120)

    def test_normalize_without_registration(self):
        self.assertIsNone(normalize_visa_payload({"visa_rules": {}})["mandatory_registration"])


if __name__ == "__main__":
    unittest.main()

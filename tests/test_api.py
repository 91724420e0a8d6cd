import unittest

import httpx
from fastapi.testclient import TestClient

from guide_sync.config import Settings
from guide_sync.data_sources.base import CallableResourceSource
from guide_sync.data_sources.seed import BundledSeedDataset
from guide_sync.errors import NetworkFailure
from guide_sync.guide_service import build_guide_service
from guide_sync.main import create_app
from guide_sync.storage.memory import InMemoryKeyValueStore, InMemoryLocalStore

SEED = BundledSeedDataset()


class TestApi(unittest.TestCase):
    def setUp(self):
        self.network_up = True
        self.visa_status = 200

        async def fetch(key):
            if not self.network_up or SEED.get(key) is None:
                raise NetworkFailure("unreachable")
            pack = SEED.get(key)
            pack["theme"] = "from-network"
            return pack

        def visa_handler(request):
            if self.visa_status == 429:
                return httpx.Response(429, headers={"Retry-After": "90"})
            return httpx.Response(200, json={"data": {"visa_rules": {"primary_rule": {"name": "Visa free"}}}})

        def news_handler(request):
            return httpx.Response(200, json={"articles": [{"title": "Lisbon festival weekend"}]})

        settings = Settings(
            store_backend="memory",
            fetch_timeout_seconds=0.5,
            sync_reset_seconds=0.05,
            news_api_key="news-key",
            visa_api_key="visa-key",
        )
        self.store = InMemoryLocalStore()
        self.service = build_guide_service(
            settings,
            store=self.store,
            kv=InMemoryKeyValueStore(),
            source=CallableResourceSource(fetch),
            seed=SEED,
        )
        self.service.visa._client = httpx.AsyncClient(transport=httpx.MockTransport(visa_handler))
        self.service.pulse._client = httpx.AsyncClient(transport=httpx.MockTransport(news_handler))
        self.service.environmental._client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(503))
        )
        self.app = create_app(service_factory=lambda: self.service)

    def test_list_guides(self):
        with TestClient(self.app) as client:
            resp = client.get("/v1/guides")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual([g["slug"] for g in body], SEED.keys())
        self.assertFalse(any(g["availableOffline"] for g in body))

    def test_get_guide_saves_offline_copy(self):
        with TestClient(self.app) as client:
            resp = client.get("/v1/guides/Lisbon-Portugal?utm_source=pwa")
            offline = client.get("/v1/offline").json()
            storage = client.get("/v1/storage").json()

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["key"], "lisbon-portugal")
        self.assertFalse(body["is_offline_copy"])
        self.assertEqual(body["payload"]["theme"], "from-network")
        self.assertEqual([g["key"] for g in offline], ["lisbon-portugal"])
        self.assertEqual(offline[0]["name"], "Lisbon")
        self.assertGreater(offline[0]["approx_bytes"], 0)
        self.assertEqual(storage["count"], 1)
        self.assertEqual(storage["bytes"], offline[0]["approx_bytes"])
        self.assertFalse(storage["connectivity"]["is_offline"])

    def test_unknown_guide_is_404(self):
        with TestClient(self.app) as client:
            resp = client.get("/v1/guides/atlantis-nowhere")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"]["code"], "SYNC_404")

    def test_sync_endpoint(self):
        with TestClient(self.app) as client:
            resp = client.post("/v1/guides/tokyo-japan/sync")
            state = client.get("/v1/guides/tokyo-japan/sync").json()
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["started"])
        self.assertEqual(body["status"], "success")
        self.assertFalse(body["is_offline_copy"])
        self.assertIsNotNone(body["last_synced_at"])
        self.assertIn(state["status"], ("success", "idle"))

    def test_sync_state_of_untouched_guide_is_idle(self):
        with TestClient(self.app) as client:
            resp = client.get("/v1/guides/Atlantis-Nowhere/sync")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["key"], "atlantis-nowhere")
        self.assertEqual(body["status"], "idle")
        self.assertFalse(body["started"])
        self.assertIsNone(body["last_synced_at"])
        self.assertEqual(self.service._controllers, {})

    def test_sync_of_unknown_guide_reports_error(self):
        with TestClient(self.app) as client:
            body = client.post("/v1/guides/atlantis-nowhere/sync").json()
        self.assertEqual(body["status"], "error")

    def test_delete_offline_copy_falls_back_to_seed(self):
        with TestClient(self.app) as client:
            client.get("/v1/guides/lisbon-portugal")
            self.assertTrue(self.store.is_available_offline("lisbon-portugal"))

            deleted = client.delete("/v1/offline/lisbon-portugal").json()
            self.assertTrue(deleted["removed"])
            self.assertEqual(deleted["storage"]["count"], 0)

            mode = client.put("/v1/debug/offline", json={"enabled": True}).json()
            self.assertTrue(mode["is_offline"])
            body = client.get("/v1/guides/lisbon-portugal").json()

        self.assertTrue(body["is_offline_copy"])
        self.assertEqual(body["payload"], SEED.get("lisbon-portugal"))

    def test_clear_offline(self):
        with TestClient(self.app) as client:
            client.get("/v1/guides/lisbon-portugal")
            client.get("/v1/guides/tokyo-japan")
            body = client.delete("/v1/offline").json()
        self.assertEqual(body["removed"], 2)
        self.assertEqual(self.store.get_all(), [])

    def test_visa_check(self):
        with TestClient(self.app) as client:
            ok = client.get("/v1/visa", params={"passport": "us", "destination": "fr"})
            bad = client.get("/v1/visa", params={"passport": "U", "destination": "FR"})
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.json()["visa_rules"]["primary_rule"]["name"], "Visa free")
        self.assertEqual(bad.status_code, 400)

    def test_visa_rate_limited(self):
        self.visa_status = 429
        with TestClient(self.app) as client:
            first = client.get("/v1/visa", params={"passport": "US", "destination": "FR"})
            second = client.get("/v1/visa", params={"passport": "GB", "destination": "JP"})
        self.assertEqual(first.status_code, 429)
        self.assertEqual(second.status_code, 429)
        self.assertLessEqual(int(second.headers["Retry-After"]), 90)

    def test_environmental_placeholder_when_unavailable(self):
        with TestClient(self.app) as client:
            body = client.get("/v1/vitals/environmental/lisbon-portugal").json()
        self.assertEqual(body["aqiCategory"], "Offline")
        self.assertEqual(body["cityLabel"], "Lisbon, Portugal")

    def test_pulse_uses_seed_city_name(self):
        with TestClient(self.app) as client:
            body = client.get("/v1/pulse/lisbon-portugal").json()
        self.assertEqual(body["city"], "Lisbon")
        self.assertEqual(body["items"][0]["type"], "event")

    def test_healthz(self):
        with TestClient(self.app) as client:
            self.assertEqual(client.get("/healthz").json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()

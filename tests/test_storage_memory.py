import unittest

from guide_sync.app_types import CacheRecord
from guide_sync.errors import StorageWriteError
from guide_sync.storage.base import estimate_size_bytes
from guide_sync.storage.memory import InMemoryKeyValueStore, InMemoryLocalStore


class _Clock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestInMemoryLocalStore(unittest.TestCase):
    def test_put_replaces_wholesale(self):
        clock = _Clock()
        store = InMemoryLocalStore(clock=clock)
        store.put("lisbon-portugal", {"a": 1, "b": 2})
        clock.now = 2_000.0
        store.put("lisbon-portugal", {"c": 3})
        record = store.get_record("lisbon-portugal")
        self.assertEqual(record.payload, {"c": 3})
        self.assertEqual(record.saved_at, 2_000.0)
        self.assertEqual(len(store.get_all()), 1)

    def test_payloads_are_isolated_from_callers(self):
        store = InMemoryLocalStore()
        payload = {"list": [1]}
        store.put("k", payload)
        payload["list"].append(2)
        fetched = store.get("k")
        fetched["list"].append(3)
        self.assertEqual(store.get("k"), {"list": [1]})

    def test_delete_and_clear(self):
        store = InMemoryLocalStore()
        store.put("a", {})
        store.put("b", {})
        store.delete("a")
        store.delete("missing")
        self.assertFalse(store.is_available_offline("a"))
        self.assertTrue(store.is_available_offline("b"))
        store.clear()
        self.assertEqual(store.get_all(), [])
        self.assertEqual(store.total_size().count, 0)

    def test_size_estimate_is_twice_the_json_length(self):
        record = CacheRecord(key="k", payload={"x": "y"}, saved_at=1.0)
        self.assertEqual(estimate_size_bytes(record), len('{"key": "k", "payload": {"x": "y"}, "savedAt": 1.0}') * 2)
        bad = CacheRecord(key="k", payload={"x": object()}, saved_at=1.0)
        self.assertEqual(estimate_size_bytes(bad), 0)

    def test_size_estimate_counts_non_ascii_characters_once(self):
        record = CacheRecord(key="tokyo-japan", payload={"name": "東京", "city": "São Paulo"}, saved_at=1.0)
        expected = '{"key": "tokyo-japan", "payload": {"name": "東京", "city": "São Paulo"}, "savedAt": 1.0}'
        self.assertEqual(estimate_size_bytes(record), len(expected) * 2)

    def test_total_size_and_quota(self):
        store = InMemoryLocalStore(max_bytes=10_000)
        store.put("a", {"x": 1})
        store.put("b", {"y": 2})
        size = store.total_size()
        self.assertEqual(size.count, 2)
        self.assertEqual(size.bytes, sum(estimate_size_bytes(r) for r in store.get_all()))
        quota = store.storage_quota()
        self.assertEqual(quota.used, size.bytes)
        self.assertEqual(quota.quota, 10_000)
        self.assertEqual(quota.usage_percent, round(size.bytes / 10_000 * 100))

    def test_quota_exhaustion_raises_and_keeps_old_record(self):
        store = InMemoryLocalStore(max_bytes=200)
        store.put("a", {"x": 1})
        with self.assertRaises(StorageWriteError):
            store.put("a", {"x": "y" * 500})
        self.assertEqual(store.get("a"), {"x": 1})

    def test_quota_unknown_without_budget(self):
        self.assertIsNone(InMemoryLocalStore().storage_quota())


class TestInMemoryKeyValueStore(unittest.TestCase):
    def test_roundtrip_and_prefix_listing(self):
        kv = InMemoryKeyValueStore()
        kv.set("pulse_data_lisbon", "1")
        kv.set("pulse_data_tokyo", "2")
        kv.set("env-impact-cache-v1-lisbon", "3")
        self.assertEqual(kv.get("pulse_data_lisbon"), "1")
        self.assertEqual(sorted(kv.keys("pulse_data_")), ["pulse_data_lisbon", "pulse_data_tokyo"])
        kv.delete("pulse_data_lisbon")
        self.assertIsNone(kv.get("pulse_data_lisbon"))

    def test_fail_writes(self):
        kv = InMemoryKeyValueStore()
        kv.fail_writes = True
        with self.assertRaises(StorageWriteError):
            kv.set("k", "v")


if __name__ == "__main__":
    unittest.main()

import unittest

from guide_sync.resource_keys import format_city_label, normalize_city_id, normalize_resource_key


class TestNormalizeResourceKey(unittest.TestCase):
    def test_strips_query_fragment_and_trailing_slash(self):
        self.assertEqual(normalize_resource_key("Lisbon-Portugal/?utm_source=pwa"), "lisbon-portugal")
        self.assertEqual(normalize_resource_key("tokyo-japan#top"), "tokyo-japan")
        self.assertEqual(normalize_resource_key("bangkok-thailand///"), "bangkok-thailand")

    def test_decodes_percent_escapes(self):
        self.assertEqual(normalize_resource_key("lisbon%2Dportugal%3Fx%3D1"), "lisbon-portugal")

    def test_empty_inputs(self):
        self.assertEqual(normalize_resource_key(None), "")
        self.assertEqual(normalize_resource_key(""), "")
        self.assertEqual(normalize_resource_key("?only=query"), "")
        self.assertEqual(normalize_resource_key("///"), "")


class TestCityHelpers(unittest.TestCase):
    def test_normalize_city_id(self):
        self.assertEqual(normalize_city_id("  Lisbon-Portugal "), "lisbon-portugal")
        self.assertEqual(normalize_city_id(None), "")

    def test_format_city_label(self):
        self.assertEqual(format_city_label("lisbon-portugal"), "Lisbon, Portugal")
        self.assertEqual(format_city_label("rio-de-janeiro-brazil"), "Rio De Janeiro, Brazil")
        self.assertEqual(format_city_label("tokyo"), "Tokyo")


if __name__ == "__main__":
    unittest.main()

"""
Tests for the JSON-backed favorites store.
"""

import json
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from utils.favorites import FavoritesStore


class TestFavoritesStore(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "assets" / "favorites.json"
        self.store = FavoritesStore(self.path)

    def test_missing_file_reads_empty(self):
        self.assertEqual(self.store.read(), [])

    def test_corrupt_file_reads_empty(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")
        self.assertEqual(self.store.read(), [])

    def test_wrong_shape_reads_empty(self):
        self.path.parent.mkdir(parents=True)
        for content in ('{"a": 1}', '[1, 2]', '"cat.png"'):
            with self.subTest(content=content):
                self.path.write_text(content, encoding="utf-8")
                self.assertEqual(self.store.read(), [])

    def test_toggle_adds_then_removes(self):
        self.assertTrue(self.store.toggle("cat.png"))
        self.assertEqual(self.store.read(), ["cat.png"])
        self.assertFalse(self.store.toggle("cat.png"))
        self.assertEqual(self.store.read(), [])

    def test_toggle_twice_restores_file_contents(self):
        self.store.write(["a.png", "b.gif"])
        before = json.loads(self.path.read_text(encoding="utf-8"))
        self.store.toggle("c.jpg")
        self.store.toggle("c.jpg")
        after = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(before, after)

    def test_toggle_appends_in_order(self):
        for name in ("b.png", "a.png", "c.png"):
            self.store.toggle(name)
        self.assertEqual(self.store.read(), ["b.png", "a.png", "c.png"])

    def test_toggle_removes_all_duplicates(self):
        self.store.write(["a.png", "x.png", "a.png"])
        self.assertFalse(self.store.toggle("a.png"))
        self.assertEqual(self.store.read(), ["x.png"])

    def test_exact_match_only(self):
        self.store.write(["Cat.png"])
        self.assertTrue(self.store.toggle("cat.png"))
        self.assertEqual(self.store.read(), ["Cat.png", "cat.png"])

    def test_write_failure_propagates_and_cleans_up(self):
        self.store.write(["keep.png"])
        with patch("utils.favorites.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                self.store.write(["new.png"])
        self.assertEqual(self.store.read(), ["keep.png"])
        self.assertFalse(Path(str(self.path) + ".tmp").exists())

    def test_concurrent_toggles_do_not_lose_updates(self):
        names = [f"{i}.png" for i in range(20)]
        threads = [threading.Thread(target=self.store.toggle, args=(n,)) for n in names]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(sorted(self.store.read()), sorted(names))


if __name__ == "__main__":
    unittest.main()

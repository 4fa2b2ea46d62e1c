import json
import tempfile
import unittest
from pathlib import Path

from freshtrack.config import DATA_DIR
from freshtrack.storage import UNKNOWN_ITEM, StorageAdviceTable, normalize_key, split_freshness


class TestStorageAdviceTable(unittest.TestCase):
    def setUp(self) -> None:
        self.table = StorageAdviceTable(
            {
                "apple": {"storage": "fridge", "shelf_life": "4 weeks"},
                "Bell Pepper": {"storage": "crisper", "shelf_life": "1 week"},
            }
        )

    def test_normalize_key(self) -> None:
        self.assertEqual(normalize_key("  Bell Pepper "), "bell_pepper")
        self.assertEqual(normalize_key("Rotten-Apple"), "rotten_apple")

    def test_split_freshness(self) -> None:
        self.assertEqual(split_freshness("Rotten_Apple"), ("rotten", "apple"))
        self.assertEqual(split_freshness("Fresh_Bell_Pepper"), ("fresh", "bell_pepper"))
        self.assertEqual(split_freshness("apple"), (None, "apple"))
        self.assertEqual(split_freshness("fresh"), (None, "fresh"))

    def test_find(self) -> None:
        self.assertEqual(self.table.find("APPLE")["storage"], "fridge")
        self.assertEqual(self.table.find("Fresh_Apple")["storage"], "fridge")
        self.assertEqual(self.table.find("bell pepper")["storage"], "crisper")
        self.assertIsNone(self.table.find("durian"))
        self.assertIn("apple", self.table)
        self.assertNotIn("durian", self.table)

    def test_lookup_known_label(self) -> None:
        record = self.table.lookup("Rotten_Apple")
        self.assertEqual(record["storage"], "fridge")
        self.assertEqual(record["item"], "apple")
        self.assertEqual(record["freshness"], "rotten")
        self.assertTrue(record["known"])

    def test_lookup_unknown_label_falls_back(self) -> None:
        record = self.table.lookup("Unknown_99")
        self.assertIsNotNone(record)
        self.assertFalse(record["known"])
        for key, value in UNKNOWN_ITEM.items():
            self.assertEqual(record[key], value)
        self.assertEqual(record["item"], "unknown_99")
        self.assertIsNone(record["freshness"])

    def test_returned_records_are_copies(self) -> None:
        record = self.table.lookup("apple")
        record["storage"] = "changed"
        self.assertEqual(self.table.find("apple")["storage"], "fridge")
        self.table.lookup("durian")["storage"] = "changed"
        self.assertNotEqual(UNKNOWN_ITEM["storage"], "changed")

    def test_from_json_errors(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            bad = Path(d) / "bad.json"
            bad.write_text("[1, 2]", encoding="utf-8")
            with self.assertRaises(ValueError):
                StorageAdviceTable.from_json(bad)
            broken = Path(d) / "broken.json"
            broken.write_text("{", encoding="utf-8")
            with self.assertRaises(ValueError):
                StorageAdviceTable.from_json(broken)
        with self.assertRaises(FileNotFoundError):
            StorageAdviceTable.from_json("/nonexistent/storage.json")

    def test_bundled_data_covers_label_table(self) -> None:
        table = StorageAdviceTable.from_json(DATA_DIR / "storage_data.json")
        raw = json.loads((DATA_DIR / "storage_data.json").read_text(encoding="utf-8"))
        self.assertEqual(len(table), len(raw))
        for line in (DATA_DIR / "metadata.yaml").read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if ":" in line and line.split(":", 1)[0].isdigit():
                label = line.split(":", 1)[1].strip()
                self.assertTrue(table.lookup(label)["known"], label)


if __name__ == "__main__":
    unittest.main()

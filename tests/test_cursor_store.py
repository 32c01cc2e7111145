"""Test the persisted sequential cursor."""

import tempfile
from pathlib import Path
from unittest import TestCase

from autosend.cursor_store import FileCursorStore, MemoryCursorStore


class TestFileCursorStore(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "cursor.txt"
        self.store = FileCursorStore(self.path)

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_file_starts_at_zero(self):
        self.assertEqual(self.store.load(), 0)

    def test_unusable_content_starts_at_zero(self):
        for text in ["", "abc", "1.5", "-3", "12 13"]:
            with self.subTest(text=text):
                self.path.write_text(text)
                self.assertEqual(self.store.load(), 0)

    def test_tolerates_whitespace(self):
        self.path.write_text("  42\n")
        self.assertEqual(self.store.load(), 42)

    def test_save_then_load(self):
        self.store.save(17)
        self.assertEqual(self.path.read_text(), "17\n")
        self.assertEqual(FileCursorStore(self.path).load(), 17)
        self.store.save(0)
        self.assertEqual(self.store.load(), 0)
        self.assertFalse(self.path.with_name("cursor.txt.tmp").exists())

    def test_creates_parent_directory(self):
        store = FileCursorStore(Path(self._tmp.name) / "state" / "cursor.txt")
        store.save(3)
        self.assertEqual(store.load(), 3)

    def test_rejects_negative(self):
        with self.assertRaises(ValueError):
            self.store.save(-1)


class TestMemoryCursorStore(TestCase):
    def test_records_saves(self):
        store = MemoryCursorStore(5)
        self.assertEqual(store.load(), 5)
        store.save(2)
        store.save(4)
        self.assertEqual(store.load(), 4)
        self.assertEqual(store.saves, [2, 4])

"""
Unit tests for organizer-mapping stores.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import requests

from orgnet.analysis.mapping_store import (
    FileMappingStore,
    HttpMappingStore,
    InMemoryMappingStore,
    OrganizerMapping,
    create_mapping_store,
)
from orgnet.errors import StoreError


class TestOrganizerMapping(unittest.TestCase):
    """Test record validation and the wire format."""

    def test_accepts_dashboard_column_names(self):
        mapping = OrganizerMapping.model_validate({
            "primary_vanid": 101,
            "preferred_name": "Leo Hassan",
            "alternate_vanids": ["202", "202", " 303 ", ""],
            "name_variations": "Lutfi",
            "created_at": {"value": "2025-01-01T00:00:00"},
        })
        self.assertEqual(mapping.primary_id, "101")
        self.assertEqual(mapping.alternate_ids, ["202", "303"])
        self.assertEqual(mapping.name_variants, ["Lutfi"])
        self.assertEqual(mapping.created_at, "2025-01-01T00:00:00")

    def test_primary_id_removed_from_aliases(self):
        mapping = OrganizerMapping(primary_id="101", alternate_ids=["101", "202"])
        self.assertEqual(mapping.alternate_ids, ["202"])

    def test_blank_primary_id_rejected(self):
        with self.assertRaises(ValueError):
            OrganizerMapping(primary_id="  ")

    def test_to_wire(self):
        wire = OrganizerMapping(primary_id="1", preferred_name="Ana", merged_from_ids=["2"]).to_wire()
        self.assertEqual(wire["primary_vanid"], "1")
        self.assertEqual(wire["merged_from_vanids"], ["2"])


class TestFileMappingStore(unittest.TestCase):
    """Test the locked JSON file store."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.test_file = Path(self.temp_dir) / "mappings.json"

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_creates_empty_file(self):
        FileMappingStore(self.test_file)
        with open(self.test_file) as f:
            data = json.load(f)
        self.assertEqual(data, {"version": 1, "mappings": []})

    def test_upsert_replace_and_delete(self):
        store = FileMappingStore(self.test_file)
        store.upsert(OrganizerMapping(primary_id="1", preferred_name="Ana"))
        store.upsert(OrganizerMapping(primary_id="2", preferred_name="Ben"))
        store.upsert(OrganizerMapping(primary_id="1", preferred_name="Ana Ruiz"))

        reopened = FileMappingStore(self.test_file)
        names = {m.primary_id: m.preferred_name for m in reopened.list_mappings()}
        self.assertEqual(names, {"1": "Ana Ruiz", "2": "Ben"})

        reopened.delete("2")
        reopened.delete("missing")
        self.assertEqual([m.primary_id for m in store.list_mappings()], ["1"])

    def test_lock_released_after_update(self):
        store = FileMappingStore(self.test_file)
        store.upsert(OrganizerMapping(primary_id="1", preferred_name="Ana"))
        self.assertFalse(self.test_file.with_suffix(".lock").exists())

    def test_corrupt_file_raises(self):
        store = FileMappingStore(self.test_file)
        self.test_file.write_text("{not json")
        with self.assertRaises(StoreError):
            store.list_mappings()

    def test_unexpected_layout_raises(self):
        store = FileMappingStore(self.test_file)
        self.test_file.write_text(json.dumps([{"primary_id": "1"}]))
        with self.assertRaises(StoreError):
            store.upsert(OrganizerMapping(primary_id="2"))


class TestHttpMappingStore(unittest.TestCase):
    """Test the remote store against a mocked requests session."""

    def setUp(self):
        self.session = MagicMock()
        self.store = HttpMappingStore("http://dash.local/api/", timeout=3, session=self.session)

    def _response(self, payload=None):
        resp = MagicMock()
        resp.json.return_value = payload
        resp.raise_for_status.return_value = None
        return resp

    def test_list_mappings(self):
        self.session.request.return_value = self._response([
            {"primary_vanid": "1", "preferred_name": "Ana", "alternate_vanids": ["9"]},
            {"preferred_name": "no id"},
        ])
        mappings = self.store.list_mappings()
        self.session.request.assert_called_once_with("GET", "http://dash.local/api/organizer-mapping", timeout=3)
        self.assertEqual([m.primary_id for m in mappings], ["1"])
        self.assertEqual(mappings[0].alternate_ids, ["9"])

    def test_list_accepts_wrapped_payload(self):
        self.session.request.return_value = self._response({"mappings": [{"primary_vanid": "1"}]})
        self.assertEqual(len(self.store.list_mappings()), 1)

    def test_upsert_posts_wire_row(self):
        self.session.request.return_value = self._response({"success": True})
        self.store.upsert(OrganizerMapping(primary_id="1", preferred_name="Ana"))
        method, url = self.session.request.call_args.args
        self.assertEqual((method, url), ("POST", "http://dash.local/api/organizer-mapping"))
        self.assertEqual(self.session.request.call_args.kwargs["json"]["primary_vanid"], "1")

    def test_delete(self):
        self.session.request.return_value = self._response()
        self.store.delete("1")
        self.session.request.assert_called_once_with("DELETE", "http://dash.local/api/organizer-mapping/1", timeout=3)

    def test_http_error_becomes_store_error(self):
        resp = self._response()
        resp.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        self.session.request.return_value = resp
        with self.assertRaises(StoreError):
            self.store.list_mappings()

    def test_connection_error_becomes_store_error(self):
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(StoreError):
            self.store.delete("1")


class TestCreateMappingStore(unittest.TestCase):

    def test_default_is_memory(self):
        self.assertIsInstance(create_mapping_store({}), InMemoryMappingStore)

    def test_file_store(self):
        temp_dir = tempfile.mkdtemp()
        try:
            store = create_mapping_store({"mapping_store": {"type": "file", "path": f"{temp_dir}/m.json"}})
            self.assertIsInstance(store, FileMappingStore)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    def test_http_store(self):
        store = create_mapping_store({"mapping_store": {"type": "http", "url": "http://x/api", "timeout": 2}})
        self.assertIsInstance(store, HttpMappingStore)
        self.assertEqual(store.timeout, 2.0)

    def test_bad_config(self):
        with self.assertRaises(StoreError):
            create_mapping_store({"mapping_store": {"type": "redis"}})
        with self.assertRaises(StoreError):
            create_mapping_store({"mapping_store": {"type": "file"}})
        with self.assertRaises(StoreError):
            create_mapping_store({"mapping_store": {"type": "http"}})


if __name__ == "__main__":
    unittest.main()

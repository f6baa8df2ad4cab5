"""
Tests for IdentityResolver lookups and mapping mutations.
"""

import pytest

from orgnet.analysis.identity import IdentityResolver
from orgnet.analysis.mapping_store import InMemoryMappingStore, OrganizerMapping
from orgnet.errors import NotFoundError, StoreError


class FailingStore(InMemoryMappingStore):
    """Accepts reads, rejects every write."""

    def upsert(self, mapping):
        raise StoreError("backend unavailable")

    def delete(self, primary_id):
        raise StoreError("backend unavailable")


class TestResolve:

    def test_lookup_by_each_field(self, resolver):
        assert resolver.canonical_id("1") == "1"
        assert resolver.canonical_id("1001") == "1"
        assert resolver.canonical_id("alice smith") == "1"
        assert resolver.canonical_id("  ALI SMITH ") == "1"

    def test_unknown_and_blank_tokens(self, resolver):
        assert resolver.resolve("nobody") is None
        assert resolver.resolve("") is None
        assert resolver.resolve(None) is None

    def test_numeric_tokens(self, resolver):
        assert resolver.canonical_id(1001) == "1"

    def test_primary_id_beats_alias_on_another_record(self):
        # "42" is an alias of A but the primary id of B; B must win regardless of order
        a = OrganizerMapping(primary_id="A", preferred_name="Alpha", alternate_ids=["42"])
        b = OrganizerMapping(primary_id="42", preferred_name="Beta")
        for rows in ([a, b], [b, a]):
            resolver = IdentityResolver(InMemoryMappingStore(rows))
            assert resolver.canonical_id("42") == "42"

    def test_canonical_name_fallbacks(self, resolver):
        assert resolver.canonical_name("1001") == "Alice Smith"
        assert resolver.canonical_name("777", "Raw Name") == "Raw Name"
        assert resolver.canonical_name("777") == "777"


class TestAddVariant:

    def test_adds_alternate_id(self, resolver, store):
        mapping = resolver.add_variant("1", "2002", is_id=True)
        assert mapping.alternate_ids == ["1001", "2002"]
        assert resolver.canonical_id("2002") == "1"
        assert [m.alternate_ids for m in store.list_mappings()] == [["1001", "2002"]]

    def test_idempotent(self, resolver):
        resolver.add_variant("1", "Allie", is_id=False)
        again = resolver.add_variant("1", "ALLIE", is_id=False)
        assert again.name_variants == ["Ali Smith", "Allie"]

    def test_primary_id_is_not_its_own_alias(self, resolver):
        mapping = resolver.add_variant("1", "1", is_id=True)
        assert mapping.alternate_ids == ["1001"]

    def test_creates_missing_mapping(self, resolver):
        mapping = resolver.add_variant("50", "5050", is_id=True, preferred_name="Maria Diaz")
        assert mapping.preferred_name == "Maria Diaz"
        assert mapping.alternate_ids == ["5050"]
        assert mapping.notes == "Automatically created when mapping 5050"
        assert mapping.created_at is not None
        assert resolver.canonical_id("5050") == "50"


class TestMerge:

    @pytest.fixture
    def resolver(self):
        return IdentityResolver(InMemoryMappingStore([
            OrganizerMapping(primary_id="alice", preferred_name="Alice", alternate_ids=["a-1"], chapter="Durham"),
            OrganizerMapping(primary_id="ali", preferred_name="Ali", name_variants=["Al"], email="ali@example.org",
                             chapter="Wake"),
        ]))

    def test_merge_folds_aliases(self, resolver):
        merged = resolver.merge("alice", "ali")
        assert merged.alternate_ids == ["a-1", "ali"]
        assert merged.name_variants == ["Ali", "Al"]
        assert merged.merged_from_ids == ["ali"]
        assert merged.email == "ali@example.org"
        # Primary keeps its own details
        assert merged.chapter == "Durham"
        assert merged.merge_date is not None
        assert merged.notes.startswith("Merged ali on ")
        assert resolver.get("ali") is None
        assert [m.primary_id for m in resolver.store.list_mappings()] == ["alice"]
        assert resolver.canonical_id("ali") == "alice"
        assert resolver.canonical_id("al") == "alice"

    def test_merge_missing_record(self, resolver):
        before = [m.model_dump() for m in resolver.mappings]
        with pytest.raises(NotFoundError) as exc_info:
            resolver.merge("alice", "zed")
        assert exc_info.value.identifier == "zed"
        assert [m.model_dump() for m in resolver.mappings] == before

    def test_merge_with_itself(self, resolver):
        assert resolver.merge("alice", "alice").alternate_ids == ["a-1"]


class TestStoreFailures:

    def test_failed_write_leaves_cache_untouched(self):
        resolver = IdentityResolver(FailingStore([OrganizerMapping(primary_id="1", preferred_name="Alice")]))
        with pytest.raises(StoreError):
            resolver.add_variant("1", "1001", is_id=True)
        assert resolver.get("1").alternate_ids == []
        assert resolver.resolve("1001") is None

    def test_failed_delete_keeps_record(self):
        resolver = IdentityResolver(FailingStore([OrganizerMapping(primary_id="1", preferred_name="Alice")]))
        with pytest.raises(StoreError):
            resolver.delete("1")
        assert resolver.get("1") is not None

    def test_delete_unknown(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.delete("missing")


def test_upsert_keeps_created_at(resolver):
    first = resolver.upsert(OrganizerMapping(primary_id="9", preferred_name="Nia"))
    second = resolver.upsert(OrganizerMapping(primary_id="9", preferred_name="Nia Park"))
    assert second.created_at == first.created_at
    assert resolver.get("9").preferred_name == "Nia Park"


def test_create_pending(resolver):
    first = resolver.create_pending("  Rosa Park ", chapter="Durham", source="intake")
    second = resolver.create_pending("Sam Lee")
    assert first.startswith("pending_")
    assert first != second
    mapping = resolver.get(first)
    assert mapping.preferred_name == "Rosa Park"
    assert mapping.in_van is False
    assert mapping.sync_status == "pending_sync"
    assert mapping.person_type == "constituent"
    assert mapping.source == "intake"

"""Identity resolution against the organizer-mapping store."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from orgnet.analysis.mapping_store import MappingStore, OrganizerMapping
from orgnet.errors import NotFoundError

logger = logging.getLogger(__name__)


def _norm(token) -> str:
    return "" if token is None else str(token).strip().lower()


class IdentityResolver:
    """Resolves raw ids and name spellings to canonical organizer mappings.

    Holds an in-memory copy of the store's mappings. Every mutation is
    written to the store first; the in-memory list only changes once the
    store call returned, so a failed write leaves both sides untouched.
    """

    def __init__(self, store: MappingStore):
        self.store = store
        self._mappings: list[OrganizerMapping] = []
        self.refresh()

    def refresh(self) -> list[OrganizerMapping]:
        self._mappings = list(self.store.list_mappings())
        logger.debug("Loaded %d organizer mappings", len(self._mappings))
        return self.mappings

    @property
    def mappings(self) -> list[OrganizerMapping]:
        return list(self._mappings)

    def get(self, primary_id: str) -> OrganizerMapping | None:
        for m in self._mappings:
            if m.primary_id == primary_id:
                return m
        return None

    def resolve(self, token) -> OrganizerMapping | None:
        """Find the mapping a token refers to.

        Matching is exact after trimming and lower-casing. Fields are checked
        in priority order (primary id, alternate ids, preferred name, name
        variants) across all mappings, so a primary-id hit always beats an
        alias hit on some other mapping.
        """
        needle = _norm(token)
        if not needle:
            return None
        for m in self._mappings:
            if _norm(m.primary_id) == needle:
                return m
        for m in self._mappings:
            if any(_norm(a) == needle for a in m.alternate_ids):
                return m
        for m in self._mappings:
            if _norm(m.preferred_name) == needle:
                return m
        for m in self._mappings:
            if any(_norm(n) == needle for n in m.name_variants):
                return m
        return None

    def canonical_id(self, token) -> str | None:
        mapping = self.resolve(token)
        return mapping.primary_id if mapping else None

    def canonical_name(self, token, fallback: str | None = None) -> str:
        mapping = self.resolve(token)
        if mapping and mapping.preferred_name:
            return mapping.preferred_name
        if fallback:
            return fallback
        return "" if token is None else str(token)

    def _commit(self, mapping: OrganizerMapping) -> OrganizerMapping:
        self.store.upsert(mapping)
        for i, existing in enumerate(self._mappings):
            if existing.primary_id == mapping.primary_id:
                self._mappings[i] = mapping
                break
        else:
            self._mappings.append(mapping)
        return mapping

    def upsert(self, mapping: OrganizerMapping) -> OrganizerMapping:
        mapping = mapping.model_copy(update={"updated_at": _now()})
        if mapping.created_at is None:
            existing = self.get(mapping.primary_id)
            mapping.created_at = existing.created_at if existing and existing.created_at else mapping.updated_at
        return self._commit(mapping)

    def delete(self, primary_id: str) -> None:
        if self.get(primary_id) is None:
            raise NotFoundError(primary_id)
        self.store.delete(primary_id)
        self._mappings = [m for m in self._mappings if m.primary_id != primary_id]

    def add_variant(
        self, primary_id: str, token: str, is_id: bool, preferred_name: str | None = None
    ) -> OrganizerMapping:
        """Record ``token`` as an alternate id or name spelling of ``primary_id``.

        Creates the mapping when missing. Adding a token that is already
        present (case-insensitive) or equals the primary id changes nothing.
        """
        token = str(token).strip()
        existing = self.get(primary_id)
        if existing is None:
            now = _now()
            mapping = OrganizerMapping(
                primary_id=primary_id,
                preferred_name=preferred_name or primary_id,
                notes=f"Automatically created when mapping {token}",
                created_at=now,
                updated_at=now,
            )
        else:
            mapping = existing.model_copy(deep=True)

        if not token or _norm(token) == _norm(primary_id):
            return self._commit(mapping) if existing is None else existing

        field_values = mapping.alternate_ids if is_id else mapping.name_variants
        if any(_norm(v) == _norm(token) for v in field_values):
            return self._commit(mapping) if existing is None else existing

        field_values.append(token)
        mapping.updated_at = _now()
        logger.info("Added %s '%s' to %s", "alternate id" if is_id else "name variant", token, primary_id)
        return self._commit(mapping)

    def merge(self, primary_id: str, merge_id: str) -> OrganizerMapping:
        """Fold ``merge_id`` into ``primary_id`` and delete the merged record.

        Not commutative: the primary keeps its preferred name and contact
        details; the merged record's id and names become aliases.
        """
        primary = self.get(primary_id)
        other = self.get(merge_id)
        if primary is None:
            raise NotFoundError(primary_id)
        if other is None:
            raise NotFoundError(merge_id)
        if primary_id == merge_id:
            return primary

        merged = primary.model_copy(deep=True)
        merged.alternate_ids = _union(merged.alternate_ids, [merge_id], other.alternate_ids)
        merged.name_variants = _union(merged.name_variants, [other.preferred_name], other.name_variants)
        merged.merged_from_ids = _union(merged.merged_from_ids, [merge_id], other.merged_from_ids)
        for attr in ("email", "phone", "chapter", "turf", "team_role"):
            if not getattr(merged, attr) and getattr(other, attr):
                setattr(merged, attr, getattr(other, attr))
        stamp = _now()
        merged.merge_date = stamp
        merged.updated_at = stamp
        note = f"Merged {merge_id} on {stamp}"
        merged.notes = f"{merged.notes}\n{note}" if merged.notes else note
        # Re-run validation so the primary id is never kept as its own alias
        merged = OrganizerMapping.model_validate(merged.model_dump())

        self._commit(merged)
        self.store.delete(merge_id)
        self._mappings = [m for m in self._mappings if m.primary_id != merge_id]
        logger.info("Merged %s into %s", merge_id, primary_id)
        return merged

    def create_pending(
        self,
        name: str,
        person_type: str = "constituent",
        source: str | None = None,
        source_id: str | None = None,
        chapter: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> str:
        """Register a person who is not in the voter file yet; returns the new id."""
        stamp_ms = int(time.time() * 1000)
        new_id = f"pending_{stamp_ms}"
        while self.get(new_id) is not None:
            stamp_ms += 1
            new_id = f"pending_{stamp_ms}"
        now = _now()
        mapping = OrganizerMapping(
            primary_id=new_id,
            preferred_name=name.strip(),
            person_type=person_type,
            in_van=False,
            sync_status="pending_sync",
            source=source,
            source_id=source_id,
            chapter=chapter,
            email=email,
            phone=phone,
            created_at=now,
            updated_at=now,
        )
        self._commit(mapping)
        return new_id


def _union(*groups) -> list[str]:
    seen: set[str] = set()
    out = []
    for group in groups:
        for value in group or ():
            if value and _norm(value) not in seen:
                seen.add(_norm(value))
                out.append(value)
    return out


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

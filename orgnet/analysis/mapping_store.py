"""
Organizer-mapping persistence.

A mapping ties one canonical person (``primary_id``) to the alternate ids
and spellings that appear in rosters and meeting logs. Stores expose the
three-call protocol used by the dashboard backend: list, upsert, delete.
"""

from __future__ import annotations

import json
import logging
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import portalocker
import requests
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from orgnet.errors import StoreError

logger = logging.getLogger(__name__)


def _clean_list(values) -> list[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    seen: set[str] = set()
    out = []
    for v in values:
        text = str(v).strip()
        if text and text.lower() not in seen:
            seen.add(text.lower())
            out.append(text)
    return out


class OrganizerMapping(BaseModel):
    """Canonical person record with its known aliases."""
    model_config = {"extra": "ignore", "populate_by_name": True}

    primary_id: str = Field(..., validation_alias=AliasChoices("primary_id", "primary_vanid"))
    preferred_name: str = ""
    alternate_ids: list[str] = Field(default_factory=list, validation_alias=AliasChoices("alternate_ids", "alternate_vanids"))
    name_variants: list[str] = Field(default_factory=list, validation_alias=AliasChoices("name_variants", "name_variations"))
    merged_from_ids: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("merged_from_ids", "merged_from_vanids")
    )
    chapter: str | None = None
    email: str | None = None
    phone: str | None = None
    notes: str | None = None
    person_type: str | None = None
    in_van: bool | None = None
    sync_status: str | None = Field(None, validation_alias=AliasChoices("sync_status", "van_sync_status"))
    source: str | None = None
    source_id: str | None = None
    turf: str | None = None
    team_role: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    merge_date: str | None = None

    @field_validator("primary_id", mode="before")
    @classmethod
    def _coerce_primary(cls, v):
        text = "" if v is None else str(v).strip()
        if not text:
            raise ValueError("primary_id is required")
        return text

    @field_validator("alternate_ids", "name_variants", "merged_from_ids", mode="before")
    @classmethod
    def _coerce_lists(cls, v):
        return _clean_list(v)

    @field_validator("created_at", "updated_at", "merge_date", mode="before")
    @classmethod
    def _coerce_timestamps(cls, v):
        if isinstance(v, dict):
            v = v.get("value")
        return None if v is None else str(v)

    @model_validator(mode="after")
    def _primary_not_an_alias(self):
        primary = self.primary_id.lower()
        self.alternate_ids = [a for a in self.alternate_ids if a.lower() != primary]
        self.name_variants = [n for n in self.name_variants if n.lower() != primary]
        return self

    def to_wire(self) -> dict[str, Any]:
        """Full row for the /organizer-mapping endpoints, with the dashboard column names added."""
        row = self.model_dump()
        row.update({
            "primary_vanid": self.primary_id,
            "alternate_vanids": list(self.alternate_ids),
            "name_variations": list(self.name_variants),
            "merged_from_vanids": list(self.merged_from_ids),
            "van_sync_status": self.sync_status,
        })
        return row


class MappingStore(ABC):
    """list/upsert/delete over organizer mappings. Failures raise StoreError."""

    @abstractmethod
    def list_mappings(self) -> list[OrganizerMapping]:
        pass

    @abstractmethod
    def upsert(self, mapping: OrganizerMapping) -> OrganizerMapping:
        pass

    @abstractmethod
    def delete(self, primary_id: str) -> None:
        pass


class InMemoryMappingStore(MappingStore):
    """Process-local store, used for tests and one-shot CLI runs."""

    def __init__(self, mappings: list[OrganizerMapping] | None = None):
        self._rows: dict[str, OrganizerMapping] = {}
        for m in mappings or []:
            self._rows[m.primary_id] = m.model_copy(deep=True)

    def list_mappings(self) -> list[OrganizerMapping]:
        return [m.model_copy(deep=True) for m in self._rows.values()]

    def upsert(self, mapping: OrganizerMapping) -> OrganizerMapping:
        self._rows[mapping.primary_id] = mapping.model_copy(deep=True)
        return mapping

    def delete(self, primary_id: str) -> None:
        self._rows.pop(primary_id, None)


class FileMappingStore(MappingStore):
    """JSON file store with process-safe locking and atomic replace."""

    _locks_registry: dict[str, threading.RLock] = {}
    _locks_registry_guard = threading.Lock()

    def __init__(self, file_path: Path, lock_timeout: float = 10.0):
        self.file_path = Path(file_path)
        self.lock_path = self.file_path.with_suffix(".lock")
        self.lock_timeout = lock_timeout
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._thread_lock = self._get_thread_lock(self.file_path)
        if not self.file_path.exists():
            self._save_data(self._get_empty_data())

    def _get_empty_data(self) -> dict:
        return {"version": 1, "mappings": []}

    def _acquire_lock(self) -> Any:
        start_time = time.time()
        lock_file = open(self.lock_path, "w")
        while True:
            try:
                portalocker.lock(lock_file, portalocker.LOCK_EX | portalocker.LOCK_NB)
                return lock_file
            except (OSError, portalocker.exceptions.LockException) as exc:
                if time.time() - start_time > self.lock_timeout:
                    lock_file.close()
                    raise StoreError(f"Lock timeout: {self.file_path}") from exc
                time.sleep(0.05)

    def _release_lock(self, lock_file: Any):
        try:
            portalocker.unlock(lock_file)
        finally:
            lock_file.close()
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass

    def _load_data(self) -> dict:
        try:
            with open(self.file_path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return self._get_empty_data()
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Cannot read mapping store {self.file_path}: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("mappings"), list):
            raise StoreError(f"Unexpected mapping store layout in {self.file_path}")
        return data

    def _save_data(self, data: dict):
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=str(self.file_path.parent), prefix=self.file_path.stem + ".", suffix=".tmp", delete=False
            ) as tf:
                json.dump(data, tf, indent=2, default=str)
                tmp_name = Path(tf.name)
            tmp_name.replace(self.file_path)
        except OSError as exc:
            raise StoreError(f"Cannot write mapping store {self.file_path}: {exc}") from exc

    def update_atomic(self, update_func) -> Any:
        """Read, update and write under the file lock; update_func returns (data|None, result)."""
        with self._thread_lock:
            lock = self._acquire_lock()
            try:
                data = self._load_data()
                updated_data, result = update_func(data)
                if updated_data is not None:
                    self._save_data(updated_data)
                return result
            finally:
                self._release_lock(lock)

    @classmethod
    def _get_thread_lock(cls, file_path: Path) -> threading.RLock:
        key = str(Path(file_path).resolve())
        with cls._locks_registry_guard:
            lk = cls._locks_registry.get(key)
            if lk is None:
                lk = threading.RLock()
                cls._locks_registry[key] = lk
            return lk

    def list_mappings(self) -> list[OrganizerMapping]:
        with self._thread_lock:
            rows = self._load_data()["mappings"]
        return [OrganizerMapping.model_validate(r) for r in rows]

    def upsert(self, mapping: OrganizerMapping) -> OrganizerMapping:
        row = mapping.model_dump()

        def _upsert(data):
            rows = data["mappings"]
            for i, existing in enumerate(rows):
                if existing.get("primary_id") == mapping.primary_id:
                    rows[i] = row
                    break
            else:
                rows.append(row)
            return data, mapping

        return self.update_atomic(_upsert)

    def delete(self, primary_id: str) -> None:
        def _delete(data):
            before = len(data["mappings"])
            data["mappings"] = [r for r in data["mappings"] if r.get("primary_id") != primary_id]
            return (data if len(data["mappings"]) != before else None), None

        self.update_atomic(_delete)


class HttpMappingStore(MappingStore):
    """Client for a remote dashboard backend exposing /organizer-mapping."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise StoreError(f"{method} {url} failed: {exc}") from exc
        return resp

    def list_mappings(self) -> list[OrganizerMapping]:
        payload = self._request("GET", "/organizer-mapping").json()
        if isinstance(payload, dict):
            payload = payload.get("mappings") or payload.get("data") or []
        mappings = []
        for row in payload:
            try:
                mappings.append(OrganizerMapping.model_validate(row))
            except ValueError as exc:
                logger.debug("Skipping remote mapping %r: %s", row, exc)
        return mappings

    def upsert(self, mapping: OrganizerMapping) -> OrganizerMapping:
        self._request("POST", "/organizer-mapping", json=mapping.to_wire())
        return mapping

    def delete(self, primary_id: str) -> None:
        self._request("DELETE", f"/organizer-mapping/{primary_id}")


def create_mapping_store(config: dict[str, Any] | None = None) -> MappingStore:
    """Build the store described by the ``mapping_store`` config section."""
    section = (config or {}).get("mapping_store") or {}
    kind = str(section.get("type", "memory")).lower()
    if kind == "memory":
        return InMemoryMappingStore()
    if kind == "file":
        path = section.get("path")
        if not path:
            raise StoreError("mapping_store.path is required for the file store")
        return FileMappingStore(Path(path).expanduser(), lock_timeout=float(section.get("lock_timeout", 10.0)))
    if kind == "http":
        url = section.get("url")
        if not url:
            raise StoreError("mapping_store.url is required for the http store")
        return HttpMappingStore(url, timeout=float(section.get("timeout", 10.0)))
    raise StoreError(f"Unknown mapping_store.type '{kind}' (expected memory, file or http)")

"""Catalog store: ordered reference lists persisted as whole documents per key."""
from __future__ import annotations

import json
import os
from copy import deepcopy
from typing import Any, Dict, List, Mapping, Optional

from flask import Flask, current_app

from extensions import db
from models import CATALOG_KEYS, COLONY_CATALOG_KEY, CatalogDocument
from utils.text import normalize_text

REORDER_DIRECTIONS = ("up", "down")


class CatalogError(Exception):
    """Raised when a catalog mutation is rejected."""


def _normalize_colony(entry: Mapping[str, Any]) -> Dict[str, str]:
    return {
        "region": normalize_text(entry.get("region")),
        "quadrant": normalize_text(entry.get("quadrant")),
        "colony": normalize_text(entry.get("colony")),
    }


def load_default_catalogs(path: Optional[str]) -> Dict[str, list]:
    """Read seed values; every label goes through the same normalization as user input."""
    if not path or not os.path.isfile(path):
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        raw = json.load(handle)
    defaults: Dict[str, list] = {}
    for key in CATALOG_KEYS:
        values = raw.get(key) or []
        if key == COLONY_CATALOG_KEY:
            defaults[key] = [_normalize_colony(item) for item in values if isinstance(item, dict)]
        else:
            seen: List[str] = []
            for item in values:
                label = normalize_text(item)
                if label and label not in seen:
                    seen.append(label)
            defaults[key] = seen
    return defaults


class CatalogStore:
    """Ordered catalogs (operative types, ranks, colonies, ...) behind one session.

    Reads fall back to the seed lists until a key is first written. Each
    mutation rewrites the complete list for its key and flushes it; the
    caller commits, together with its audit entry, or rolls back.
    """

    def __init__(self, session, defaults: Optional[Dict[str, list]] = None) -> None:
        self.session = session
        self.defaults = defaults or {}

    # -------- reads --------

    def keys(self) -> tuple[str, ...]:
        return CATALOG_KEYS

    def list(self, key: str) -> list:
        self._check_key(key)
        document = self.session.get(CatalogDocument, key)
        if document is not None:
            return deepcopy(document.value or [])
        return deepcopy(self.defaults.get(key, []))

    def contains(self, key: str, value: str) -> bool:
        label = normalize_text(value)
        if key == COLONY_CATALOG_KEY:
            return any(entry["colony"] == label for entry in self.list(key))
        return label in self.list(key)

    def colonies_for_region(self, region: str) -> List[str]:
        region_label = normalize_text(region)
        names = {entry["colony"] for entry in self.list(COLONY_CATALOG_KEY) if entry["region"] == region_label}
        return sorted(names)

    # -------- mutations --------

    def append(self, key: str, value, actor_id: Optional[str] = None) -> list:
        values = self.list(key)
        if key == COLONY_CATALOG_KEY:
            if not isinstance(value, Mapping):
                raise CatalogError("Colony entries need region, quadrant and colony")
            entry = _normalize_colony(value)
            if not entry["region"] or not entry["quadrant"] or not entry["colony"]:
                raise CatalogError("Region, quadrant and colony are required")
            if any(c["region"] == entry["region"] and c["colony"] == entry["colony"] for c in values):
                raise CatalogError(f"Colony {entry['colony']} already exists in {entry['region']}")
            values.append(entry)
        else:
            label = normalize_text(value)
            if not label:
                raise CatalogError("A value is required")
            if label in values:
                raise CatalogError(f"{label} already exists")
            values.append(label)
        return self._save(key, values, actor_id, action="append")

    def remove(self, key: str, value, actor_id: Optional[str] = None) -> list:
        values = self.list(key)
        if key == COLONY_CATALOG_KEY:
            if not isinstance(value, Mapping):
                raise CatalogError("Colony removal needs region and colony")
            target = _normalize_colony(value)
            index = next(
                (i for i, c in enumerate(values) if c["region"] == target["region"] and c["colony"] == target["colony"]),
                None,
            )
        else:
            label = normalize_text(value)
            index = values.index(label) if label in values else None
        if index is None:
            raise CatalogError("Value not found in catalog")
        del values[index]
        return self._save(key, values, actor_id, action="remove")

    def reorder(self, key: str, index: int, direction: str, actor_id: Optional[str] = None) -> list:
        if direction not in REORDER_DIRECTIONS:
            raise CatalogError("Direction must be 'up' or 'down'")
        values = self.list(key)
        if index < 0 or index >= len(values):
            raise CatalogError("Index out of range")
        target = index - 1 if direction == "up" else index + 1
        if target < 0 or target >= len(values):
            return values
        values[index], values[target] = values[target], values[index]
        return self._save(key, values, actor_id, action="reorder")

    def sort_alphabetically(self, key: str, actor_id: Optional[str] = None) -> list:
        values = self.list(key)
        if key == COLONY_CATALOG_KEY:
            ordered = sorted(values, key=lambda c: (c["colony"], c["region"], c["quadrant"]))
        else:
            ordered = sorted(values)
        return self._save(key, ordered, actor_id, action="sort")

    # -------- internals --------

    def _check_key(self, key: str) -> None:
        if key not in CATALOG_KEYS:
            raise CatalogError(f"Unknown catalog '{key}'")

    def _save(self, key: str, values: list, actor_id: Optional[str], action: str) -> list:
        document = self.session.get(CatalogDocument, key)
        if document is None:
            document = CatalogDocument(catalog_key=key)
            self.session.add(document)
        # Assign a fresh list so the JSON column registers the change.
        document.value = list(values)
        document.updated_by = actor_id
        self.session.flush()
        current_app.logger.info("catalog_updated", extra={"catalog": key, "action": action, "size": len(values)})
        return deepcopy(values)


def init_catalog_store(app: Flask) -> CatalogStore:
    path = app.config.get("DEFAULT_CATALOGS_PATH")
    if not path or not os.path.isfile(path):
        app.logger.warning("Catalog seed file not found; catalogs start empty", extra={"path": path})
    defaults = load_default_catalogs(path)
    store = CatalogStore(db.session, defaults)
    app.extensions["catalog_store"] = store
    return store


def get_catalog_store() -> CatalogStore:
    store = current_app.extensions.get("catalog_store")
    if store is None:
        store = init_catalog_store(current_app)
    return store

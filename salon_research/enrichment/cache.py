"""
Keyed, time-limited store of validated records and name lists.

RecordCache is the only writer of cache entries. Entries older than the
retention period are evicted lazily when read.
"""
import json
import os
import re
import time
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from salon_research.config import CACHE_DIR, CACHE_RETENTION_SECONDS
from salon_research.models import BusinessRecord, CacheEntry

LIST_KIND = "list"
DETAILS_KIND = "details"


def sanitize(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", value.strip().lower())


def sanitize_place_id(place_id: str) -> str:
    # Place ids are case-sensitive, so only path-unsafe characters are replaced.
    return re.sub(r"[^A-Za-z0-9_-]", "_", place_id.strip())


def details_key(place_id: Optional[str], name: str, model: str) -> str:
    """Identity is the place id when known, else the sanitized business name."""
    identity = sanitize_place_id(place_id) if place_id else sanitize(name)
    return f"{DETAILS_KIND}-{identity}_{sanitize(model)}"


def list_key(suburb: str, model: str) -> str:
    return f"{LIST_KIND}-{sanitize(suburb)}_{sanitize(model)}"


class CacheStorage:
    """Storage contract used by RecordCache."""

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def write(self, key: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def size_bytes(self) -> int:
        return 0


class MemoryCacheStorage(CacheStorage):
    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        data = self._data.get(key)
        return json.loads(json.dumps(data)) if data is not None else None

    def write(self, key: str, data: Dict[str, Any]) -> None:
        self._data[key] = json.loads(json.dumps(data))

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)

    def size_bytes(self) -> int:
        return sum(len(json.dumps(v)) for v in self._data.values())


class FileCacheStorage(CacheStorage):
    """One JSON file per key under `<root>/<namespace>/`."""

    def __init__(self, namespace: str = "salon-research", root: str = CACHE_DIR) -> None:
        self.directory = os.path.join(root, namespace)

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Unreadable cache file {path}: {e}")
            return None

    def write(self, key: str, data: Dict[str, Any]) -> None:
        os.makedirs(self.directory, exist_ok=True)
        tmp_path = self._path(key) + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self._path(key))

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    def keys(self) -> List[str]:
        if not os.path.isdir(self.directory):
            return []
        return [name[:-len(".json")] for name in os.listdir(self.directory) if name.endswith(".json")]

    def size_bytes(self) -> int:
        return sum(os.path.getsize(self._path(key)) for key in self.keys())


class RecordCache:
    """
    Cache of validated payloads keyed by identity and model.

    Args:
        storage: Backend implementing the CacheStorage contract.
        retention_seconds: Age after which an entry is stale.
        clock: Wall clock returning epoch seconds.
    """

    def __init__(
        self,
        storage: Optional[CacheStorage] = None,
        retention_seconds: float = CACHE_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage if storage is not None else FileCacheStorage()
        self.retention_seconds = retention_seconds
        self.clock = clock

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.timestamp > self.retention_seconds

    def _load(self, key: str) -> Optional[CacheEntry]:
        data = self.storage.read(key)
        if data is None:
            return None
        try:
            return CacheEntry.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"⚠️ Discarding malformed cache entry {key}: {e}")
            self.storage.delete(key)
            return None

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._load(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            logger.debug(f"🗑️ Cache entry {key} expired ({self.age_label(entry.timestamp)}), evicting")
            self.storage.delete(key)
            return None
        return entry

    def put(
        self,
        key: str,
        kind: str,
        payload: Any,
        model: Optional[str] = None,
        label: Optional[str] = None,
        place_id: Optional[str] = None,
    ) -> bool:
        """
        Write an entry, stamping it with the current time.

        Returns:
            bool: True if the key was new, False if an entry was overwritten.
        """
        created = self.storage.read(key) is None
        entry = CacheEntry(
            key=key,
            kind=kind,
            payload=payload,
            timestamp=self.clock(),
            model=model,
            label=label,
            place_id=place_id,
        )
        self.storage.write(key, entry.to_dict())
        if created:
            logger.info(f"💾 Created cache for {label or key}")
        else:
            logger.info(f"💾 Updated cached {kind} for {label or key}")
        return created

    def delete(self, key: str) -> None:
        self.storage.delete(key)

    def list_entries(self, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        """Metadata for live entries, newest first; expired entries are evicted."""
        entries = []
        for key in self.storage.keys():
            entry = self.get(key)
            if entry is None or (kind and entry.kind != kind):
                continue
            count = len(entry.payload) if entry.kind == LIST_KIND else 1
            entries.append({
                "key": entry.key,
                "kind": entry.kind,
                "label": entry.label,
                "model": entry.model,
                "placeId": entry.place_id,
                "count": count,
                "timestamp": entry.timestamp,
                "age": self.age_label(entry.timestamp),
            })
        entries.sort(key=lambda e: e["timestamp"], reverse=True)
        return entries

    def clear(self) -> int:
        keys = self.storage.keys()
        for key in keys:
            self.storage.delete(key)
        logger.info(f"🧹 Cleared {len(keys)} cache entries")
        return len(keys)

    def stats(self) -> Dict[str, int]:
        entries = self.list_entries()
        return {
            "salonLists": sum(1 for e in entries if e["kind"] == LIST_KIND),
            "salonDetails": sum(1 for e in entries if e["kind"] == DETAILS_KIND),
            "totalSizeKb": round(self.storage.size_bytes() / 1024),
        }

    def age_label(self, timestamp: float) -> str:
        """Human-readable age such as "3 hours ago"."""
        age = max(0.0, self.clock() - timestamp)
        days, hours, minutes = int(age // 86400), int(age // 3600), int(age // 60)
        if days > 0:
            return f"{days} day{'' if days == 1 else 's'} ago"
        if hours > 0:
            return f"{hours} hour{'' if hours == 1 else 's'} ago"
        return f"{minutes} minute{'' if minutes == 1 else 's'} ago"

    def get_details(self, place_id: Optional[str], name: str, model: str) -> Optional[BusinessRecord]:
        entry = self.get(details_key(place_id, name, model))
        if entry is None and place_id:
            # Records first saved before their place id was known
            entry = self.get(details_key(None, name, model))
        if entry is None:
            return None
        logger.debug(f"📦 Cache hit for {name} ({self.age_label(entry.timestamp)})")
        return BusinessRecord.from_dict(entry.payload)

    def save_details(
        self,
        record: BusinessRecord,
        model: str,
        place_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> bool:
        """Save under the caller's identity so re-saves after enrichment update one entry."""
        key = details_key(place_id, name or record.name, model)
        return self.put(key, DETAILS_KIND, record.to_dict(), model, record.name, record.place_id or place_id)

    def get_list(self, suburb: str, model: str) -> Optional[List[str]]:
        entry = self.get(list_key(suburb, model))
        if entry is None:
            return None
        logger.debug(f"📦 Cache hit for {suburb} list ({self.age_label(entry.timestamp)})")
        return list(entry.payload)

    def save_list(self, suburb: str, names: List[str], model: str) -> bool:
        return self.put(list_key(suburb, model), LIST_KIND, list(names), model, suburb)

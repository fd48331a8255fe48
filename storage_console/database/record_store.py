"""Keyed-record persistence used by every module.

Records are plain dicts carrying a string ``id``. A collection is a named list
of records ("buckets", "files", "projects", "commands").
"""
import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

BUCKETS = "buckets"
FILES = "files"
PROJECTS = "projects"
COMMANDS = "commands"


class RecordStore:
    """Interface shared by the JSON and Supabase backed stores."""

    def list_all(self, collection: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def append(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update_by_id(self, collection: str, record_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def delete_by_id(self, collection: str, record_id: str) -> bool:
        raise NotImplementedError

    def find_by_id(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def filter_by(self, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
        return [r for r in self.list_all(collection) if r.get(field) == value]

    def delete_where(self, collection: str, field: str, value: Any) -> int:
        raise NotImplementedError


class JsonRecordStore(RecordStore):
    """One ``<collection>.json`` array per collection under ``data_dir``."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock(self, collection: str) -> threading.RLock:
        with self._locks_guard:
            return self._locks.setdefault(collection, threading.RLock())

    def _path(self, collection: str) -> str:
        return os.path.join(self.data_dir, f"{collection}.json")

    def _read(self, collection: str) -> List[Dict[str, Any]]:
        os.makedirs(self.data_dir, exist_ok=True)
        path = self._path(collection)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, list):
                return data
            logger.warning(f"{path} does not hold a list, resetting")
        except FileNotFoundError:
            pass
        except json.JSONDecodeError as e:
            logger.warning(f"Could not parse {path}, resetting: {e}")
        self._write(collection, [])
        return []

    def _write(self, collection: str, records: List[Dict[str, Any]]) -> None:
        os.makedirs(self.data_dir, exist_ok=True)
        path = self._path(collection)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
        os.replace(tmp_path, path)

    def list_all(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock(collection):
            return self._read(collection)

    def append(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock(collection):
            records = self._read(collection)
            records.append(record)
            self._write(collection, records)
        return record

    def update_by_id(self, collection: str, record_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock(collection):
            records = self._read(collection)
            for index, record in enumerate(records):
                if record.get("id") == record_id:
                    records[index] = {**record, **updates}
                    self._write(collection, records)
                    return records[index]
        return None

    def delete_by_id(self, collection: str, record_id: str) -> bool:
        with self._lock(collection):
            records = self._read(collection)
            remaining = [r for r in records if r.get("id") != record_id]
            if len(remaining) == len(records):
                return False
            self._write(collection, remaining)
        return True

    def find_by_id(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.list_all(collection) if r.get("id") == record_id), None)

    def delete_where(self, collection: str, field: str, value: Any) -> int:
        with self._lock(collection):
            records = self._read(collection)
            remaining = [r for r in records if r.get(field) != value]
            removed = len(records) - len(remaining)
            if removed:
                self._write(collection, remaining)
        return removed

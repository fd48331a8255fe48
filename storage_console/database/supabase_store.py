from supabase import Client
from storage_console.database.record_store import RecordStore
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class SupabaseRecordStore(RecordStore):
    """Record store over Supabase tables; one table per collection, keyed by ``id``."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def list_all(self, collection: str) -> List[Dict[str, Any]]:
        result = self.supabase.table(collection).select("*").execute()
        return result.data or []

    def append(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        result = self.supabase.table(collection).insert(record).execute()
        if not result.data:
            raise RuntimeError(f"Failed to insert record into {collection}")
        return result.data[0]

    def update_by_id(self, collection: str, record_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.supabase.table(collection)\
            .update(updates)\
            .eq("id", record_id)\
            .execute()
        if result.data:
            return result.data[0]
        return None

    def delete_by_id(self, collection: str, record_id: str) -> bool:
        result = self.supabase.table(collection).delete().eq("id", record_id).execute()
        return bool(result.data)

    def find_by_id(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table(collection)\
            .select("*")\
            .eq("id", record_id)\
            .maybe_single()\
            .execute()
        # maybe_single() returns None instead of a response when nothing matches in newer clients
        if result is None:
            return None
        return result.data or None

    def filter_by(self, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
        result = self.supabase.table(collection).select("*").eq(field, value).execute()
        return result.data or []

    def delete_where(self, collection: str, field: str, value: Any) -> int:
        result = self.supabase.table(collection).delete().eq(field, value).execute()
        removed = len(result.data or [])
        logger.debug(f"Deleted {removed} record(s) from {collection} where {field}={value}")
        return removed

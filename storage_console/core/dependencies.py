"""
Shared FastAPI dependencies: record store, cloud provider, process registry
"""

from functools import lru_cache

from fastapi import Request

from storage_console.cloud.aws_provider import AwsProvider
from storage_console.config import settings
from storage_console.core.process_registry import ProcessRegistry
from storage_console.database.record_store import JsonRecordStore, RecordStore
import logging

logger = logging.getLogger(__name__)


@lru_cache()
def get_record_store() -> RecordStore:
    """Record store selected by settings.record_store ("json" or "supabase")."""
    if settings.record_store == "supabase":
        from storage_console.database.supabase_client import get_supabase
        from storage_console.database.supabase_store import SupabaseRecordStore

        logger.info("Using Supabase record store")
        return SupabaseRecordStore(get_supabase())
    logger.info(f"Using JSON record store in {settings.data_dir}")
    return JsonRecordStore(settings.data_dir)


@lru_cache()
def get_cloud_provider() -> AwsProvider:
    return AwsProvider()


def get_process_registry(request: Request) -> ProcessRegistry:
    return request.app.state.process_registry

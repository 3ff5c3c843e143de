"""
Storage Module
Hosted object store and relational table service adapters

Usage:
    from sheetcheck.storage import create_object_store, create_table_service

    store = create_object_store()
    url = await store.put("answer_sheets/sheet.pdf", data, "application/pdf")
"""

from sheetcheck.config import settings

from .object_store import (
    ObjectStoreGateway,
    InMemoryObjectStore,
    SupabaseObjectStore,
)
from .tables import (
    TableService,
    InMemoryTableService,
    SupabaseTableService,
)


def create_object_store() -> ObjectStoreGateway:
    """Supabase storage when configured, otherwise an in-memory store"""
    if settings.SUPABASE_URL:
        return SupabaseObjectStore(
            base_url=settings.SUPABASE_URL,
            api_key=settings.SUPABASE_KEY,
            bucket=settings.STORAGE_BUCKET,
            timeout=settings.STORAGE_TIMEOUT,
            read_retries=settings.READ_AFTER_WRITE_RETRIES,
            read_retry_delay=settings.READ_AFTER_WRITE_DELAY,
        )
    return InMemoryObjectStore(bucket=settings.STORAGE_BUCKET)


def create_table_service() -> TableService:
    """Supabase PostgREST when configured, otherwise in-memory tables"""
    if settings.SUPABASE_URL:
        return SupabaseTableService(
            base_url=settings.SUPABASE_URL,
            api_key=settings.SUPABASE_KEY,
            timeout=settings.STORAGE_TIMEOUT,
        )
    return InMemoryTableService()


__all__ = [
    "ObjectStoreGateway",
    "InMemoryObjectStore",
    "SupabaseObjectStore",
    "TableService",
    "InMemoryTableService",
    "SupabaseTableService",
    "create_object_store",
    "create_table_service",
]

"""
Record store selection.

CRM_STORE picks the backend: "memory" for a process-local store (demos,
tests) or "supabase" for the shared Supabase project.
"""

from __future__ import annotations

from typing import Optional

from repositories.client import Settings, create_supabase_client, load_settings
from repositories.store import InMemoryRecordStore, RecordStore
from repositories.supabase_store import SupabaseRecordStore


def open_store(settings: Optional[Settings] = None) -> RecordStore:
    """Build the record store selected by CRM_STORE."""

    settings = settings or load_settings()
    if settings.store_backend == "supabase":
        return SupabaseRecordStore(create_supabase_client(settings), settings)
    return InMemoryRecordStore()


__all__ = ["open_store"]

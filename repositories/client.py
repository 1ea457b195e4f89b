"""
Supabase client initialization.

This module contains *only* the connection setup. Callers build a client
explicitly and inject it into a `SupabaseRecordStore`, so the store's
lifetime is owned by whoever opened it.

Environment variables (loaded from `.env` next to this project):
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
- CRM_STORE: "supabase" or "memory" (default "memory")
- CRM_ADMINISTRATORS: comma separated names holding the administrator capability
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from supabase import Client, create_client  # type: ignore[import-not-found]

from domain.identity import parse_roster

# Look for .env in the project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


@dataclass(frozen=True, slots=True)
class Settings:
    supabase_url: str | None
    supabase_key: str | None
    store_backend: str
    administrators: frozenset[str]


def load_settings() -> Settings:
    """Read settings from the environment (after `.env` has been loaded)."""

    backend = (os.getenv("CRM_STORE") or "memory").strip().lower()
    if backend not in ("memory", "supabase"):
        raise RuntimeError(f"Unsupported CRM_STORE value: {backend!r}. Use 'memory' or 'supabase'.")
    return Settings(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        store_backend=backend,
        administrators=parse_roster(os.getenv("CRM_ADMINISTRATORS")),
    )


def create_supabase_client(settings: Settings | None = None) -> Client:
    """Build the official Supabase client from settings, failing loudly when unconfigured."""

    settings = settings or load_settings()

    if not settings.supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not settings.supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(settings.supabase_url, settings.supabase_key)


__all__ = ["Settings", "load_settings", "create_supabase_client"]

"""
Supabase client for the persistent schedule store.

One service-role client per schema, created on first use. The store only
issues short filtered selects and conditional updates, so the PostgREST
session gets a small pool and short timeouts.
"""
import os
import logging
from typing import Dict

import httpx
from supabase import create_client, Client
from supabase.client import ClientOptions

from .config import SUPABASE_SCHEMA, SUPABASE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

_clients: Dict[str, Client] = {}


def _credentials() -> tuple:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_ANON_KEY) must be set")
    return url, key


def _store_session() -> httpx.Client:
    return httpx.Client(
        http2=False,
        timeout=httpx.Timeout(SUPABASE_TIMEOUT_SECONDS, connect=min(SUPABASE_TIMEOUT_SECONDS, 5.0)),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
    )


def get_scheduling_client(schema: str = SUPABASE_SCHEMA) -> Client:
    """Cached Supabase client bound to the schedule tables' schema."""
    client = _clients.get(schema)
    if client is not None:
        return client

    url, key = _credentials()
    client = create_client(url, key, options=ClientOptions(
        schema=schema,
        auto_refresh_token=False,
        persist_session=False
    ))
    postgrest = getattr(client, '_postgrest', None)
    if postgrest is not None and hasattr(postgrest, 'session'):
        postgrest.session = _store_session()

    _clients[schema] = client
    logger.info(f"Supabase client ready for schema {schema}")
    return client


def close_all_clients() -> None:
    """Forget cached clients (shutdown and tests)."""
    _clients.clear()

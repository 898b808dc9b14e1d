"""
Supabase Client for the generation server

Service-role client shared by the task store, asset mirror and design
linkage. Created on first use so importing this module never needs
credentials.
"""
import os
from typing import Optional

from supabase import create_client, Client
import logging

logger = logging.getLogger("uvicorn.error")

_client: Optional[Client] = None


def create_supabase_client(url: Optional[str] = None, service_key: Optional[str] = None) -> Client:
    """
    Create a new Supabase client

    Args:
        url: Project URL (defaults to SUPABASE_URL)
        service_key: Service role key (defaults to SUPABASE_SERVICE_ROLE_KEY)

    Raises:
        ValueError: URL or key missing
    """
    url = url or os.getenv("SUPABASE_URL")
    service_key = service_key or os.getenv("SUPABASE_SERVICE_ROLE_KEY")

    if not url or not service_key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in .env file")

    client = create_client(url, service_key)
    logger.info(f"[Supabase] Client initialized: {url}")
    return client


def get_supabase_client() -> Client:
    """
    Get the shared Supabase client instance
    """
    global _client
    if _client is None:
        _client = create_supabase_client()
    return _client


"""
Supabase Client Configuration
One shared async client, created on first use
"""
from typing import Optional

from supabase import AsyncClient, acreate_client

from config.settings import SUPABASE_URL, SUPABASE_KEY

_client: Optional[AsyncClient] = None


async def get_supabase() -> AsyncClient:
    """
    Return the shared Supabase client.
    Used as a FastAPI dependency; the client is built once per process.
    """
    global _client

    if _client is None:
        if not SUPABASE_URL or not SUPABASE_KEY:
            raise ValueError("Set SUPABASE_URL and SUPABASE_KEY in the environment or .env file")
        _client = await acreate_client(SUPABASE_URL, SUPABASE_KEY)

    return _client

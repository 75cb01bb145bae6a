import os
import logging
from typing import Optional

from supabase import create_client, Client

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# ── Lazy Supabase client (service role, bypasses RLS) ────────────────────────
_supabase_client: Optional[Client] = None


def get_supabase() -> Client:
    global _supabase_client
    if _supabase_client is None:
        url = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
        key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_SECRET_KEY")
        if not url or not key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(url, key)
        logger.info(f"Supabase client created for {url}")
    return _supabase_client

"""
Supabase client for the backend

One service-role client per process, shared by request auth (token and
profile lookups) and the chat session store. When SUPABASE_URL or
SUPABASE_SERVICE_KEY is missing the backend still starts: chat history
falls back to memory and authenticated routes answer 503.
"""
import logging
import os
from typing import Optional, Tuple

from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()
load_dotenv('../.env')

logger = logging.getLogger(__name__)

_supabase_client: Optional[Client] = None


def _credentials() -> Tuple[Optional[str], Optional[str]]:
    return os.getenv("SUPABASE_URL"), os.getenv("SUPABASE_SERVICE_KEY")


def supabase_configured() -> bool:
    url, key = _credentials()
    return bool(url and key)


def get_supabase_client() -> Client:
    """
    Get or create the shared client.

    Raises:
        ValueError: Supabase credentials are not set
    """
    global _supabase_client

    if _supabase_client is None:
        url, key = _credentials()
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment")

        _supabase_client = create_client(url, key)
        logger.info(f"🔌 [Supabase] Client created for {url}")

    return _supabase_client

from functools import lru_cache

from supabase import create_client, Client
from arena.core.config import settings


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    # Service role key: the scoring service reads answer files users cannot see
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)

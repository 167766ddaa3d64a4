import logging
from typing import Optional

from supabase import create_client, Client

from apphost.config import settings
from apphost.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _create(key: Optional[str], role: str) -> Client:
    if not settings.supabase_url or not key:
        raise ConfigurationError(f"Platform Supabase {role} credentials not configured")
    logger.info(f"[Supabase] Creating {role} client for {settings.supabase_url}")
    return create_client(settings.supabase_url, key)


class SupabaseClient:
    """Process-wide platform clients: anon for request handlers, service role for workers and scripts."""

    _client: Optional[Client] = None
    _service_client: Optional[Client] = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = _create(settings.supabase_key, "anon")
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Bypasses RLS on apps, app_files and app_tables. Without a service key the anon client is returned."""
        if cls._service_client is None:
            if not settings.supabase_service_role_key:
                logger.warning("[Supabase] No service role key; background writes use the anon client")
                return cls.get_client()
            cls._service_client = _create(settings.supabase_service_role_key, "service")
        return cls._service_client

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._service_client = None


def get_supabase() -> Client:
    return SupabaseClient.get_client()

"""Service-role Supabase client singleton."""

from typing import Optional

from supabase import Client, create_client

from gamedeck.config import Settings, settings

_client: Optional[Client] = None


def supabase_configured(config: Settings = settings) -> bool:
    return bool(config.supabase_url and config.supabase_service_role_key)


def get_supabase(config: Settings = settings) -> Client:
    """Get or create the Supabase client using service role key."""
    global _client
    if _client is None:
        if not supabase_configured(config):
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set"
            )
        _client = create_client(
            config.supabase_url,
            config.supabase_service_role_key,
        )
    return _client

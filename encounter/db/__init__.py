"""
Database access layer for the Trait Encounter backend.

All per-user database operations MUST:
- Respect Row Level Security (RLS): user_id = auth.uid()
- Go through the client returned by get_supabase_client()

The service role client exists for the global product search cache only.

DO NOT define table schemas, migrations, or RLS policies here.
"""

from .client import get_service_role_client, get_supabase_client

__all__ = ["get_supabase_client", "get_service_role_client"]

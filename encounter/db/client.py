"""
Supabase client factory with RLS enforcement.

Two kinds of clients:
- `get_supabase_client(access_token)`: the user's own session. Every
  per-user table (traits, latest result, history, click log) is accessed
  through this client so RLS scopes rows to user_id = auth.uid().
- `get_service_role_client()`: bypasses RLS. Used ONLY for the global
  product search cache, which is shared by all users and holds no
  personal data.
"""

import logging

from supabase import Client, create_client

from encounter.config import settings

logger = logging.getLogger(__name__)

# Service role client is stateless (no user session), so one per process
_service_role_client: Client | None = None


def get_supabase_client(access_token: str) -> Client:
    """
    Create an authenticated Supabase client for a specific user.

    Args:
        access_token: The user's JWT access token from Supabase Auth,
                      verified in encounter/auth/dependencies.py.

    Returns:
        An authenticated Supabase client that enforces RLS.

    Example:
        >>> client = get_supabase_client(auth_user.access_token)
        >>> client.table("user_trait").select("*").execute()
    """
    # Create client with publishable key (respects RLS)
    client: Client = create_client(
        supabase_url=settings.SUPABASE_URL,
        supabase_key=settings.SUPABASE_PUBLISHABLE_KEY
    )

    # The token's 'sub' claim is what auth.uid() resolves to in RLS policies
    client.auth.set_session(access_token, access_token)

    logger.debug(
        "Created authenticated Supabase client with user token "
        "(RLS enforced)"
    )

    return client


def get_service_role_client() -> Client:
    """
    Return the process-wide Supabase client with service_role privileges.

    WARNING: This bypasses RLS. Only the global product search cache may
    use it. NEVER use it for per-user tables.

    Raises:
        RuntimeError: SUPABASE_SECRET_KEY is not configured.
    """
    global _service_role_client

    if _service_role_client is not None:
        return _service_role_client

    if not settings.SUPABASE_SECRET_KEY:
        raise RuntimeError(
            "SUPABASE_SECRET_KEY is not configured. "
            "The service role client is unavailable."
        )

    _service_role_client = create_client(
        supabase_url=settings.SUPABASE_URL,
        supabase_key=settings.SUPABASE_SECRET_KEY
    )
    logger.info("Service role Supabase client initialized (product cache only)")

    return _service_role_client

"""
Bearer-token authentication for the encounter endpoints.

Access tokens are issued by Supabase Auth and signed with the project's
asymmetric (ES256) signing key. The public keys are fetched from the
project's JWKS endpoint and cached in-process; no shared secret is needed.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Any, Dict

from fastapi import Header, HTTPException, status
from jwt import PyJWKClient, decode
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError, PyJWKClientError

from encounter.config import settings

logger = logging.getLogger(__name__)

TOKEN_ALGORITHMS = ["ES256"]
TOKEN_AUDIENCE = "authenticated"

_jwks_client: PyJWKClient | None = None


@dataclass
class AuthenticatedUser:
    """Caller identity plus the raw token, kept for RLS-scoped database access."""
    user_id: str
    access_token: str


def _unauthorized(error: str, details: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "details": details}
    )


def get_jwks_client() -> PyJWKClient:
    """
    Lazily build the shared JWKS client.

    Raises:
        ValueError: SUPABASE_URL is empty, so there is no key set to fetch
    """
    global _jwks_client

    if _jwks_client is not None:
        return _jwks_client

    jwks_url = settings.SUPABASE_JWKS_URL
    if not jwks_url:
        raise ValueError("SUPABASE_URL is empty; token signing keys cannot be fetched")

    logger.info(f"Fetching token signing keys from {jwks_url}")
    _jwks_client = PyJWKClient(jwks_url, cache_keys=True, max_cached_keys=16)
    return _jwks_client


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from a "Bearer <token>" header or raise 401."""
    if not authorization:
        logger.warning("Request without Authorization header")
        raise _unauthorized("unauthorized", "Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token or " " in token.strip():
        logger.warning("Authorization header is not a bearer token")
        raise _unauthorized("unauthorized", "Invalid Authorization header format")

    return token.strip()


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify signature, expiry, audience and issuer; return the claims.

    Raises:
        HTTPException: 401 with an error code the client can act on
    """
    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        return decode(
            token,
            signing_key.key,
            algorithms=TOKEN_ALGORITHMS,
            audience=TOKEN_AUDIENCE,
            issuer=f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1",
            options={"require": ["exp", "sub"]},
        )
    except ExpiredSignatureError:
        logger.info("Rejected expired access token")
        raise _unauthorized("token_expired", "Authentication token has expired")
    except PyJWKClientError as e:
        logger.error(f"Signing key lookup failed: {e}")
        raise _unauthorized("jwks_error", "Unable to verify token signature")
    except InvalidTokenError as e:
        logger.warning(f"Rejected access token: {e}")
        raise _unauthorized("invalid_token", "Invalid authentication token")
    except ValueError as e:
        logger.error(f"Token verification is not configured: {e}")
        raise _unauthorized("unauthorized", "Token verification failed")


async def get_authenticated_user(
    authorization: Annotated[str | None, Header()] = None
) -> AuthenticatedUser:
    """Route dependency: 401 unless the request carries a valid access token."""
    token = extract_bearer_token(authorization)
    claims = decode_access_token(token)

    user_id = str(claims.get("sub") or "")
    if not user_id:
        raise _unauthorized("invalid_token", "Token has no subject")

    logger.debug(f"Authenticated user_id={user_id}")
    return AuthenticatedUser(user_id=user_id, access_token=token)

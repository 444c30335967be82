"""
Authentication utilities for bearer token handling and JWKS management.

This module handles:
- Extracting the bearer token from the Authorization header
- Fetching and caching the identity provider's JWKS (JSON Web Key Set)
- Selecting the signing key that matches a token's ``kid``
"""

import time
from typing import Any, Callable, Dict, Optional

import httpx
from jose import JWTError, jwt

from ..errors import MissingCredential


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        MissingCredential: If the header is absent or not a bearer credential
    """
    if not authorization:
        raise MissingCredential(reason="Authorization header missing")

    if not authorization.startswith("Bearer "):
        raise MissingCredential(reason="Authorization header is not a Bearer credential")

    token = authorization[len("Bearer "):].strip()
    if not token:
        raise MissingCredential(reason="Bearer token is empty")

    return token


# =============================================================================
# JWKS Cache
# =============================================================================

class JWKSCache:
    """
    Caches a JWKS document fetched over HTTP.

    The document is replaced wholesale on refresh; concurrent requests may
    both fetch, which is harmless.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        jwks_url: str,
        cache_seconds: int = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._jwks_url = jwks_url
        self._cache_seconds = cache_seconds
        self._clock = clock
        self._jwks: Optional[Dict[str, Any]] = None
        self._fetched_at: float = 0.0

    async def get(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Return the JWKS document, fetching it when stale.

        Raises:
            httpx.HTTPError: If the JWKS endpoint is unreachable or errors
            ValueError: If the response is not a JWKS document
        """
        now = self._clock()
        if (
            not force_refresh
            and self._jwks is not None
            and (now - self._fetched_at) < self._cache_seconds
        ):
            return self._jwks

        response = await self._client.get(self._jwks_url)
        response.raise_for_status()

        jwks_data = response.json()
        if not isinstance(jwks_data, dict) or "keys" not in jwks_data:
            raise ValueError("Invalid JWKS response: missing 'keys' field")

        self._jwks = jwks_data
        self._fetched_at = now
        return jwks_data


def get_signing_key(token: str, jwks: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Find the key in ``jwks`` matching the token's ``kid``.

    Returns:
        Matching JWK, or None if not found

    Raises:
        JWTError: If the token header is malformed or has no ``kid``
    """
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as e:
        raise JWTError(f"Failed to decode token header: {e}")

    kid = unverified_header.get("kid")
    if not kid:
        raise JWTError("Token header missing 'kid' (Key ID)")

    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    return None

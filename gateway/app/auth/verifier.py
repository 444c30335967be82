"""
Credential verification for the authenticated gateway variant.

``FirebaseTokenVerifier`` checks Firebase ID tokens the same way the Firebase
Admin SDK does: RS256 signature against Google's published ``securetoken``
keys, audience equal to the project id, issuer
``https://securetoken.google.com/<project_id>``, and time-based claims.

Every verification failure is raised as a ``CredentialRejected`` subclass so
the caller always receives the same 403; the specific cause is logged here.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError

from ..config import ServiceAccountCredentials
from ..errors import InvalidCredential, RevokedPrincipal
from ..models import VerifiedPrincipal
from .utils import JWKSCache, get_signing_key

logger = logging.getLogger("gateway.auth.verifier")

FIREBASE_ISSUER_PREFIX = "https://securetoken.google.com/"


class CredentialVerifier(Protocol):
    async def verify(self, token: str) -> VerifiedPrincipal:
        ...


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens against cached Google signing keys."""

    def __init__(
        self,
        credentials: ServiceAccountCredentials,
        jwks: JWKSCache,
        leeway_seconds: int = 10,
    ):
        self.project_id = credentials.project_id
        self.issuer = f"{FIREBASE_ISSUER_PREFIX}{self.project_id}"
        self._jwks = jwks
        self._leeway = leeway_seconds

    async def _find_key(self, token: str) -> Dict[str, Any]:
        try:
            jwks = await self._jwks.get()
            signing_key = get_signing_key(token, jwks)
            if not signing_key:
                # keys may have rotated since the last fetch
                jwks = await self._jwks.get(force_refresh=True)
                signing_key = get_signing_key(token, jwks)
        except (httpx.HTTPError, ValueError) as e:
            raise InvalidCredential(reason=f"signing keys unavailable: {e}") from e
        except JWTError as e:
            raise InvalidCredential(reason=str(e)) from e

        if not signing_key:
            raise InvalidCredential(reason="no signing key matches token 'kid'")

        return signing_key

    def _decode(self, token: str, signing_key: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return jwt.decode(
                token,
                signing_key,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=self.issuer,
                options={
                    "verify_signature": True,
                    "verify_aud": True,
                    "verify_iat": True,
                    "verify_exp": True,
                    "verify_nbf": True,
                    "verify_iss": True,
                    # subject is checked below so a null subject reads as revoked
                    "verify_sub": False,
                    "verify_jti": False,
                    "verify_at_hash": False,
                    "leeway": self._leeway,
                },
            )
        except ExpiredSignatureError as e:
            raise InvalidCredential(reason="ID token has expired") from e
        except JWTClaimsError as e:
            raise InvalidCredential(reason=f"Invalid token claims: {e}") from e
        except JWTError as e:
            raise InvalidCredential(reason=f"Token verification failed: {e}") from e

    async def verify(self, token: str) -> VerifiedPrincipal:
        """
        Verify a Firebase ID token.

        Raises:
            InvalidCredential: Signature, claims or key lookup failed
            RevokedPrincipal: Token is valid but names no subject
        """
        signing_key = await self._find_key(token)
        claims = self._decode(token, signing_key)

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise RevokedPrincipal(reason="token subject is null or blocked")

        return VerifiedPrincipal(subject_id=subject, claims=claims)


def build_verifier(
    credentials: Optional[ServiceAccountCredentials],
    client: httpx.AsyncClient,
    jwks_url: str,
    cache_seconds: int,
) -> Optional[FirebaseTokenVerifier]:
    """Return a verifier, or None when the identity service is not configured."""
    if credentials is None:
        return None
    return FirebaseTokenVerifier(credentials, JWKSCache(client, jwks_url, cache_seconds))

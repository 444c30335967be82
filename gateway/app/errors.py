"""
Error taxonomy for the gateway.

Every failure a request can hit is a ``GatewayError`` carrying the HTTP
status and the caller-facing body. The ``reason`` is internal diagnostic
detail: it is logged, never returned.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base exception for gateway failures."""

    status_code: int = 500
    public_message: str = "Internal server error during fetch."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reason: Optional[str] = None,
        details: Any = None,
        status_code: Optional[int] = None,
    ):
        if message is not None:
            self.public_message = message
        if status_code is not None:
            self.status_code = status_code
        self.reason = reason or self.public_message
        self.details = details
        super().__init__(self.reason)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.public_message}
        if self.details is not None:
            body["details"] = self.details
        return body


class MethodNotAllowed(GatewayError):
    status_code = 405
    public_message = "Method Not Allowed"


class ServiceMisconfigured(GatewayError):
    """A mandatory server secret is missing or invalid."""

    status_code = 500
    public_message = "Server not configured."


class MissingCredential(GatewayError):
    status_code = 401
    public_message = "Authorization header missing or invalid."


class CredentialRejected(GatewayError):
    """
    A present credential failed verification.

    Subclasses exist for logging only; the caller sees one body for every
    cause.
    """

    status_code = 403
    public_message = "Access denied: Token verification failed."


class InvalidCredential(CredentialRejected):
    """Signature, expiry, issuer or audience check failed, or keys unavailable."""


class RevokedPrincipal(CredentialRejected):
    """Token verified but its subject is null or blocked."""


class MalformedPayload(GatewayError):
    status_code = 400
    public_message = "Missing content parts."


class UpstreamServiceError(GatewayError):
    """Upstream answered non-2xx; its status and body are passed through."""

    public_message = "AI Service Error"

    def __init__(self, status_code: int, details: Any):
        super().__init__(
            reason=f"upstream returned HTTP {status_code}",
            details=details,
            status_code=status_code,
        )


class EmptyResponse(GatewayError):
    status_code = 500
    public_message = "AI response was empty."


class TransportFailure(GatewayError):
    """Network or parse failure anywhere in the upstream call path."""

    status_code = 500
    public_message = "Internal server error during fetch."

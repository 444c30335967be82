"""
Data Models Module

Pydantic models shared across the gateway:
- Inbound request envelope handed to the handler
- Validated generation payload
- Verified principal produced by the credential verifier
- Outbound result and response shapes (used for OpenAPI docs)
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Request Envelope
# ============================================================================

class InboundRequest(BaseModel):
    """A single inbound HTTP request, as seen by the gateway handler."""

    model_config = ConfigDict(frozen=True)

    method: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    @classmethod
    def from_parts(cls, method: str, headers: Mapping[str, str], body: bytes) -> "InboundRequest":
        return cls(method=method.upper(), headers=dict(headers), body=body)


# ============================================================================
# Generation Models
# ============================================================================

class GenerationPayload(BaseModel):
    """Validated caller payload."""

    model_config = ConfigDict(frozen=True)

    parts: List[Any] = Field(..., min_length=1, description="Ordered content parts")
    systemInstruction: Optional[Any] = Field(None, description="Passed through unvalidated")


class VerifiedPrincipal(BaseModel):
    """Identity of a caller whose bearer token passed verification."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    claims: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Outbound Models
# ============================================================================

class OutboundResult(BaseModel):
    """Status code and JSON body returned to the caller."""

    status_code: int
    body: Dict[str, Any]


class GenerateResponse(BaseModel):
    text: str = Field(..., description="Generated text")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Caller-facing error message")
    details: Optional[Any] = Field(None, description="Upstream error body, when passed through")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="ok, or degraded when secrets are missing")
    service: str
    version: str
    auth_required: bool
    problems: List[str] = Field(default_factory=list)

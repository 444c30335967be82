"""
Payload validation and upstream request shaping.

Both stages are pure: no I/O, no shared state.
"""

import json
from typing import Any, Dict

from ..errors import MalformedPayload, MethodNotAllowed
from ..models import GenerationPayload


def ensure_post(method: str) -> None:
    """Only POST is forwarded."""
    if method.upper() != "POST":
        raise MethodNotAllowed(reason=f"method {method} rejected")


def validate_payload(body: bytes) -> GenerationPayload:
    """
    Decode and validate the inbound JSON body.

    Args:
        body: Raw request body

    Returns:
        GenerationPayload with ``parts`` and an unvalidated ``systemInstruction``

    Raises:
        MalformedPayload: If the body is not a JSON object, or ``parts`` is
            missing, not a list, or empty
    """
    try:
        data = json.loads(body) if body else {}
    except ValueError:
        raise MalformedPayload(reason="body is not valid JSON")

    if not isinstance(data, dict):
        raise MalformedPayload(reason="body is not a JSON object")

    parts = data.get("parts")
    if not isinstance(parts, list) or not parts:
        raise MalformedPayload(reason="'parts' missing or not a non-empty array")

    return GenerationPayload(parts=parts, systemInstruction=data.get("systemInstruction"))


def build_upstream_request(payload: GenerationPayload) -> Dict[str, Any]:
    """Map a validated payload onto the generateContent request schema."""
    request: Dict[str, Any] = {
        "contents": [{"role": "user", "parts": list(payload.parts)}],
    }
    if payload.systemInstruction is not None:
        request["systemInstruction"] = {"parts": [{"text": payload.systemInstruction}]}
    return request

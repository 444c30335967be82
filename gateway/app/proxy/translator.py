"""Turns the upstream response into generated text or a caller-facing error."""

from typing import Any, Optional

import httpx

from ..errors import EmptyResponse, TransportFailure, UpstreamServiceError


def extract_text(data: Any) -> Optional[str]:
    """Return ``candidates[0].content.parts[0].text`` or None if any step is absent."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None


def _error_details(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def translate_response(response: httpx.Response) -> str:
    """
    Extract generated text from an upstream response.

    Raises:
        UpstreamServiceError: Upstream answered non-2xx
        TransportFailure: 2xx body is not JSON
        EmptyResponse: 2xx body holds no text
    """
    if not response.is_success:
        raise UpstreamServiceError(response.status_code, _error_details(response))

    try:
        data = response.json()
    except ValueError as e:
        raise TransportFailure(reason="upstream 2xx body is not JSON") from e

    text = extract_text(data)
    if not text:
        raise EmptyResponse(reason="no text at candidates[0].content.parts[0].text")

    return text

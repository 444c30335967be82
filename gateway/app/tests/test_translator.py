"""
Unit Tests for upstream response translation
"""

import httpx
import pytest

from gateway.app.errors import EmptyResponse, TransportFailure, UpstreamServiceError
from gateway.app.proxy.translator import extract_text, translate_response

from conftest import gemini_body


def test_extracts_first_candidate_text():
    response = httpx.Response(200, json=gemini_body("hi"))

    assert translate_response(response) == "hi"


def test_non_2xx_passes_status_and_body_through():
    upstream_error = {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
    response = httpx.Response(429, json=upstream_error)

    with pytest.raises(UpstreamServiceError) as exc_info:
        translate_response(response)

    assert exc_info.value.status_code == 429
    assert exc_info.value.to_body() == {"error": "AI Service Error", "details": upstream_error}


def test_non_2xx_with_plain_text_body():
    response = httpx.Response(502, text="Bad Gateway")

    with pytest.raises(UpstreamServiceError) as exc_info:
        translate_response(response)

    assert exc_info.value.status_code == 502
    assert exc_info.value.details == "Bad Gateway"


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"candidates": []},
        {"candidates": [{}]},
        {"candidates": [{"content": {}}]},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{}]}}]},
        {"candidates": [{"content": {"parts": [{"text": ""}]}}]},
        {"candidates": [{"content": {"parts": [{"text": None}]}}]},
        {"candidates": "nope"},
        [],
    ],
)
def test_missing_text_is_empty_response(body):
    response = httpx.Response(200, json=body)

    with pytest.raises(EmptyResponse) as exc_info:
        translate_response(response)

    assert exc_info.value.status_code == 500
    assert exc_info.value.to_body() == {"error": "AI response was empty."}


def test_non_json_success_body_is_transport_failure():
    response = httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(TransportFailure) as exc_info:
        translate_response(response)

    assert exc_info.value.to_body() == {"error": "Internal server error during fetch."}


def test_extract_text_ignores_non_string_text():
    assert extract_text(gemini_body(42)) is None
    assert extract_text(gemini_body("ok")) == "ok"

"""
Gateway handler: one inbound request in, one JSON result out.

Stages, in order:
    method check -> config check -> [authentication] -> payload validation
    -> upstream call -> response translation

Any stage may fail with a ``GatewayError``; the handler turns it into the
caller-facing status and body. Nothing escapes ``handle``.
"""

import logging
from typing import Optional

from ..auth.utils import extract_bearer_token
from ..auth.verifier import CredentialVerifier
from ..config import IDENTITY_MISSING_MESSAGE, GatewayConfig
from ..errors import (
    CredentialRejected,
    GatewayError,
    ServiceMisconfigured,
    TransportFailure,
)
from ..models import InboundRequest, OutboundResult, VerifiedPrincipal
from .payload import build_upstream_request, ensure_post, validate_payload
from .translator import translate_response
from .upstream import ResilientCaller

logger = logging.getLogger("gateway.proxy.handler")


class GenerateHandler:
    def __init__(
        self,
        config: GatewayConfig,
        caller: ResilientCaller,
        verifier: Optional[CredentialVerifier] = None,
    ):
        self.config = config
        self.caller = caller
        self.verifier = verifier

    async def handle(self, inbound: InboundRequest) -> OutboundResult:
        try:
            text = await self._process(inbound)
        except GatewayError as e:
            return self._error_result(e)
        except Exception as e:
            logger.error(f"Proxy fetch error: {e}", exc_info=True)
            return self._error_result(TransportFailure(reason=str(e)))

        return OutboundResult(status_code=200, body={"text": text})

    async def _process(self, inbound: InboundRequest) -> str:
        ensure_post(inbound.method)
        self.config.ensure_ready()

        if self.config.auth_required:
            principal = await self._authenticate(inbound)
            logger.info(
                f"Authenticated generation request for subject {principal.subject_id}",
                extra={"subject_id": principal.subject_id},
            )

        payload = validate_payload(inbound.body)
        upstream_request = build_upstream_request(payload)

        logger.info(
            f"Forwarding generation request upstream: model={self.config.model} parts={len(payload.parts)}",
            extra={"model": self.config.model, "part_count": len(payload.parts)},
        )

        response = await self.caller.call(upstream_request)
        return translate_response(response)

    async def _authenticate(self, inbound: InboundRequest) -> VerifiedPrincipal:
        if self.verifier is None:
            raise ServiceMisconfigured(
                IDENTITY_MISSING_MESSAGE,
                reason="auth required but no verifier installed",
            )

        token = extract_bearer_token(inbound.header("Authorization"))
        return await self.verifier.verify(token)

    @staticmethod
    def _error_result(error: GatewayError) -> OutboundResult:
        if isinstance(error, CredentialRejected):
            logger.warning(
                f"Token verification error: {type(error).__name__}: {error.reason}",
            )
        elif error.status_code >= 500:
            logger.error(
                f"HTTP {error.status_code} {type(error).__name__}: {error.reason}",
                extra={"status_code": error.status_code},
            )
        else:
            logger.info(
                f"Request rejected with HTTP {error.status_code}: {type(error).__name__}: {error.reason}",
                extra={"status_code": error.status_code},
            )

        return OutboundResult(status_code=error.status_code, body=error.to_body())

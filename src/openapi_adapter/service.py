"""Invocation of compiled operations and resource reads."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Mapping

from .assembler import assemble
from .client import ApiClient, ApiResponse
from .logging import redact_payload
from .models import CallResult, OperationMeta
from .outcomes import ClassifiedError, ResourceReadError, classify
from .pacer import TokenBucket

logger = logging.getLogger(__name__)


class InvocationService:
    """
    Shapes, paces and performs upstream calls.

    Operations report failures as soft results so the agent can correct its
    arguments and retry; resource reads raise ``ResourceReadError`` instead.
    """

    def __init__(self, client: ApiClient, pacer: TokenBucket) -> None:
        self.client = client
        self.pacer = pacer

    async def call_operation(
        self, name: str, meta: OperationMeta, arguments: Mapping[str, Any]
    ) -> CallResult:
        logger.info("Executing tool=%s args=%s", name, redact_payload(dict(arguments)))
        start = time.monotonic()

        response = await self._perform(name, meta, arguments)
        duration_ms = int((time.monotonic() - start) * 1000)
        if not response.ok:
            error = classify(response.status, response.error)
            logger.warning(
                "Tool failed: %s outcome=%s duration_ms=%s",
                name,
                error.outcome.value,
                duration_ms,
            )
            return self._format_error(error)

        logger.info("Success: %s duration_ms=%s", name, duration_ms)
        return CallResult(text=format_payload(response.payload))

    async def read_resource(
        self, name: str, meta: OperationMeta, variables: Mapping[str, Any]
    ) -> str:
        logger.info("Reading resource=%s variables=%s", name, redact_payload(dict(variables)))
        start = time.monotonic()

        response = await self._perform(name, meta, variables)
        duration_ms = int((time.monotonic() - start) * 1000)
        if not response.ok:
            error = classify(response.status, response.error)
            logger.warning(
                "Resource read failed: %s outcome=%s duration_ms=%s",
                name,
                error.outcome.value,
                duration_ms,
            )
            raise ResourceReadError(error)

        logger.info("Success: %s duration_ms=%s", name, duration_ms)
        return format_payload(response.payload)

    async def _perform(
        self, name: str, meta: OperationMeta, arguments: Mapping[str, Any]
    ) -> ApiResponse:
        try:
            request = assemble(meta, arguments)
            await self.pacer.acquire()
            return await self.client.perform(meta.method, meta.path, request)
        except Exception as exc:
            # Surfaces as an UpstreamFailure with the original message.
            logger.exception("Unexpected error invoking %s", name)
            return ApiResponse(status=None, error=str(exc) or exc.__class__.__name__)

    def _format_error(self, error: ClassifiedError) -> CallResult:
        return CallResult(text=error.message, is_error=True)


def format_payload(payload: Any) -> str:
    if payload is None:
        payload = {"status": "ok"}
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def format_json(data: Dict[str, Any]) -> CallResult:
    return CallResult(text=json.dumps(data, indent=2, ensure_ascii=False, default=str))

"""HTTP client for the upstream REST API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .assembler import AssembledRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiResponse:
    status: Optional[int]
    payload: Any = None
    error: Any = None

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300


class ApiClient:
    """Performs (method, path template, partitions) calls against one base URL.

    Transport failures and timeouts never raise; they come back as an
    ``ApiResponse`` without a status so callers classify them like any other
    failed call.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 30,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.verify_ssl = verify_ssl
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def build_url(self, path_template: str, path_params: Optional[Dict[str, Any]]) -> str:
        path = path_template
        for key, value in (path_params or {}).items():
            path = path.replace(f"{{{key}}}", quote(_to_text(value), safe=""))
        return self.base_url + path

    async def perform(
        self, method: str, path_template: str, request: AssembledRequest
    ) -> ApiResponse:
        url = self.build_url(path_template, request.path)
        params = _query_params(request.query)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, verify=self.verify_ssl, transport=self.transport
            ) as client:
                response = await client.request(
                    method.upper(),
                    url,
                    headers=self._headers(),
                    params=params,
                    json=request.body,
                )
        except httpx.TimeoutException:
            logger.warning("Request timed out: %s %s", method.upper(), url)
            return ApiResponse(status=None, error=f"Request timed out after {self.timeout_seconds}s")
        except httpx.HTTPError as exc:
            logger.warning("Request failed: %s %s (%s)", method.upper(), url, exc)
            return ApiResponse(status=None, error=str(exc) or exc.__class__.__name__)

        payload = _decode(response)
        if response.is_success:
            return ApiResponse(status=response.status_code, payload=payload)
        return ApiResponse(status=response.status_code, error=payload)


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _query_params(query: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not query:
        return None
    params: Dict[str, Any] = {}
    for key, value in query.items():
        if isinstance(value, (list, tuple)):
            params[key] = [_to_text(item) for item in value]
        else:
            params[key] = _to_text(value)
    return params


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)

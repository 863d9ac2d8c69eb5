"""
Pytest configuration and fixtures for the OpenAPI adapter tests.
"""

import copy
from typing import Any, List

import httpx
import pytest

from openapi_adapter.client import ApiClient


BASE_URL = "https://api.example.com"

WIDGET_SPEC = {
    "openapi": "3.0.3",
    "info": {"title": "Widget API", "version": "1.0.0"},
    "servers": [{"url": BASE_URL}],
    "paths": {
        "/v1/items/{id}": {
            "get": {
                "operationId": "getItem",
                "summary": "Get an item",
                "tags": ["items"],
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
                    {
                        "name": "limit",
                        "in": "query",
                        "description": "Maximum number of revisions",
                        "schema": {"type": "integer", "minimum": 1},
                    },
                ],
            },
            "delete": {
                "operationId": "deleteItem",
                "tags": ["items"],
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
                ],
            },
        },
        "/v1/items": {
            "get": {
                "operationId": "listItems",
                "tags": ["items"],
                "parameters": [
                    {
                        "name": "status",
                        "in": "query",
                        "schema": {"type": "string", "enum": ["active", "archived"]},
                    },
                ],
            },
            "post": {
                "operationId": "createItem",
                "tags": ["items"],
                "requestBody": {
                    "required": True,
                    "content": {
                        "application/json": {"schema": {"$ref": "#/components/schemas/NewItem"}}
                    },
                },
            },
        },
        "/v1/users/{userId}": {
            "get": {
                "operationId": "getUser",
                "description": "Fetch a user",
                "tags": ["users"],
                "parameters": [
                    {"name": "userId", "in": "path", "required": True, "schema": {"type": "string"}},
                ],
            },
        },
        "/health": {"get": {"summary": "Health check"}},
    },
    "components": {
        "schemas": {
            "NewItem": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "quantity": {"type": "integer", "minimum": 0},
                    "tags": {"type": "array", "items": {"type": "string"}},
                },
            }
        }
    },
}


class FakeClock:
    """Virtual monotonic clock; ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class Upstream:
    """Canned upstream API; records every request it receives."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.status = 200
        self.json: Any = None
        self.text: Any = None
        self.raises: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raises is not None:
            raise self.raises
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.json)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def widget_spec():
    """A small OpenAPI document with two tags, a body and path templates."""
    return copy.deepcopy(WIDGET_SPEC)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def client(upstream):
    return ApiClient(
        base_url=BASE_URL,
        api_key="test-key",
        timeout_seconds=5,
        transport=httpx.MockTransport(upstream),
    )

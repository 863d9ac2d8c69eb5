"""End-to-end invocation tests against a mocked upstream API."""

import asyncio
import json
import logging
import time

import httpx
import pytest

from openapi_adapter.compiler import SpecCompiler
from openapi_adapter.models import CompilerOptions
from openapi_adapter.outcomes import Outcome, ResourceReadError
from openapi_adapter.pacer import TokenBucket


@pytest.fixture
def frozen_pacer(clock):
    return TokenBucket(5, clock=clock, sleep=clock.sleep)


@pytest.fixture
def table(widget_spec, client, frozen_pacer):
    return SpecCompiler(CompilerOptions(), client, frozen_pacer).compile(widget_spec)


async def call(table, name, arguments):
    operation = table.operations[name]
    return await operation.invoke(operation.validate_arguments(arguments))


class TestOperationCalls:
    @pytest.mark.asyncio
    async def test_success_returns_payload_and_spends_one_token(self, table, upstream, frozen_pacer):
        upstream.json = {"id": "42", "name": "widget"}
        before = frozen_pacer.tokens

        result = await call(table, "getitem", {"id": "42"})

        assert not result.is_error
        assert json.loads(result.text) == {"id": "42", "name": "widget"}
        assert frozen_pacer.tokens == before - 1
        assert upstream.last.method == "GET"
        assert upstream.last.url.path == "/v1/items/42"
        assert upstream.last.headers["authorization"] == "Bearer test-key"

    @pytest.mark.asyncio
    async def test_bad_request_is_a_soft_error(self, table, upstream):
        upstream.status = 400
        upstream.json = {"error": "Bad Request"}

        result = await call(table, "getitem", {"id": "42"})

        assert result.is_error
        assert "API Error (400)" in result.text
        assert "Bad Request" in result.text

    @pytest.mark.asyncio
    async def test_structured_error_body_is_json_encoded(self, table, upstream):
        upstream.status = 403
        upstream.json = {"error": "forbidden"}

        result = await call(table, "getuser", {"userId": "u1"})

        assert result.text == 'API Error (403): {"error": "forbidden"}'

    @pytest.mark.asyncio
    async def test_empty_success_body(self, table, upstream):
        upstream.status = 204

        result = await call(table, "deleteitem", {"id": "42"})

        assert not result.is_error
        assert json.loads(result.text) == {"status": "ok"}
        assert upstream.last.method == "DELETE"

    @pytest.mark.asyncio
    async def test_query_arguments(self, table, upstream):
        upstream.json = []

        await call(table, "listitems", {"status": "active"})

        assert upstream.last.url.params["status"] == "active"

    @pytest.mark.asyncio
    async def test_body_fields_are_regrouped(self, table, upstream):
        upstream.status = 201
        upstream.json = {"id": "1"}

        await call(table, "createitem", {"name": "widget", "quantity": 2})

        assert upstream.last.method == "POST"
        assert json.loads(upstream.last.content) == {"name": "widget", "quantity": 2}

    @pytest.mark.asyncio
    async def test_transport_failure_is_a_soft_error(self, table, upstream):
        upstream.raises = httpx.ConnectError("connection refused")

        result = await call(table, "getitem", {"id": "42"})

        assert result.is_error
        assert result.text == "API Error (500): connection refused"


    @pytest.mark.asyncio
    async def test_invalid_arguments_are_a_soft_error(self, table, upstream):
        result = await table.operations["getitem"].invoke({"limit": 3})

        assert result.is_error
        assert result.text.startswith("ValidationFailure: Invalid arguments for getitem")
        assert upstream.requests == []


class TestResourceReads:
    @pytest.mark.asyncio
    async def test_read_returns_json_text(self, table, upstream):
        upstream.json = {"id": "u1"}
        resource = table.resources["getuser"]

        text = await resource.read({"userId": "u1"})

        assert json.loads(text) == {"id": "u1"}
        assert upstream.last.url.path == "/v1/users/u1"

    @pytest.mark.asyncio
    async def test_failed_read_raises(self, table, upstream):
        upstream.status = 404
        upstream.json = {"detail": "no such user"}
        resource = table.resources["getuser"]

        with pytest.raises(ResourceReadError) as exc_info:
            await resource.read({"userId": "missing"})

        assert exc_info.value.outcome is Outcome.VALIDATION_FAILURE
        assert exc_info.value.status == 404
        assert "no such user" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_variables_are_redacted_in_logs(self, client, upstream, caplog):
        document = {"paths": {"/tokens/{token}": {"get": {"operationId": "getToken"}}}}
        table = SpecCompiler(CompilerOptions(rate_limit_per_second=0), client).compile(document)
        upstream.json = {"ok": True}

        with caplog.at_level(logging.INFO, logger="openapi_adapter.service"):
            await table.resources["gettoken"].read({"token": "s3cret"})

        messages = [r.getMessage() for r in caplog.records if r.name == "openapi_adapter.service"]
        assert any("***REDACTED***" in m for m in messages)
        assert not any("s3cret" in m for m in messages)


class TestPacing:
    @pytest.mark.asyncio
    async def test_concurrent_calls_are_paced(self, widget_spec, client, upstream):
        upstream.json = {"ok": True}
        table = SpecCompiler(CompilerOptions(rate_limit_per_second=2), client).compile(widget_spec)
        operation = table.operations["getitem"]

        start = time.monotonic()
        results = await asyncio.gather(
            *(operation.invoke({"id": str(i)}) for i in range(5))
        )
        elapsed = time.monotonic() - start

        assert elapsed >= 1.8
        assert all(not r.is_error for r in results)
        assert len(upstream.requests) == 5

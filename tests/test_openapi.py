"""Tests for OpenAPI document loading."""

import json

import pytest

from openapi_adapter.openapi import OpenAPILoader, extract_server_url


class TestOpenAPILoader:
    @pytest.mark.asyncio
    async def test_loads_json_file(self, tmp_path, widget_spec):
        path = tmp_path / "openapi.json"
        path.write_text(json.dumps(widget_spec), encoding="utf-8")

        document = await OpenAPILoader().load_spec(str(path))

        assert document == widget_spec

    @pytest.mark.asyncio
    async def test_loads_yaml_file(self, tmp_path):
        path = tmp_path / "openapi.yaml"
        path.write_text(
            "openapi: 3.0.0\ninfo:\n  title: Petstore\npaths:\n  /pets:\n    get:\n      operationId: listPets\n",
            encoding="utf-8",
        )

        document = await OpenAPILoader().load_spec(str(path))

        assert document["info"]["title"] == "Petstore"
        assert "get" in document["paths"]["/pets"]

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        assert await OpenAPILoader().load_spec(str(tmp_path / "missing.json")) is None

    @pytest.mark.asyncio
    async def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert await OpenAPILoader().load_spec(str(path)) is None

    @pytest.mark.asyncio
    async def test_cached_until_expiry(self, tmp_path):
        path = tmp_path / "openapi.json"
        path.write_text('{"openapi": "3.0.0"}', encoding="utf-8")
        loader = OpenAPILoader(cache_seconds=3600)

        first = await loader.load_spec(str(path))
        path.write_text('{"openapi": "3.1.0"}', encoding="utf-8")
        second = await loader.load_spec(str(path))

        assert first is second


class TestExtractServerUrl:
    def test_first_server(self, widget_spec):
        assert extract_server_url(widget_spec) == "https://api.example.com"

    def test_no_servers(self):
        assert extract_server_url({}) is None

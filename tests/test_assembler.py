"""Tests for request assembly."""

from openapi_adapter.assembler import AssembledRequest, assemble, template_variables
from openapi_adapter.models import OperationMeta


class TestTemplateVariables:
    def test_in_order_without_duplicates(self):
        assert template_variables("/a/{x}/b/{y}/{x}") == ["x", "y"]

    def test_no_variables(self):
        assert template_variables("/health") == []


class TestAssemble:
    def test_partitions_path_and_query(self):
        meta = OperationMeta(method="GET", path="/v1/items/{id}", path_params=("id",), query_params=("limit",))
        request = assemble(meta, {"id": "42", "limit": 10, "extra": "dropped"})
        assert request.path == {"id": "42"}
        assert request.query == {"limit": 10}
        assert request.body is None

    def test_body_fields_for_body_methods(self):
        meta = OperationMeta(method="POST", path="/v1/items", body_fields=("name", "quantity"))
        request = assemble(meta, {"name": "widget"})
        assert request.path is None
        assert request.query is None
        assert request.body == {"name": "widget"}

    def test_no_body_for_other_methods(self):
        meta = OperationMeta(method="DELETE", path="/v1/items/{id}", body_fields=("name",))
        request = assemble(meta, {"id": "1", "name": "widget"})
        assert request.body is None

    def test_whole_body_argument_is_sent_as_is(self):
        meta = OperationMeta(method="PUT", path="/v1/tags", body_argument="tags")
        request = assemble(meta, {"tags": ["a", "b"]})
        assert request.body == ["a", "b"]

    def test_empty_partitions_are_none(self):
        meta = OperationMeta(method="PATCH", path="/v1/items", query_params=("q",), body_fields=("name",))
        assert assemble(meta, {}) == AssembledRequest()

    def test_none_values_are_undefined(self):
        meta = OperationMeta(method="GET", path="/v1/items", query_params=("status",))
        assert assemble(meta, {"status": None}).query is None

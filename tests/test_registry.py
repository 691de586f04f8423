"""Tests for tool declarations, argument parsing and dispatch."""

import asyncio

import pytest
from fastmcp import FastMCP

from conftest import FakeCatalog, make_product, tool_call
from errors import MalformedToolArguments
from faq import build_faq
from models import ClientDelegation, ServerResult, ToolCallRequest
from tools import TOOL_DECLARATIONS, ToolRouter, VariantResolver, register_tools
from tools.registry import parse_tool_call


@pytest.fixture
def router(settings, paint_detail):
    catalog = FakeCatalog(
        products=[make_product("cloro-gel", "Cloro Gel")],
        details={"pintura-antihongos": paint_detail},
    )
    return ToolRouter(catalog, VariantResolver(catalog), build_faq(settings))


def _dispatch(router, name, arguments, call_id="call_1"):
    return asyncio.run(router.dispatch(ToolCallRequest(id=call_id, name=name, arguments=arguments)))


def test_declarations_are_openai_functions():
    names = [d.name for d in TOOL_DECLARATIONS]
    assert names == ["searchProducts", "getVariantByOptions", "addToCartClient", "getFAQ"]

    faq = next(d for d in TOOL_DECLARATIONS if d.name == "getFAQ").to_openai()
    assert faq["type"] == "function"
    assert faq["function"]["parameters"]["properties"]["topic"]["enum"] == ["envios", "cambios", "pagos", "mundopuntos"]


class TestParseToolCall:
    def test_valid_arguments(self):
        request = parse_tool_call(tool_call("c1", "searchProducts", '{"query": "moho"}'))
        assert request.arguments == {"query": "moho"}

    def test_malformed_json(self):
        with pytest.raises(MalformedToolArguments):
            parse_tool_call(tool_call("c1", "searchProducts", '{"query": '))

    def test_missing_required_argument(self):
        with pytest.raises(MalformedToolArguments):
            parse_tool_call(tool_call("c1", "getVariantByOptions", '{"options": {"color": "blanco"}}'))

    def test_wrong_type(self):
        with pytest.raises(MalformedToolArguments):
            parse_tool_call(tool_call("c1", "addToCartClient", '{"variantId": "1", "quantity": "dos"}'))

    def test_numeric_variant_id_becomes_text(self):
        request = parse_tool_call(tool_call("c1", "addToCartClient", '{"variantId": 987654321}'))
        assert request.arguments == {"variantId": "987654321"}

    def test_blank_variant_id(self):
        with pytest.raises(MalformedToolArguments):
            parse_tool_call(tool_call("c1", "addToCartClient", '{"variantId": "  "}'))

    def test_non_object_arguments(self):
        with pytest.raises(MalformedToolArguments):
            parse_tool_call(tool_call("c1", "searchProducts", '["moho"]'))

    def test_empty_arguments_for_unknown_tool(self):
        request = parse_tool_call(tool_call("c1", "inventedTool", ""))
        assert request.arguments == {}


class TestDispatch:
    def test_search_products(self, router):
        result = _dispatch(router, "searchProducts", {"query": "cloro"})

        assert isinstance(result, ServerResult)
        assert result.payload["products"][0]["url"] == "https://mundolimpio.cl/products/cloro-gel"
        assert result.payload["products"][0]["handle"] == "cloro-gel"

    def test_get_variant_by_options(self, router):
        result = _dispatch(router, "getVariantByOptions", {"handle": "pintura-antihongos", "options": {"color": "blanco"}})

        assert isinstance(result, ServerResult)
        assert result.payload == {
            "handle": "pintura-antihongos",
            "variantId": "987654321",
            "variantTitle": "Blanco brillante / 1L",
        }

    def test_faq_is_idempotent(self, router):
        first = _dispatch(router, "getFAQ", {"topic": "envios"})
        second = _dispatch(router, "getFAQ", {"topic": "envios"})

        assert first.payload["answer"]
        assert first.payload == second.payload

    def test_unknown_faq_topic_answers_empty(self, router):
        result = _dispatch(router, "getFAQ", {"topic": "inventado"})
        assert result.payload == {"answer": ""}

    def test_add_to_cart_is_delegated(self, router):
        result = _dispatch(router, "addToCartClient", {"variantId": "987654321"})

        assert isinstance(result, ClientDelegation)
        assert result.arguments == {"variantId": "987654321", "quantity": 1}

    def test_quantity_is_bounded(self, router):
        result = _dispatch(router, "addToCartClient", {"variantId": "1", "quantity": 500})
        assert result.arguments["quantity"] == 99

    def test_unknown_tool_yields_empty_payload(self, router):
        result = _dispatch(router, "inventedTool", {"foo": "bar"})

        assert isinstance(result, ServerResult)
        assert result.payload == {}

    def test_run_absorbs_malformed_arguments(self, router):
        result = asyncio.run(router.run(tool_call("c9", "searchProducts", "{not json")))

        assert isinstance(result, ServerResult)
        assert result.id == "c9"
        assert result.payload == {}

    def test_delegation_is_detected_by_name(self, router):
        assert router.delegates_to_client("addToCartClient")
        assert not router.delegates_to_client("searchProducts")


def test_register_tools_exposes_server_side_lookups(router):
    tool_map = register_tools(FastMCP(name="test"), router)

    assert sorted(tool_map) == ["getFAQ", "getVariantByOptions", "searchProducts"]
    answer = asyncio.run(tool_map["getFAQ"]("pagos"))
    assert "checkout" in answer["answer"]

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Protocol
from uuid import uuid4

from fastmcp import FastMCP

from errors import MalformedToolArguments
from faq import FAQTopic, faq_answer
from formatters import format_payload
from models import (
    CatalogProduct,
    ClientDelegation,
    ModelToolCall,
    ServerResult,
    ToolCallRequest,
    ToolDeclaration,
    ToolResult,
)
from tools.variants import VariantResolver

ToolInvoker = Callable[..., Awaitable[dict[str, Any]]]
_CART_MAX_QUANTITY = 99

_LOGGER = logging.getLogger("shopchat.tools")


class ToolName(str, Enum):
    SEARCH_PRODUCTS = "searchProducts"
    GET_VARIANT_BY_OPTIONS = "getVariantByOptions"
    ADD_TO_CART_CLIENT = "addToCartClient"
    GET_FAQ = "getFAQ"


class ProductSearch(Protocol):
    async def search(self, query: str) -> list[CatalogProduct]: ...


TOOL_DECLARATIONS: tuple[ToolDeclaration, ...] = (
    ToolDeclaration(
        name=ToolName.SEARCH_PRODUCTS.value,
        description="Busca productos por texto y devuelve hasta 5 resultados con URL real y variantes.",
        parameters={
            "type": "object",
            "properties": {"query": {"type": "string"}},
            "required": ["query"],
        },
    ),
    ToolDeclaration(
        name=ToolName.GET_VARIANT_BY_OPTIONS.value,
        description=(
            "Dado un handle y opciones (color, aroma, tamaño...), devuelve el variantId NUMÉRICO "
            "que se usa con addToCartClient."
        ),
        parameters={
            "type": "object",
            "properties": {
                "handle": {"type": "string"},
                "options": {"type": "object", "additionalProperties": {"type": "string"}},
            },
            "required": ["handle"],
        },
    ),
    ToolDeclaration(
        name=ToolName.ADD_TO_CART_CLIENT.value,
        description=(
            "Pedir al navegador ejecutar /cart/add.js con {variantId, quantity}. "
            "Usa antes getVariantByOptions para obtener el variantId."
        ),
        parameters={
            "type": "object",
            "properties": {
                "variantId": {"type": "string"},
                "quantity": {"type": "number", "default": 1},
            },
            "required": ["variantId"],
        },
    ),
    ToolDeclaration(
        name=ToolName.GET_FAQ.value,
        description="Respuestas oficiales sobre envíos, cambios, pagos y Mundopuntos.",
        parameters={
            "type": "object",
            "properties": {
                "topic": {"type": "string", "enum": [topic.value for topic in FAQTopic]},
            },
            "required": ["topic"],
        },
    ),
)

_DECLARATIONS_BY_NAME = {declaration.name: declaration for declaration in TOOL_DECLARATIONS}

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list,),
}


def new_call_id() -> str:
    return f"call_{uuid4().hex[:24]}"


def _bounded_quantity(value: Any, default: int = 1) -> int:
    try:
        parsed = int(value)
    except Exception:
        parsed = default
    return max(1, min(_CART_MAX_QUANTITY, parsed))


def _type_ok(value: Any, expected: str) -> bool:
    allowed = _JSON_TYPES.get(expected)
    if allowed is None:
        return True
    if isinstance(value, bool) and expected != "boolean":
        return False
    return isinstance(value, allowed)


def _coerce_identifiers(arguments: dict[str, Any]) -> dict[str, Any]:
    # Models sometimes emit numeric variant ids unquoted.
    value = arguments.get("variantId")
    if isinstance(value, int) and not isinstance(value, bool):
        return {**arguments, "variantId": str(value)}
    return arguments


def validate_arguments(declaration: ToolDeclaration, arguments: Mapping[str, Any]) -> None:
    schema = declaration.parameters
    for key in schema.get("required", []):
        if arguments.get(key) is None:
            raise MalformedToolArguments(f"{declaration.name}: missing required argument '{key}'")

    properties: Mapping[str, Any] = schema.get("properties", {})
    for key, prop in properties.items():
        value = arguments.get(key)
        if value is None:
            continue
        expected = prop.get("type")
        if expected and not _type_ok(value, expected):
            raise MalformedToolArguments(f"{declaration.name}: '{key}' must be of type {expected}")
        item_schema = prop.get("additionalProperties")
        if expected == "object" and isinstance(item_schema, Mapping):
            item_type = item_schema.get("type")
            for item_key, item_value in value.items():
                if item_value is not None and item_type and not _type_ok(item_value, item_type):
                    raise MalformedToolArguments(
                        f"{declaration.name}: '{key}.{item_key}' must be of type {item_type}"
                    )


def parse_tool_call(call: ModelToolCall) -> ToolCallRequest:
    """Decodes the model's JSON argument string and checks it against the declaration."""

    raw = (call.raw_arguments or "").strip() or "{}"
    try:
        arguments = json.loads(raw)
    except ValueError as exc:
        raise MalformedToolArguments(f"{call.name}: arguments are not valid JSON") from exc
    if not isinstance(arguments, dict):
        raise MalformedToolArguments(f"{call.name}: arguments must be a JSON object")

    declaration = _DECLARATIONS_BY_NAME.get(call.name)
    if declaration is not None:
        arguments = _coerce_identifiers(arguments)
        validate_arguments(declaration, arguments)
    if call.name == ToolName.ADD_TO_CART_CLIENT.value and not str(arguments.get("variantId") or "").strip():
        raise MalformedToolArguments(f"{call.name}: 'variantId' must not be blank")
    return ToolCallRequest(id=call.id, name=call.name, arguments=arguments)


class ToolRouter:
    """Dispatches a tool call to the catalog, the resolver, the FAQ or the browser."""

    def __init__(self, catalog: ProductSearch, resolver: VariantResolver, faq: Mapping[str, str]) -> None:
        self._catalog = catalog
        self._resolver = resolver
        self._faq = faq

    @property
    def declarations(self) -> tuple[ToolDeclaration, ...]:
        return TOOL_DECLARATIONS

    @staticmethod
    def delegates_to_client(name: str) -> bool:
        return name == ToolName.ADD_TO_CART_CLIENT.value

    async def dispatch(self, request: ToolCallRequest) -> ToolResult:
        try:
            tool = ToolName(request.name)
        except ValueError:
            _LOGGER.warning("unknown_tool", extra={"tool": request.name, "call_id": request.id})
            return ServerResult(id=request.id, name=request.name, payload={})

        arguments = request.arguments
        if tool is ToolName.SEARCH_PRODUCTS:
            products = await self._catalog.search(str(arguments.get("query") or ""))
            payload = format_payload({"products": products})
        elif tool is ToolName.GET_VARIANT_BY_OPTIONS:
            handle = str(arguments.get("handle") or "")
            resolved = await self._resolver.resolve(handle, arguments.get("options") or {})
            payload = {"handle": handle, **resolved}
        elif tool is ToolName.GET_FAQ:
            payload = {"answer": faq_answer(self._faq, str(arguments.get("topic") or ""))}
        else:
            return ClientDelegation(
                id=request.id,
                name=request.name,
                arguments={
                    "variantId": str(arguments.get("variantId") or ""),
                    "quantity": _bounded_quantity(arguments.get("quantity", 1)),
                },
            )

        return ServerResult(id=request.id, name=request.name, payload=payload)

    async def run(self, call: ModelToolCall) -> ToolResult:
        """Parses and dispatches one model call; bad arguments yield an empty result."""
        try:
            request = parse_tool_call(call)
        except MalformedToolArguments as exc:
            _LOGGER.warning("malformed_tool_arguments", extra={"tool": call.name, "call_id": call.id, "error": str(exc)})
            return ServerResult(id=call.id, name=call.name, payload={})
        return await self.dispatch(request)


def register_tools(mcp: FastMCP, router: ToolRouter) -> dict[str, ToolInvoker]:
    """Exposes the server-side lookups over MCP. Cart delegation stays browser-only."""

    async def _invoke(name: ToolName, arguments: dict[str, Any]) -> dict[str, Any]:
        result = await router.dispatch(ToolCallRequest(id=new_call_id(), name=name.value, arguments=arguments))
        if isinstance(result, ServerResult):
            return result.payload
        return {}

    async def _search_products(query: str) -> dict[str, Any]:
        return await _invoke(ToolName.SEARCH_PRODUCTS, {"query": query})

    async def _get_variant_by_options(handle: str, options: dict[str, str] | None = None) -> dict[str, Any]:
        return await _invoke(ToolName.GET_VARIANT_BY_OPTIONS, {"handle": handle, "options": options or {}})

    async def _get_faq(topic: str) -> dict[str, Any]:
        return await _invoke(ToolName.GET_FAQ, {"topic": topic})

    tool_map: dict[str, ToolInvoker] = {
        ToolName.SEARCH_PRODUCTS.value: _search_products,
        ToolName.GET_VARIANT_BY_OPTIONS.value: _get_variant_by_options,
        ToolName.GET_FAQ.value: _get_faq,
    }
    for name, invoker in tool_map.items():
        mcp.tool(name=name, description=_DECLARATIONS_BY_NAME[name].description)(invoker)

    return tool_map


__all__ = [
    "TOOL_DECLARATIONS",
    "ToolInvoker",
    "ToolName",
    "ToolRouter",
    "parse_tool_call",
    "register_tools",
    "validate_arguments",
]

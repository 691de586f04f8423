from __future__ import annotations

from typing import Any, Sequence

import pytest

from config import Settings
from errors import NotFound
from faq import build_faq
from models import CatalogProduct, CatalogVariant, DetailVariant, ModelReply, ModelToolCall, Price, ProductDetail
from orchestrator import ChatOrchestrator
from tools import ToolRouter, VariantResolver

PUBLIC_BASE = "https://mundolimpio.cl"


class ScriptedModel:
    """Stands in for the LLM: returns queued replies and records every call."""

    def __init__(self, *replies: Any) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Any = None,
        tool_choice: str | None = None,
    ) -> ModelReply:
        self.calls.append({"messages": list(messages), "tools": tools, "tool_choice": tool_choice})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(messages)
        return reply


class FakeCatalog:
    def __init__(
        self,
        products: list[CatalogProduct] | None = None,
        details: dict[str, ProductDetail] | None = None,
        search_error: Exception | None = None,
    ) -> None:
        self.products = products or []
        self.details = details or {}
        self.search_error = search_error
        self.queries: list[str] = []
        self.handles: list[str] = []

    async def search(self, query: str) -> list[CatalogProduct]:
        self.queries.append(query)
        if self.search_error is not None:
            raise self.search_error
        return list(self.products)

    async def fetch_variant_detail(self, handle: str) -> ProductDetail:
        self.handles.append(handle)
        if handle not in self.details:
            raise NotFound(f"Unknown product handle: {handle}")
        return self.details[handle]


def make_product(handle: str, title: str) -> CatalogProduct:
    return CatalogProduct(
        id=f"gid://shopify/Product/{abs(hash(handle)) % 10_000}",
        title=title,
        handle=handle,
        url=f"{PUBLIC_BASE}/products/{handle}",
        vendor="Astonish",
        product_type="Limpieza",
        variants=[
            CatalogVariant(
                id="gid://shopify/ProductVariant/1",
                title="Default Title",
                available_for_sale=True,
                price=Price(amount="3990.0", currency_code="CLP"),
                selected_options={"Title": "Default Title"},
            )
        ],
    )


def tool_call(call_id: str, name: str, raw_arguments: str) -> ModelToolCall:
    return ModelToolCall(id=call_id, name=name, raw_arguments=raw_arguments)


@pytest.fixture
def settings() -> Settings:
    return Settings(shopify_public_store_domain=PUBLIC_BASE)


@pytest.fixture
def paint_detail() -> ProductDetail:
    return ProductDetail(
        id="555",
        title="Pintura antihongos",
        handle="pintura-antihongos",
        variants=[
            DetailVariant(id="111", title="Gris / 1L", available=True, option1="Gris", option2="1L"),
            DetailVariant(id="987654321", title="Blanco brillante / 1L", available=True, option1="Blanco brillante", option2="1L"),
            DetailVariant(id="333", title="Blanco mate / 4L", available=False, option1="Blanco mate", option2="4L"),
        ],
    )


def build_orchestrator(settings: Settings, model: ScriptedModel, catalog: FakeCatalog) -> ChatOrchestrator:
    router = ToolRouter(catalog, VariantResolver(catalog), build_faq(settings))
    return ChatOrchestrator(model, router, settings)

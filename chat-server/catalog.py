from __future__ import annotations

import logging
from typing import Any, Mapping, Optional
from urllib.parse import quote

import httpx

from errors import NotFound, UpstreamProtocolError, UpstreamUnavailable
from models import CatalogProduct, CatalogVariant, DetailVariant, Price, ProductDetail

SEARCH_LIMIT = 5
VARIANT_LIMIT = 50

_LOGGER = logging.getLogger("shopchat.catalog")

_SEARCH_QUERY = """
query SearchProducts($q: String!, $n: Int!, $v: Int!) {
  search(query: $q, types: PRODUCT, first: $n) {
    edges {
      node {
        ... on Product {
          id
          title
          handle
          vendor
          productType
          variants(first: $v) {
            edges {
              node {
                id
                title
                availableForSale
                price { amount currencyCode }
                selectedOptions { name value }
              }
            }
          }
        }
      }
    }
  }
}
"""


def _as_mapping(value: Any) -> dict[str, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def _edges(connection: Any) -> list[dict[str, Any]]:
    edges = _as_mapping(connection).get("edges")
    if not isinstance(edges, list):
        return []
    return [_as_mapping(_as_mapping(edge).get("node")) for edge in edges]


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _option_text(value: Any) -> str | None:
    text = _text(value)
    return text or None


def numeric_id(raw: Any) -> str:
    """Reduces `gid://shopify/ProductVariant/123` (or 123) to "123"."""
    text = _text(raw)
    return text.rsplit("/", 1)[-1]


def canonical_product_url(public_base: str, handle: str) -> str:
    return f"{public_base.rstrip('/')}/products/{handle}"


def _variant_from_node(node: Mapping[str, Any]) -> CatalogVariant:
    price_node = _as_mapping(node.get("price"))
    price = None
    if price_node:
        price = Price(amount=_text(price_node.get("amount")), currency_code=_text(price_node.get("currencyCode")))

    selected: dict[str, str] = {}
    for option in node.get("selectedOptions") or []:
        option = _as_mapping(option)
        name = _text(option.get("name"))
        value = _text(option.get("value"))
        if name and value:
            selected[name] = value

    return CatalogVariant(
        id=_text(node.get("id")),
        title=_text(node.get("title")),
        available_for_sale=bool(node.get("availableForSale")),
        price=price,
        selected_options=selected,
    )


class ShopifyCatalog:
    """Read-only gateway over the Storefront search API and the public product JSON."""

    def __init__(
        self,
        store_domain: str | None = None,
        storefront_token: str | None = None,
        public_base_url: str | None = None,
        api_version: str = "2025-07",
        timeout: float = 20.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._store_domain = (store_domain or "").strip()
        self._storefront_token = (storefront_token or "").strip()
        self._public_base = (public_base_url or "").strip().rstrip("/")
        self._api_version = api_version
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None

    @property
    def public_base_url(self) -> str:
        return self._public_base

    @property
    def graphql_url(self) -> str:
        return f"https://{self._store_domain}/api/{self._api_version}/graphql.json"

    async def connect(self) -> None:
        if not self._store_domain or not self._storefront_token:
            raise RuntimeError("SHOPIFY_STORE_DOMAIN and SHOPIFY_STOREFRONT_TOKEN are required")
        if not self._public_base:
            raise RuntimeError("SHOPIFY_PUBLIC_STORE_DOMAIN is required")
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True

    async def close(self) -> None:
        if self._client is None or not self._owns_client:
            return
        await self._client.aclose()
        self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise UpstreamUnavailable("Catalog client is not initialized")
        return self._client

    async def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.client.post(
                self.graphql_url,
                json={"query": query, "variables": variables},
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Storefront-Access-Token": self._storefront_token,
                },
            )
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"Storefront API unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise UpstreamUnavailable(f"Storefront API {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamProtocolError("Storefront API returned a non-JSON body") from exc

        body = _as_mapping(body)
        if body.get("errors"):
            raise UpstreamProtocolError(f"Storefront API errors: {body['errors']}")
        return _as_mapping(body.get("data"))

    async def search(self, query: str) -> list[CatalogProduct]:
        query_text = (query or "").strip()
        if not query_text:
            return []

        data = await self._graphql(_SEARCH_QUERY, {"q": query_text, "n": SEARCH_LIMIT, "v": VARIANT_LIMIT})

        products: list[CatalogProduct] = []
        for node in _edges(data.get("search")):
            handle = _text(node.get("handle"))
            if not handle:
                continue
            variants = [_variant_from_node(v) for v in _edges(node.get("variants"))][:VARIANT_LIMIT]
            products.append(
                CatalogProduct(
                    id=_text(node.get("id")),
                    title=_text(node.get("title")),
                    handle=handle,
                    url=canonical_product_url(self._public_base, handle),
                    vendor=_text(node.get("vendor")),
                    product_type=_text(node.get("productType")),
                    variants=variants,
                )
            )
            if len(products) >= SEARCH_LIMIT:
                break

        _LOGGER.info("catalog_search", extra={"query": query_text, "count": len(products)})
        return products

    async def fetch_variant_detail(self, handle: str) -> ProductDetail:
        handle_text = (handle or "").strip().strip("/")
        if not handle_text:
            raise NotFound("Empty product handle")

        url = f"{self._public_base}/products/{quote(handle_text)}.js"
        try:
            response = await self.client.get(url, headers={"Cache-Control": "no-store"})
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"Unable to read {url}: {exc}") from exc

        if response.status_code == 404:
            raise NotFound(f"Unknown product handle: {handle_text}")
        if response.status_code >= 400:
            raise UpstreamUnavailable(f"Unable to read {url} ({response.status_code})")

        try:
            body = _as_mapping(response.json())
        except ValueError as exc:
            raise UpstreamProtocolError(f"Product JSON for {handle_text} is not valid JSON") from exc

        variants = []
        for raw in body.get("variants") or []:
            raw = _as_mapping(raw)
            variants.append(
                DetailVariant(
                    id=numeric_id(raw.get("id")),
                    title=_text(raw.get("title")),
                    available=bool(raw.get("available")),
                    option1=_option_text(raw.get("option1")),
                    option2=_option_text(raw.get("option2")),
                    option3=_option_text(raw.get("option3")),
                )
            )

        return ProductDetail(
            id=numeric_id(body.get("id")),
            title=_text(body.get("title")),
            handle=_text(body.get("handle")) or handle_text,
            variants=variants,
        )


__all__ = ["ShopifyCatalog", "SEARCH_LIMIT", "VARIANT_LIMIT", "canonical_product_url", "numeric_id"]

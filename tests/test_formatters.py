from dataclasses import dataclass

import httpx
import openai

from config import load_settings
from errors import QuotaExceeded, UpstreamUnavailable, classify_llm_error
from faq import build_faq
from formatters import collect_urls, format_clp, format_payload, products_markdown, strip_unlisted_links

ALLOWED = "https://mundolimpio.cl/products/cloro-gel"


@dataclass
class _Item:
    title: str
    url: str | None = None


def test_format_payload_omits_none_and_keeps_arrays():
    payload = format_payload({"products": None, "answer": "ok", "extra": None, "nested": [_Item("A")]})
    assert payload == {"products": [], "answer": "ok", "nested": [{"title": "A"}]}


def test_format_clp():
    assert format_clp(40000) == "$40.000"
    assert format_clp("3990.4") == "$3.990"
    assert format_clp(None) == "$0"


def test_products_markdown():
    text = products_markdown([{"title": "Cloro *Gel*", "url": ALLOWED}, {"title": "Sin url"}])
    assert text == f"Aquí tienes opciones:\n\n1. **[Cloro Gel]({ALLOWED})** – ver detalles o agregar al carrito."
    assert products_markdown([]) is None


def test_strip_unlisted_links():
    text = f"Compra [Cloro]({ALLOWED}) o [esto](https://evil.example/x). Ver https://evil.example/y, y {ALLOWED}."
    cleaned = strip_unlisted_links(text, {ALLOWED})

    assert cleaned == f"Compra [Cloro]({ALLOWED}) o esto. Ver , y {ALLOWED}."


def test_collect_urls_walks_nested_payloads():
    payload = {"products": [{"url": ALLOWED, "variants": [{"id": "1"}]}], "answer": ""}
    assert collect_urls(payload) == {ALLOWED}


def test_classify_llm_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    rate_limited = openai.RateLimitError("slow down", response=httpx.Response(429, request=request), body=None)
    failed = openai.InternalServerError("boom", response=httpx.Response(500, request=request), body=None)
    unreachable = openai.APIConnectionError(request=request)

    assert isinstance(classify_llm_error(rate_limited), QuotaExceeded)
    assert isinstance(classify_llm_error(failed), UpstreamUnavailable)
    assert isinstance(classify_llm_error(unreachable), UpstreamUnavailable)
    assert classify_llm_error(failed).__cause__ is failed


def test_settings_and_faq_follow_environment(monkeypatch):
    monkeypatch.setenv("SHOPIFY_PUBLIC_STORE_DOMAIN", "https://mundolimpio.cl/")
    monkeypatch.setenv("FREE_SHIPPING_THRESHOLD_CLP", "50000")
    monkeypatch.setenv("MUNDOPUNTOS_PAGE_URL", "https://mundolimpio.cl/pages/mundopuntos")
    monkeypatch.setenv("FORCED_SEARCH_MAX_CHARS", "not-a-number")

    settings = load_settings()
    faq = build_faq(settings)

    assert settings.public_base_url == "https://mundolimpio.cl"
    assert settings.forced_search_max_chars == 120
    assert "$50.000" in faq["envios"]
    assert "https://mundolimpio.cl/pages/destinos-disponibles-en-chile" in faq["envios"]
    assert faq["mundopuntos"].endswith("Más info: https://mundolimpio.cl/pages/mundopuntos")

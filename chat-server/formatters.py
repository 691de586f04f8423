from __future__ import annotations

import re
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping

_ARRAY_KEY_HINTS = {
    "products",
    "variants",
    "tool_calls",
}

_MARKDOWN_LINK_RE = re.compile(r"\[([^\]]*)\]\(\s*(<?)([^)\s>]+)>?\s*\)")
_BARE_URL_RE = re.compile(r"https?://[^\s<>()\[\]\"']+")
_URL_TRAILING = ".,;:!?*_"


class _OmitType:
    pass


_OMIT = _OmitType()


def _to_plain(value: Any) -> Any:
    if value is None:
        return None

    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)

    if isinstance(value, Mapping):
        return dict(value)

    if isinstance(value, (set, tuple)):
        return list(value)

    return value


def _normalize(value: Any, key: str | None, array_keys: set[str]) -> Any:
    value = _to_plain(value)

    if value is None:
        if key and key in array_keys:
            return []
        return _OMIT

    if isinstance(value, Mapping):
        output: dict[str, Any] = {}
        for child_key, child_value in value.items():
            normalized = _normalize(child_value, str(child_key), array_keys)
            if normalized is _OMIT:
                if str(child_key) in array_keys:
                    output[str(child_key)] = []
                continue
            output[str(child_key)] = normalized
        return output

    if isinstance(value, list):
        normalized_list = []
        for item in value:
            normalized_item = _normalize(item, None, array_keys)
            if normalized_item is _OMIT:
                continue
            normalized_list.append(normalized_item)
        return normalized_list

    if isinstance(value, Decimal):
        return float(value)

    return value


def format_payload(payload: Any, array_keys: set[str] | None = None) -> Any:
    """Normalizes tool payloads before they are serialized for the model.

    Invariants:
    - dataclasses become plain dicts
    - keys with None values are omitted
    - array-like keys are never null
    """

    merged_array_keys = set(_ARRAY_KEY_HINTS)
    if array_keys:
        merged_array_keys.update(array_keys)

    normalized = _normalize(payload, None, merged_array_keys)
    return {} if normalized is _OMIT else normalized


def format_clp(value: Any) -> str:
    """Formats an amount as Chilean pesos, e.g. 40000 -> "$40.000"."""
    try:
        amount = int(round(float(value)))
    except (TypeError, ValueError):
        amount = 0
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,}".replace(",", ".")


def products_markdown(products: Iterable[Any]) -> str | None:
    lines = []
    for product in products:
        if isinstance(product, Mapping):
            title, url = product.get("title"), product.get("url")
        else:
            title, url = getattr(product, "title", None), getattr(product, "url", None)
        if not url:
            continue
        safe_title = str(title or "Ver producto").replace("*", "").strip() or "Ver producto"
        lines.append(f"{len(lines) + 1}. **[{safe_title}]({url})** – ver detalles o agregar al carrito.")
    if not lines:
        return None
    return "Aquí tienes opciones:\n\n" + "\n".join(lines)


def collect_urls(payload: Any) -> set[str]:
    """Every `url` value found anywhere in a (formatted) tool payload."""
    found: set[str] = set()
    if isinstance(payload, Mapping):
        for key, value in payload.items():
            if key == "url" and isinstance(value, str) and value:
                found.add(value)
            else:
                found.update(collect_urls(value))
    elif isinstance(payload, list):
        for item in payload:
            found.update(collect_urls(item))
    return found


def strip_unlisted_links(text: str, allowed_urls: set[str]) -> str:
    """Drops every link whose URL is not in `allowed_urls`.

    Markdown links keep their label; bare URLs are removed.
    """

    def _markdown(match: re.Match[str]) -> str:
        url = match.group(3)
        if url in allowed_urls:
            return match.group(0)
        return match.group(1)

    def _bare(match: re.Match[str]) -> str:
        candidate = match.group(0)
        trimmed = candidate.rstrip(_URL_TRAILING)
        if trimmed in allowed_urls:
            return candidate
        return candidate[len(trimmed):]

    without_markdown = _MARKDOWN_LINK_RE.sub(_markdown, text)
    return _BARE_URL_RE.sub(_bare, without_markdown)


__all__ = [
    "format_payload",
    "format_clp",
    "products_markdown",
    "collect_urls",
    "strip_unlisted_links",
]

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol, Sequence

from catalog import numeric_id
from errors import NoVariantsAvailable
from models import DetailVariant, ProductDetail

_LOGGER = logging.getLogger("shopchat.tools.variants")


class VariantSource(Protocol):
    async def fetch_variant_detail(self, handle: str) -> ProductDetail: ...


def _normalize_values(options: Mapping[str, Any] | None) -> list[str]:
    if not options:
        return []
    values: list[str] = []
    for value in options.values():
        if value is None:
            continue
        text = str(value).strip().lower()
        if text:
            values.append(text)
    return values


def _comparison_set(variant: DetailVariant) -> list[str]:
    pieces = [variant.title, *variant.positional_options]
    return [str(piece).strip().lower() for piece in pieces if piece and str(piece).strip()]


def _matches(variant: DetailVariant, wanted: Sequence[str]) -> bool:
    fields = _comparison_set(variant)
    return all(any(value in field for field in fields) for value in wanted)


def select_variant(variants: Sequence[DetailVariant], options: Mapping[str, Any] | None = None) -> DetailVariant:
    """First variant whose title/option1..3 contain every wanted value.

    Falls back to the first available variant, then to the first variant.
    """

    if not variants:
        raise NoVariantsAvailable("Product has no variants")

    wanted = _normalize_values(options)
    if wanted:
        for candidate in variants:
            if _matches(candidate, wanted):
                return candidate

    for candidate in variants:
        if candidate.available:
            return candidate
    return variants[0]


class VariantResolver:
    def __init__(self, catalog: VariantSource) -> None:
        self._catalog = catalog

    async def resolve(self, handle: str, options: Mapping[str, Any] | None = None) -> dict[str, str]:
        detail = await self._catalog.fetch_variant_detail(handle)
        if not detail.variants:
            raise NoVariantsAvailable(f"No variants for {handle}")

        variant = select_variant(detail.variants, options)
        _LOGGER.info(
            "variant_resolved",
            extra={"handle": handle, "options": dict(options or {}), "variant_id": variant.id},
        )
        return {"variantId": numeric_id(variant.id), "variantTitle": variant.title}


__all__ = ["VariantResolver", "VariantSource", "select_variant"]

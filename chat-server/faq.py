"""Canned answers for the fixed FAQ topics, rendered once from settings."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from config import Settings
from formatters import format_clp


class FAQTopic(str, Enum):
    SHIPPING = "envios"
    EXCHANGES = "cambios"
    PAYMENTS = "pagos"
    LOYALTY_POINTS = "mundopuntos"


SHIPPING_ZONES: tuple[tuple[str, int], ...] = (
    ("RM", 3990),
    ("Zona Central", 6990),
    ("Zona Norte", 10990),
    ("Zona Austral", 14990),
)


def _shipping_answer(settings: Settings) -> str:
    threshold = settings.free_shipping_threshold_clp
    destinations_url = f"{settings.public_base_url}/pages/destinos-disponibles-en-chile"
    if threshold > 0:
        header = (
            f"En la **Región Metropolitana (RM)** ofrecemos **envío gratis** en compras sobre "
            f"**{format_clp(threshold)}**."
        )
    else:
        header = "Hacemos despacho a **todo Chile**."
    rates = "\n".join(f"- **{zone}**: {format_clp(cost)}" for zone, cost in SHIPPING_ZONES)
    return "\n".join(
        [
            header,
            "",
            "Para pedidos bajo ese monto en la RM, y para **todas las regiones**, el costo de envío se "
            "calcula automáticamente en el **checkout** según la **región y comuna** de destino.",
            "",
            f"📦 Frecuencias de entrega: {destinations_url}",
            "",
            "Tarifas referenciales por región:",
            rates,
        ]
    )


def _exchanges_answer(settings: Settings) -> str:
    return " ".join(
        [
            "Puedes solicitar **cambio o devolución** de productos sin abrir y en su empaque original.",
            "Escríbenos con tu **número de pedido** y el producto que quieres cambiar,",
            f"y el equipo de {settings.store_name} te indicará los pasos.",
        ]
    )


def _payments_answer(settings: Settings) -> str:
    return " ".join(
        [
            "Pagas de forma segura en el **checkout** con tarjetas de débito o crédito.",
            "En la primera pantalla verás el campo **“Código de descuento o tarjeta de regalo”**:",
            "pega tu cupón y presiona **Aplicar**.",
        ]
    )


def _loyalty_answer(settings: Settings) -> str:
    parts = [
        f"**Mundopuntos**: ganas **{settings.mundopuntos_earn_per_clp} punto(s) por cada $1** que gastes.",
        f"El canje es **100 puntos = {format_clp(settings.mundopuntos_redeem_per_100)}**.",
        "Puedes canjear en el **checkout** ingresando tu cupón.",
    ]
    if settings.mundopuntos_page_url:
        parts.append(f"Más info: {settings.mundopuntos_page_url}")
    else:
        parts.append("También puedes ver y canjear en el **widget de recompensas** en la tienda.")
    return " ".join(parts)


def build_faq(settings: Settings) -> Mapping[str, str]:
    answers = {
        FAQTopic.SHIPPING.value: _shipping_answer(settings),
        FAQTopic.EXCHANGES.value: _exchanges_answer(settings),
        FAQTopic.PAYMENTS.value: _payments_answer(settings),
        FAQTopic.LOYALTY_POINTS.value: _loyalty_answer(settings),
    }
    return MappingProxyType(answers)


def faq_answer(faq: Mapping[str, str], topic: str) -> str:
    """Unknown topics answer with an empty string."""
    key = str(topic or "").strip().lower()
    return faq.get(key, "")


__all__ = ["FAQTopic", "SHIPPING_ZONES", "build_faq", "faq_answer"]

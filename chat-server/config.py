from __future__ import annotations

import os
from dataclasses import dataclass


def _env_str(name: str, default: str = "") -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except Exception:
        return default


@dataclass(frozen=True)
class Settings:
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    shopify_store_domain: str = ""
    shopify_storefront_token: str = ""
    shopify_public_store_domain: str = ""
    shopify_api_version: str = "2025-07"
    store_name: str = "MundoLimpio.cl"
    free_shipping_threshold_clp: int = 40000
    mundopuntos_earn_per_clp: int = 1
    mundopuntos_redeem_per_100: int = 3
    mundopuntos_page_url: str = ""
    forced_search_max_chars: int = 120
    catalog_timeout_sec: float = 20.0
    port: int = 3000
    log_level: str = "INFO"

    @property
    def public_base_url(self) -> str:
        return self.shopify_public_store_domain.rstrip("/")


def load_settings() -> Settings:
    """Reads settings from the process environment (after `load_dotenv`)."""

    return Settings(
        openai_api_key=_env_str("OPENAI_API_KEY"),
        openai_model=_env_str("OPENAI_MODEL", "gpt-4o-mini") or "gpt-4o-mini",
        shopify_store_domain=_env_str("SHOPIFY_STORE_DOMAIN"),
        shopify_storefront_token=_env_str("SHOPIFY_STOREFRONT_TOKEN"),
        shopify_public_store_domain=_env_str("SHOPIFY_PUBLIC_STORE_DOMAIN"),
        shopify_api_version=_env_str("SHOPIFY_API_VERSION", "2025-07") or "2025-07",
        store_name=_env_str("STORE_NAME", "MundoLimpio.cl") or "MundoLimpio.cl",
        free_shipping_threshold_clp=max(0, _env_int("FREE_SHIPPING_THRESHOLD_CLP", 40000)),
        mundopuntos_earn_per_clp=max(0, _env_int("MUNDOPUNTOS_EARN_PER_CLP", 1)),
        mundopuntos_redeem_per_100=max(0, _env_int("MUNDOPUNTOS_REDEEM_PER_100", 3)),
        mundopuntos_page_url=_env_str("MUNDOPUNTOS_PAGE_URL"),
        forced_search_max_chars=max(1, _env_int("FORCED_SEARCH_MAX_CHARS", 120)),
        catalog_timeout_sec=max(1.0, _env_float("CATALOG_TIMEOUT_SEC", 20.0)),
        port=_env_int("PORT", 3000),
        log_level=_env_str("LOG_LEVEL", "INFO").upper() or "INFO",
    )


__all__ = ["Settings", "load_settings"]

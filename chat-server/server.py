from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastmcp import FastMCP

from catalog import ShopifyCatalog
from config import load_settings
from errors import QuotaExceeded
from faq import build_faq
from llm import ChatModel
from orchestrator import ChatOrchestrator
from prompts import QUOTA_MESSAGE
from tools import ToolRouter, VariantResolver, register_tools

load_dotenv()

_LOGGER = logging.getLogger("shopchat.server")

settings = load_settings()
catalog = ShopifyCatalog(
    store_domain=settings.shopify_store_domain,
    storefront_token=settings.shopify_storefront_token,
    public_base_url=settings.public_base_url,
    api_version=settings.shopify_api_version,
    timeout=settings.catalog_timeout_sec,
)
chat_model = ChatModel(api_key=settings.openai_api_key, model=settings.openai_model)
faq = build_faq(settings)
router = ToolRouter(catalog, VariantResolver(catalog), faq)
orchestrator = ChatOrchestrator(chat_model, router, settings)

mcp = FastMCP(name="shopchat-tools")
tool_invokers = register_tools(mcp, router)
mcp_app = mcp.http_app(path="/sse", transport="streamable-http")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # The MCP streamable transport needs its own lifespan for the session manager.
    async with mcp_app.lifespan(mcp_app):
        catalog_ready = False
        catalog_error = ""
        try:
            await catalog.connect()
            catalog_ready = True
        except Exception as exc:
            catalog_error = str(exc)
            _LOGGER.error("catalog_unavailable", extra={"error": catalog_error})
        _app.state.catalog_ready = catalog_ready
        _app.state.catalog_error = catalog_error
        try:
            yield
        finally:
            if catalog_ready:
                await catalog.close()


app = FastAPI(title="ShopChat", lifespan=lifespan)


@app.get("/health")
async def health() -> dict[str, Any]:
    return {
        "ok": True,
        "service": "shopchat",
        "catalog_ready": bool(getattr(app.state, "catalog_ready", False)),
        "catalog_error": getattr(app.state, "catalog_error", ""),
        "llm_enabled": chat_model.enabled,
        "mcp_tools": sorted(tool_invokers),
    }


@app.post("/chat")
async def chat(request: Request) -> Any:
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse({"error": "Request body must be JSON"}, status_code=400)
    if not isinstance(payload, dict):
        return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

    tool_result = payload.get("toolResult")
    meta = payload.get("meta")
    message = payload.get("message")
    try:
        reply = await orchestrator.handle(
            message=message if isinstance(message, str) else "",
            tool_result=tool_result if isinstance(tool_result, dict) else None,
            meta=meta if isinstance(meta, dict) else None,
        )
    except QuotaExceeded:
        _LOGGER.warning("llm_quota_exceeded")
        return {"text": QUOTA_MESSAGE}
    except Exception as exc:
        _LOGGER.exception("chat_failed")
        return JSONResponse({"error": str(exc)}, status_code=500)

    return reply.to_wire()


app.mount("/mcp", mcp_app)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


__all__ = ["app", "mcp", "catalog", "chat_model", "orchestrator", "router", "tool_invokers"]

"""Per-request conversation state machine.

A turn starts in AWAITING_MODEL and is driven state by state until it reaches
a terminal state. A client delegation always ends the turn before any second
model pass: the cart lives in the browser, so the outcome is unknown here.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence

from config import Settings
from formatters import collect_urls, format_clp, products_markdown, strip_unlisted_links
from models import (
    ChatReply,
    ClientDelegation,
    ModelReply,
    ModelToolCall,
    ServerResult,
    ToolCallRequest,
    ToolDeclaration,
)
from prompts import clarifying_question, confirmation_prompt, results_turn_prompt, tool_turn_prompt
from tools.registry import ToolName, ToolRouter, new_call_id

_LOGGER = logging.getLogger("shopchat.orchestrator")


class CompletionModel(Protocol):
    async def complete(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[ToolDeclaration] | None = None,
        tool_choice: str | None = None,
    ) -> ModelReply: ...


class TurnState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    DIRECT_ANSWER = "direct_answer"
    TOOLS_REQUESTED = "tools_requested"
    EXECUTING = "executing"
    GROUNDING_FALLBACK = "grounding_fallback"
    CLIENT_DELEGATION_PENDING = "client_delegation_pending"
    RESULTS_READY = "results_ready"
    FINAL_ANSWER = "final_answer"
    CLARIFYING = "clarifying"


TERMINAL_STATES = frozenset(
    {
        TurnState.DIRECT_ANSWER,
        TurnState.CLIENT_DELEGATION_PENDING,
        TurnState.FINAL_ANSWER,
        TurnState.CLARIFYING,
    }
)


@dataclass
class Turn:
    message: str
    meta: dict[str, Any] = field(default_factory=dict)
    tool_result: dict[str, Any] | None = None
    state: TurnState = TurnState.AWAITING_MODEL
    tool_calls: list[ModelToolCall] = field(default_factory=list)
    executed: list[tuple[ModelToolCall, ServerResult]] = field(default_factory=list)
    delegation: ClientDelegation | None = None
    text: str | None = None

    @property
    def first_name(self) -> str:
        return str(self.meta.get("userFirstName") or "").strip()


def with_greeting_tip(text: str, meta: Mapping[str, Any], free_shipping_threshold: int) -> str:
    name = str(meta.get("userFirstName") or "").strip()
    if not name or meta.get("tipAlreadyShown"):
        return text

    try:
        subtotal = float(meta.get("cartSubtotalCLP") or 0)
    except (TypeError, ValueError):
        subtotal = 0.0
    extra = ""
    if free_shipping_threshold > 0 and 0 < subtotal < free_shipping_threshold:
        extra = f" | Te faltan {format_clp(free_shipping_threshold - subtotal)} para envío gratis en RM"
    return f"TIP: Hola, {name} 👋{extra}\n\n{text}"


class ChatOrchestrator:
    def __init__(self, llm: CompletionModel, router: ToolRouter, settings: Settings) -> None:
        self._llm = llm
        self._router = router
        self._settings = settings
        self._handlers: dict[TurnState, Callable[[Turn], Awaitable[TurnState]]] = {
            TurnState.AWAITING_MODEL: self._await_model,
            TurnState.TOOLS_REQUESTED: self._tools_requested,
            TurnState.EXECUTING: self._execute,
            TurnState.GROUNDING_FALLBACK: self._grounding_fallback,
            TurnState.RESULTS_READY: self._second_pass,
        }

    async def handle(
        self,
        message: str = "",
        tool_result: Mapping[str, Any] | None = None,
        meta: Mapping[str, Any] | None = None,
    ) -> ChatReply:
        turn = Turn(
            message=str(message or ""),
            meta=dict(meta or {}),
            tool_result=dict(tool_result) if tool_result else None,
        )
        while turn.state not in TERMINAL_STATES:
            previous = turn.state
            turn.state = await self._handlers[previous](turn)
            _LOGGER.debug("turn_transition", extra={"from_state": previous.value, "to_state": turn.state.value})

        if turn.state is TurnState.CLIENT_DELEGATION_PENDING and turn.delegation is not None:
            _LOGGER.info("client_delegation", extra={"tool": turn.delegation.name, "call_id": turn.delegation.id})
            return ChatReply(delegation=turn.delegation)
        if turn.state is TurnState.CLARIFYING:
            return ChatReply(text=clarifying_question(turn.first_name))
        if turn.state is TurnState.FINAL_ANSWER:
            return ChatReply(
                text=with_greeting_tip(turn.text or "", turn.meta, self._settings.free_shipping_threshold_clp)
            )
        return ChatReply(text=turn.text or "")

    async def _await_model(self, turn: Turn) -> TurnState:
        if turn.tool_result and turn.tool_result.get("id"):
            reply = await self._llm.complete(
                [
                    {"role": "system", "content": confirmation_prompt(self._settings.store_name)},
                    {
                        "role": "user",
                        "content": f"Resultado de tool cliente: {json.dumps(turn.tool_result, ensure_ascii=False)}",
                    },
                ]
            )
            turn.text = reply.text or "¡Listo! ¿Te ayudo con algo más?"
            return TurnState.DIRECT_ANSWER

        if not turn.message.strip():
            return TurnState.CLARIFYING

        reply = await self._llm.complete(
            [
                {"role": "system", "content": tool_turn_prompt(self._settings.store_name)},
                {"role": "user", "content": turn.message},
            ],
            tools=self._router.declarations,
            tool_choice="auto",
        )
        if reply.tool_calls:
            turn.tool_calls = list(reply.tool_calls)
            return TurnState.TOOLS_REQUESTED

        turn.text = reply.text
        return TurnState.GROUNDING_FALLBACK

    async def _tools_requested(self, turn: Turn) -> TurnState:
        _LOGGER.info("tools_requested", extra={"tools": [call.name for call in turn.tool_calls]})
        return TurnState.EXECUTING

    async def _execute(self, turn: Turn) -> TurnState:
        server_calls: list[ModelToolCall] = []
        delegated_call: ModelToolCall | None = None
        for call in turn.tool_calls:
            if self._router.delegates_to_client(call.name):
                delegated_call = call
                break
            server_calls.append(call)

        results = await asyncio.gather(*(self._router.run(call) for call in server_calls))
        for call, result in zip(server_calls, results):
            if isinstance(result, ServerResult):
                turn.executed.append((call, result))

        resolution = self._last_resolution(turn)

        if delegated_call is not None:
            delegation = await self._delegate(delegated_call, resolution)
            if delegation is None:
                _LOGGER.warning("unusable_delegation", extra={"tool": delegated_call.name, "call_id": delegated_call.id})
                return TurnState.CLARIFYING
            turn.delegation = delegation
            return TurnState.CLIENT_DELEGATION_PENDING
        elif resolution is not None:
            turn.delegation = ClientDelegation(
                id=resolution.id,
                name=ToolName.ADD_TO_CART_CLIENT.value,
                arguments={"variantId": str(resolution.payload["variantId"]), "quantity": 1},
            )
            return TurnState.CLIENT_DELEGATION_PENDING

        return TurnState.RESULTS_READY

    async def _delegate(
        self,
        call: ModelToolCall,
        resolution: ServerResult | None,
    ) -> ClientDelegation | None:
        result = await self._router.run(call)
        if isinstance(result, ClientDelegation):
            if resolution is None:
                return result
            return ClientDelegation(
                id=result.id,
                name=result.name,
                arguments={**result.arguments, "variantId": str(resolution.payload["variantId"])},
            )

        if resolution is not None:
            return ClientDelegation(
                id=call.id,
                name=ToolName.ADD_TO_CART_CLIENT.value,
                arguments={"variantId": str(resolution.payload["variantId"]), "quantity": 1},
            )
        return None

    @staticmethod
    def _last_resolution(turn: Turn) -> ServerResult | None:
        for _, result in reversed(turn.executed):
            if result.name == ToolName.GET_VARIANT_BY_OPTIONS.value and result.payload.get("variantId"):
                return result
        return None

    async def _grounding_fallback(self, turn: Turn) -> TurnState:
        query = turn.message.strip()[: self._settings.forced_search_max_chars]
        call = ModelToolCall(
            id=new_call_id(),
            name=ToolName.SEARCH_PRODUCTS.value,
            raw_arguments=json.dumps({"query": query}, ensure_ascii=False),
        )
        try:
            result = await self._router.dispatch(ToolCallRequest(id=call.id, name=call.name, arguments={"query": query}))
        except Exception as exc:
            _LOGGER.warning("forced_search_failed", extra={"query": query, "error": str(exc)}, exc_info=True)
            return TurnState.CLARIFYING

        if not isinstance(result, ServerResult) or not result.payload.get("products"):
            _LOGGER.info("forced_search_empty", extra={"query": query})
            return TurnState.CLARIFYING

        _LOGGER.info("forced_search_grounded", extra={"query": query, "count": len(result.payload["products"])})
        turn.executed = [(call, result)]
        return TurnState.RESULTS_READY

    async def _second_pass(self, turn: Turn) -> TurnState:
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": results_turn_prompt(self._settings.store_name)},
            {"role": "user", "content": turn.message},
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [call.to_openai() for call, _ in turn.executed],
            },
        ]
        allowed_urls: set[str] = set()
        for call, result in turn.executed:
            allowed_urls.update(collect_urls(result.payload))
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(result.payload, ensure_ascii=False),
                }
            )

        reply = await self._llm.complete(messages)
        text = strip_unlisted_links(reply.text or "", allowed_urls).strip()
        if not text:
            products = [
                product
                for _, result in turn.executed
                for product in result.payload.get("products") or []
            ]
            text = products_markdown(products) or ""
        if not text:
            return TurnState.CLARIFYING

        turn.text = text
        return TurnState.FINAL_ANSWER


__all__ = ["ChatOrchestrator", "CompletionModel", "Turn", "TurnState", "TERMINAL_STATES", "with_greeting_tip"]

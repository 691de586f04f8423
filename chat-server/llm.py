from __future__ import annotations

import os
from typing import Any, Sequence

from openai import AsyncOpenAI, OpenAIError

from errors import classify_llm_error
from models import ModelReply, ModelToolCall, ToolDeclaration


class ChatModel:
    """Chat-completions client backed by OpenAI (gpt-4o-mini by default)."""

    def __init__(self, api_key: str | None = None, model: str = "gpt-4o-mini") -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self._model = model
        self._client = AsyncOpenAI(api_key=self._api_key, max_retries=0) if self._api_key else None

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[ToolDeclaration] | None = None,
        tool_choice: str | None = None,
    ) -> ModelReply:
        if self._client is None:
            raise RuntimeError("OPENAI_API_KEY is required for chat completions")

        request: dict[str, Any] = {"model": self._model, "messages": list(messages)}
        if tools:
            request["tools"] = [declaration.to_openai() for declaration in tools]
            request["tool_choice"] = tool_choice or "auto"

        try:
            response = await self._client.chat.completions.create(**request)
        except OpenAIError as exc:
            raise classify_llm_error(exc) from exc

        message = response.choices[0].message
        tool_calls = [
            ModelToolCall(
                id=call.id,
                name=call.function.name,
                raw_arguments=call.function.arguments or "",
            )
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]
        return ModelReply(text=(message.content or "").strip(), tool_calls=tool_calls)


__all__ = ["ChatModel"]

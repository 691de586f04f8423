"""Turn-scoped value types: catalog projections, tool declarations and tool results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class Price:
    amount: str
    currency_code: str


@dataclass(frozen=True)
class CatalogVariant:
    id: str
    title: str
    available_for_sale: bool
    price: Price | None = None
    selected_options: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CatalogProduct:
    id: str
    title: str
    handle: str
    url: str
    vendor: str = ""
    product_type: str = ""
    variants: list[CatalogVariant] = field(default_factory=list)


@dataclass(frozen=True)
class DetailVariant:
    """One variant as exposed by the public `/products/{handle}.js` endpoint."""

    id: str
    title: str
    available: bool
    option1: str | None = None
    option2: str | None = None
    option3: str | None = None

    @property
    def positional_options(self) -> tuple[str | None, str | None, str | None]:
        return (self.option1, self.option2, self.option3)


@dataclass(frozen=True)
class ProductDetail:
    id: str
    title: str
    handle: str
    variants: list[DetailVariant] = field(default_factory=list)


@dataclass(frozen=True)
class ToolDeclaration:
    name: str
    description: str
    parameters: dict[str, Any]

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class ModelToolCall:
    """A tool call exactly as the model emitted it (arguments still JSON text)."""

    id: str
    name: str
    raw_arguments: str

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.raw_arguments},
        }


@dataclass(frozen=True)
class ModelReply:
    text: str = ""
    tool_calls: list[ModelToolCall] = field(default_factory=list)


@dataclass(frozen=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class ServerResult:
    id: str
    name: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class ClientDelegation:
    id: str
    name: str
    arguments: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}


ToolResult = Union[ServerResult, ClientDelegation]


@dataclass(frozen=True)
class ChatReply:
    """What the Session Boundary sends back: text, or exactly one delegation."""

    text: str | None = None
    delegation: ClientDelegation | None = None

    def to_wire(self) -> dict[str, Any]:
        if self.delegation is not None:
            return {"toolCalls": [self.delegation.to_wire()]}
        return {"text": self.text or ""}


__all__ = [
    "Price",
    "CatalogVariant",
    "CatalogProduct",
    "DetailVariant",
    "ProductDetail",
    "ToolDeclaration",
    "ModelToolCall",
    "ModelReply",
    "ToolCallRequest",
    "ServerResult",
    "ClientDelegation",
    "ToolResult",
    "ChatReply",
]

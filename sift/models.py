"""Conversation data model shared by every pipeline stage.

Messages are plain dataclasses. Content is either a single string or a
list of content parts, and the four part kinds form a closed union
(``ContentPart``) so that each transformation has to decide explicitly
what it does with every kind.

Tool definitions are pydantic DTOs because they arrive from the tool
registry as loosely shaped dicts (Anthropic or OpenAI function format).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeAlias, assert_never

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# Roles whose content may be replaced by placeholders
TRIMMABLE_ROLES = frozenset({Role.ASSISTANT, Role.TOOL})


# ------------------------------------------------------------------
# Content parts
# ------------------------------------------------------------------


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ToolCallPart:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultPart:
    tool_use_id: str
    content: str
    is_error: bool = False


@dataclass(frozen=True)
class ImagePart:
    data: str
    media_type: str = "image/png"


ContentPart: TypeAlias = TextPart | ToolCallPart | ToolResultPart | ImagePart
Content: TypeAlias = str | list[ContentPart]


def part_to_dict(part: ContentPart) -> dict[str, Any]:
    """Convert a content part to its JSON block."""
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ToolCallPart):
        return {
            "type": "tool_use",
            "id": part.id,
            "name": part.name,
            "input": part.arguments,
        }
    if isinstance(part, ToolResultPart):
        return {
            "type": "tool_result",
            "tool_use_id": part.tool_use_id,
            "content": part.content,
            "is_error": part.is_error,
        }
    if isinstance(part, ImagePart):
        return {"type": "image", "data": part.data, "media_type": part.media_type}
    assert_never(part)


def _parse_arguments(block: dict[str, Any]) -> dict[str, Any]:
    """Tool-call arguments as a dict. Malformed or non-object input becomes {}."""
    arguments = block.get("input", block.get("arguments", {}))
    if isinstance(arguments, str):
        if not arguments:
            return {}
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError as e:
            logger.warning(
                "Tool call %s has malformed arguments, using {}: %s", block.get("id"), e
            )
            return {}
    if not isinstance(arguments, dict):
        logger.warning(
            "Tool call %s arguments are %s, not an object, using {}",
            block.get("id"),
            type(arguments).__name__,
        )
        return {}
    return arguments


def part_from_dict(block: dict[str, Any]) -> ContentPart:
    """Parse a JSON block into a content part.

    Accepts both the Anthropic block names and the OpenAI-style aliases
    (``tool_call``, ``arguments``, ``tool_call_id``). Raises ValueError
    for unknown block types.
    """
    block_type = block.get("type")
    if block_type == "text":
        return TextPart(text=str(block.get("text", "")))
    if block_type in ("tool_use", "tool_call"):
        return ToolCallPart(
            id=str(block["id"]),
            name=str(block["name"]),
            arguments=_parse_arguments(block),
        )
    if block_type == "tool_result":
        tool_use_id = block.get("tool_use_id", block.get("tool_call_id"))
        if tool_use_id is None:
            raise ValueError("tool_result block without tool_use_id")
        content = block.get("content", "")
        if not isinstance(content, str):
            content = json.dumps(content)
        return ToolResultPart(
            tool_use_id=str(tool_use_id),
            content=content,
            is_error=bool(block.get("is_error", False)),
        )
    if block_type == "image":
        return ImagePart(
            data=str(block.get("data", "")),
            media_type=str(block.get("media_type", "image/png")),
        )
    raise ValueError(f"Unknown content block type: {block_type!r}")


# ------------------------------------------------------------------
# Message
# ------------------------------------------------------------------


@dataclass
class Message:
    """A single conversational turn."""

    role: Role
    content: Content

    def __post_init__(self) -> None:
        self.role = Role(self.role)

    @property
    def parts(self) -> list[ContentPart]:
        """Content as a part list. String content becomes one TextPart."""
        if isinstance(self.content, str):
            return [TextPart(self.content)] if self.content else []
        return list(self.content)

    def is_empty(self) -> bool:
        return not self.content

    def tool_call_ids(self) -> list[str]:
        return [p.id for p in self.parts if isinstance(p, ToolCallPart)]

    def tool_result_ids(self) -> list[str]:
        return [p.tool_use_id for p in self.parts if isinstance(p, ToolResultPart)]

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role.value, "content": self.content}
        return {
            "role": self.role.value,
            "content": [part_to_dict(p) for p in self.content],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Build a Message from its JSON form.

        Raises ValueError on an unknown role or block type.
        """
        try:
            role = Role(data["role"])
        except (KeyError, ValueError) as e:
            raise ValueError(f"Invalid message role: {data.get('role')!r}") from e
        content = data.get("content")
        if content is None:
            return cls(role=role, content="")
        if isinstance(content, str):
            return cls(role=role, content=content)
        if isinstance(content, list):
            return cls(role=role, content=[part_from_dict(b) for b in content])
        raise ValueError(f"Unsupported content type: {type(content).__name__}")


# ------------------------------------------------------------------
# Tool definitions (read-only, used for overhead estimation)
# ------------------------------------------------------------------


class ToolDefinition(BaseModel):
    """A tool exposed to the model."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("input_schema", "parameters"),
    )

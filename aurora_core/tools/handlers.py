"""内置工具：参数模型、描述与处理函数。

每个处理函数都接收已校验的参数模型实例，返回文本结果；
内部异常一律转换为描述性文本，不向 Agent 循环抛出。
"""

import json
from typing import Any, Callable, Dict, List, Type

from pydantic import BaseModel, ConfigDict, Field

from aurora_core.domain.conversation import ConversationStore
from aurora_core.infrastructure.logging.logger import logger
from . import calculator
from .definitions import ToolDef, tool_def_from_model


ToolFunc = Callable[[Any], str]
MAX_SEARCH_RESULTS = 5


class _ToolParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class ChangeSystemPromptParams(_ToolParams):
    device_id: str = Field(alias="deviceId", description="The device ID to update the system prompt for")
    new_prompt: str = Field(
        alias="newPrompt",
        description=(
            "The new system prompt that incorporates the user's requested behavior changes. "
            "Build upon your existing personality while adding the new requested traits. "
            "Be specific about how to behave in the new role/style."
        ),
    )


class SearchConversationsParams(_ToolParams):
    device_id: str = Field(alias="deviceId", description="The device ID to search conversations for")
    query: str = Field(description="What to search for in the conversations")


class UpdateConversationMetadataParams(_ToolParams):
    conversation_id: str = Field(alias="conversationId", description="The conversation ID to update")
    key: str = Field(description="The metadata key to set")
    value: str = Field(description="The value to store")


class GetConversationContextParams(_ToolParams):
    conversation_id: str = Field(alias="conversationId", description="The conversation ID to get context for")


class CalculatorParams(_ToolParams):
    expression: str = Field(description="The mathematical expression to evaluate (e.g., '2 + 2', '10 * 5')")


TOOL_DESCRIPTIONS: Dict[str, str] = {
    "change_system_prompt": (
        "Updates your personality and behavior when users request it. ALWAYS use this tool when users ask "
        "you to act differently, change your style, take on a role, or modify your behavior. Examples: "
        "'be more creative', 'act like a teacher', 'be more formal', 'write rap lyrics', "
        "'be more technical', etc."
    ),
    "search_conversations": (
        "Searches through past conversations for a specific device. Useful for remembering previous "
        "interactions or finding specific information."
    ),
    "update_conversation_metadata": (
        "Updates metadata for the current conversation. Useful for storing context, preferences, or state."
    ),
    "get_conversation_context": "Retrieves metadata and context information about the current conversation.",
    "calculator": (
        "Performs basic mathematical calculations. Use this when the user asks you to calculate something."
    ),
}

TOOL_PARAMS: Dict[str, Type[BaseModel]] = {
    "change_system_prompt": ChangeSystemPromptParams,
    "search_conversations": SearchConversationsParams,
    "update_conversation_metadata": UpdateConversationMetadataParams,
    "get_conversation_context": GetConversationContextParams,
    "calculator": CalculatorParams,
}


def _log_tool(name: str, **fields: Any) -> None:
    logger.info(f"Tool {name}", extra={"extra": {"tool_name": name, **fields}})


def _make_change_system_prompt_tool(store: ConversationStore) -> ToolFunc:
    def _run(params: ChangeSystemPromptParams) -> str:
        _log_tool("change_system_prompt", device_id=params.device_id)
        try:
            store.update_system_prompt(params.device_id, params.new_prompt)
        except Exception as exc:
            return f"Error changing system prompt: {exc}"
        return f'System prompt successfully changed to: "{params.new_prompt}"'

    return _run


def _make_search_conversations_tool(store: ConversationStore) -> ToolFunc:
    def _run(params: SearchConversationsParams) -> str:
        _log_tool("search_conversations", device_id=params.device_id, query=params.query)
        needle = params.query.lower()
        found: List[str] = []
        try:
            for conv in store.get_conversations_by_device(params.device_id):
                for msg in store.get_messages(conv.id):
                    if needle in (msg.content or "").lower():
                        found.append(f"[{msg.role}]: {msg.content}")
        except Exception as exc:
            return f"Error searching conversations: {exc}"
        if not found:
            return f'No messages found matching "{params.query}"'
        lines = "\n".join(found[:MAX_SEARCH_RESULTS])
        return f"Found {len(found)} matching messages:\n{lines}"

    return _run


def _make_update_conversation_metadata_tool(store: ConversationStore) -> ToolFunc:
    def _run(params: UpdateConversationMetadataParams) -> str:
        _log_tool("update_conversation_metadata", conversation_id=params.conversation_id, key=params.key)
        try:
            conv = store.get_conversation(params.conversation_id)
            merged = {**(conv.metadata or {}), params.key: params.value}
            store.update_conversation_metadata(params.conversation_id, merged)
        except Exception as exc:
            return f"Error updating metadata: {exc}"
        return f'Successfully set {params.key} to "{params.value}" in conversation metadata'

    return _run


def _make_get_conversation_context_tool(store: ConversationStore) -> ToolFunc:
    def _run(params: GetConversationContextParams) -> str:
        _log_tool("get_conversation_context", conversation_id=params.conversation_id)
        try:
            conv = store.get_conversation(params.conversation_id)
            messages = store.get_messages(params.conversation_id)
            context = {
                "id": conv.id,
                "device_id": conv.device_id,
                "created_at": conv.created_at.isoformat(),
                "message_count": len(messages),
                "metadata": conv.metadata or {},
            }
            body = json.dumps(context, indent=2, ensure_ascii=False, default=str)
        except Exception as exc:
            return f"Error getting context: {exc}"
        return f"Conversation Context:\n{body}"

    return _run


def _calculator_tool(params: CalculatorParams) -> str:
    _log_tool("calculator", expression=params.expression)
    try:
        value = calculator.evaluate(params.expression)
        # 超长整数转字符串也会抛 ValueError
        rendered = calculator.format_number(value)
    except (ValueError, ArithmeticError, RecursionError):
        return f'Error calculating "{params.expression}": Invalid expression'
    return f"The result of {params.expression} is {rendered}"


def default_tools(store: ConversationStore) -> Dict[str, ToolFunc]:
    return {
        "change_system_prompt": _make_change_system_prompt_tool(store),
        "search_conversations": _make_search_conversations_tool(store),
        "update_conversation_metadata": _make_update_conversation_metadata_tool(store),
        "get_conversation_context": _make_get_conversation_context_tool(store),
        "calculator": _calculator_tool,
    }


def default_tool_defs() -> List[ToolDef]:
    return [tool_def_from_model(name, TOOL_DESCRIPTIONS[name], model) for name, model in TOOL_PARAMS.items()]

"""LangGraph construction and node implementations for the agent loop.

Two nodes: ``model`` asks the provider for the next step, ``tools`` runs the
requested tool calls and folds their results back into the working history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from aurora_core.domain.conversation import HistoryEntry
from aurora_core.domain.exceptions import BusinessError, ModelInvocationError
from aurora_core.domain.models import ChatMessage, ChatRequest, ChatResult
from aurora_core.flows.state import AgentState
from aurora_core.infrastructure.logging.logger import logger
from aurora_core.prompts import EXHAUSTED_FALLBACK, format_tool_results
from aurora_core.providers.base import ProviderClient
from aurora_core.tools.registry import ToolRegistry


@dataclass
class ModelSettings:
    provider: str
    model: str
    temperature: float = 0.7


def _log(level: int, message: str, state: AgentState, **fields: Any) -> None:
    payload = dict(state.get("log_ctx") or {})
    payload.update(fields)
    logger.log(level, message, extra={"extra": payload})


def _preview(text: Optional[str], limit: int = 200) -> str:
    if not text:
        return "(empty)"
    return text[:limit]


def build_prompt_messages(
    prompt: str,
    history: List[HistoryEntry],
    system_prompt: str,
    image: Optional[str] = None,
) -> List[ChatMessage]:
    """system 消息 + 历史（按角色）+ 本轮 user 消息；图片只挂在本轮消息上。"""

    messages = [ChatMessage(role="system", content=system_prompt)]
    for entry in history:
        messages.append(ChatMessage(role=entry.role, content=entry.content))
    messages.append(ChatMessage(role="user", content=prompt, image=image))
    return messages


def model_node(
    state: AgentState,
    provider_client: ProviderClient,
    tool_registry: ToolRegistry,
    model_settings: ModelSettings,
) -> AgentState:
    state["iteration"] += 1
    iteration = state["iteration"]
    _log(
        logging.INFO,
        "Agent loop iteration",
        state,
        iteration=iteration,
        max_iterations=state["max_iterations"],
        history_length=len(state["history"]),
    )

    messages = build_prompt_messages(
        state["prompt"],
        state["history"],
        state["system_prompt"],
        state["image"] if iteration == 1 else None,
    )
    tool_defs = tool_registry.tool_defs()
    req = ChatRequest(
        provider=model_settings.provider,
        model=model_settings.model,
        messages=messages,
        temperature=model_settings.temperature,
        tools=tool_defs or None,
        tool_choice="auto",
    )
    try:
        result: ChatResult = provider_client.chat(req)
    except ModelInvocationError:
        raise
    except BusinessError as exc:
        raise ModelInvocationError(exc.message, provider_code=exc.code) from exc
    except Exception as exc:
        raise ModelInvocationError(str(exc)) from exc

    text = result.text
    calls = result.tool_calls
    if text:
        state["last_text"] = text
    _log(
        logging.INFO,
        "Model responded",
        state,
        iteration=iteration,
        text_preview=_preview(text),
        tool_call_count=len(calls),
    )

    if not calls:
        state["final_text"] = text
        state["status"] = "answered"
        return state

    state["pending_text"] = text
    state["pending_calls"] = calls
    return state


def tools_node(state: AgentState, tool_registry: ToolRegistry) -> AgentState:
    results = []
    for call in state["pending_calls"]:
        _log(logging.INFO, "Tool call received", state, tool_name=call.name, tool_call_id=call.id)
        tool_result = tool_registry.execute(call)
        results.append((call.name, tool_result.content))

    if state["pending_text"]:
        state["history"].append(HistoryEntry(role="assistant", content=state["pending_text"]))
    summary = format_tool_results(results)
    state["history"].append(HistoryEntry(role="user", content=summary))
    _log(logging.INFO, "Added tool results to history", state, results_preview=_preview(summary))

    state["pending_text"] = ""
    state["pending_calls"] = []
    if state["iteration"] >= state["max_iterations"]:
        state["status"] = "exhausted"
        state["final_text"] = state["last_text"] or EXHAUSTED_FALLBACK
        _log(logging.WARNING, "Max iterations reached without final response", state, iteration=state["iteration"])
    return state


def after_model(state: AgentState) -> str:
    if state["status"] == "answered":
        return "end"
    return "tools"


def after_tools(state: AgentState) -> str:
    if state["status"] == "exhausted":
        return "end"
    return "model"


def build_graph(
    provider_client: ProviderClient,
    tool_registry: ToolRegistry,
    model_settings: ModelSettings,
) -> CompiledStateGraph:
    graph = StateGraph(AgentState)
    graph.add_node("model", lambda s: model_node(s, provider_client, tool_registry, model_settings))
    graph.add_node("tools", lambda s: tools_node(s, tool_registry))
    graph.set_entry_point("model")
    graph.add_conditional_edges("model", after_model, {"tools": "tools", "end": END})
    graph.add_conditional_edges("tools", after_tools, {"model": "model", "end": END})
    return graph.compile()

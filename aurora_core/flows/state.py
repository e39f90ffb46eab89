"""State definition for the LangGraph agent loop."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, TypedDict

from aurora_core.domain.conversation import HistoryEntry
from aurora_core.tools.definitions import ToolCall

LoopStatus = Literal["iterating", "answered", "exhausted"]


class AgentState(TypedDict):
    prompt: str
    system_prompt: str
    image: Optional[str]
    # 工作历史：从调用方传入的历史复制而来，工具轮次会往里追加
    history: List[HistoryEntry]
    iteration: int
    max_iterations: int
    last_text: str
    pending_text: str
    pending_calls: List[ToolCall]
    final_text: Optional[str]
    status: LoopStatus
    log_ctx: Dict[str, Any]

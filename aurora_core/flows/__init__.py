"""LangGraph-based agent loop (state definition and graph construction)."""

from .graph import ModelSettings, build_graph, build_prompt_messages
from .state import AgentState

__all__ = ["AgentState", "ModelSettings", "build_graph", "build_prompt_messages"]

"""Aurora Core 顶层包。

该包提供语音助手对话轮次的核心实现，
包括配置加载、领域模型、Provider 适配、工具系统、
Agent 循环、会话并发控制、轮次编排与持久化存储等能力。
"""

from aurora_core.domain.models import TurnRequest, TurnResult

__all__ = ["TurnRequest", "TurnResult"]

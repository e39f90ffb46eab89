"""Agent 循环。

反复调用模型，把工具结果回灌到一份临时的工作历史中，
直到模型不再发起工具调用（answered）或用完迭代预算（exhausted）。
状态机由 flows.graph 中的 LangGraph 图实现，本模块负责组装初始状态与结果。
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import uuid4
import logging

from aurora_core.config.settings import settings
from aurora_core.domain.conversation import HistoryEntry
from aurora_core.domain.exceptions import ValidationError
from aurora_core.flows.graph import ModelSettings, build_graph
from aurora_core.flows.state import AgentState
from aurora_core.infrastructure.logging.logger import logger
from aurora_core.providers.base import ProviderClient
from aurora_core.tools.registry import ToolRegistry


@dataclass
class AgentConfig:
    provider: str
    model: str
    max_iterations: int = 5  # 单轮最多调用模型的次数
    temperature: float = 0.7


class AgentLoop:
    def __init__(
        self,
        provider_client: ProviderClient,
        tool_registry: ToolRegistry,
        config: Optional[AgentConfig] = None,
    ):
        self._provider_client = provider_client
        self._tool_registry = tool_registry
        self._config = config or AgentConfig(
            provider=getattr(provider_client, "name", settings.default_provider),
            model=settings.default_model,
            max_iterations=settings.max_agent_iterations,
        )
        self._graph = build_graph(
            provider_client,
            tool_registry,
            ModelSettings(
                provider=self._config.provider,
                model=self._config.model,
                temperature=self._config.temperature,
            ),
        )

    @property
    def config(self) -> AgentConfig:
        return self._config

    def run(
        self,
        prompt: str,
        prior_history: List[HistoryEntry],
        system_prompt: str,
        image: Optional[str] = None,
        max_iterations: Optional[int] = None,
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> str:
        """运行一次 Agent 循环并返回最终回答文本。

        Args:
            prompt: 本轮用户输入（不包含在 prior_history 中）
            prior_history: 之前的对话历史，按创建时间升序；不会被修改
            system_prompt: 系统提示词
            image: 可选的 base64 图片，只随第一次模型调用发送
            max_iterations: 迭代预算，默认取配置

        Raises:
            ModelInvocationError: 模型调用失败
            ValidationError: 迭代预算小于 1
        """
        budget = self._config.max_iterations if max_iterations is None else max_iterations
        if budget < 1:
            raise ValidationError(
                code="INVALID_ITERATION_BUDGET",
                message=f"max_iterations must be at least 1, got {budget}",
            )
        ctx = dict(log_ctx or {})
        ctx.setdefault("trace_id", f"tr-{uuid4().hex}")
        state: AgentState = {
            "prompt": prompt,
            "system_prompt": system_prompt,
            "image": image,
            "history": list(prior_history),
            "iteration": 0,
            "max_iterations": budget,
            "last_text": "",
            "pending_text": "",
            "pending_calls": [],
            "final_text": None,
            "status": "iterating",
            "log_ctx": ctx,
        }
        self._log(
            logging.INFO,
            "Agent loop started",
            ctx,
            max_iterations=budget,
            history_length=len(prior_history),
            prompt_preview=prompt[:100],
            has_image=bool(image),
        )
        # 每次迭代最多经过 model、tools 两个节点
        result = self._graph.invoke(state, config={"recursion_limit": budget * 2 + 2})
        final_text = result.get("final_text") or ""
        self._log(
            logging.INFO,
            "Agent loop complete",
            ctx,
            iterations=result.get("iteration"),
            status=result.get("status"),
            text_preview=final_text[:200],
        )
        return final_text

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})

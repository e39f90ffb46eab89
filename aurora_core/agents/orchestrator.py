"""对话轮次编排器。

一轮对话的完整流程：解析/创建会话 → 获取会话锁 → 持久化用户消息 →
加载历史 → 运行 Agent 循环 → 持久化助手消息 → 释放会话锁。
"""

from typing import Any, Dict, Optional
from uuid import uuid4
import logging
import time

from aurora_core.agents.agent_loop import AgentLoop
from aurora_core.agents.guard import ConversationGuard
from aurora_core.config.settings import settings
from aurora_core.domain.conversation import Conversation, ConversationStore
from aurora_core.domain.exceptions import BusinessError, ConversationBusyError, ValidationError
from aurora_core.domain.models import TurnRequest, TurnResult
from aurora_core.infrastructure.logging.logger import logger
from aurora_core.prompts import with_turn_context


class TurnOrchestrator:
    def __init__(
        self,
        store: ConversationStore,
        agent_loop: AgentLoop,
        guard: ConversationGuard,
        history_limit: Optional[int] = None,
    ):
        self._store = store
        self._agent_loop = agent_loop
        self._guard = guard
        if history_limit is None:
            history_limit = settings.max_context_messages
        self._history_limit = history_limit

    def run_turn(self, request: TurnRequest) -> TurnResult:
        """执行一轮对话。

        除 ConversationBusyError 外，所有失败都会被转换为错误形态的 TurnResult
        （空的会话/消息 ID + 错误说明），不会向传输层抛出。

        Raises:
            ConversationBusyError: 该会话已有一轮对话在处理中
        """
        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "device_id": request.device_id,
        }
        self._log(logging.INFO, "Turn received", log_ctx, prompt_preview=(request.prompt or "")[:100])

        try:
            self._validate(request)
            conv = self._resolve_conversation(request)
        except BusinessError as e:
            return self._error_result(e, log_ctx)
        except Exception as e:
            return self._unexpected_result(e, log_ctx)
        log_ctx["conversation_id"] = conv.id

        if not self._guard.try_acquire(conv.id):
            self._log(logging.WARNING, "Conversation already being processed", log_ctx)
            raise ConversationBusyError(conv.id)

        try:
            result = self._run_locked(request, conv, log_ctx)
        except BusinessError as e:
            return self._error_result(e, log_ctx)
        except Exception as e:
            return self._unexpected_result(e, log_ctx)
        finally:
            self._guard.release(conv.id)

        self._log(
            logging.INFO,
            "Turn completed",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            assistant_message_id=result.message_id,
        )
        return result

    def _run_locked(self, request: TurnRequest, conv: Conversation, log_ctx: Dict[str, Any]) -> TurnResult:
        # 先落盘用户消息，模型调用中途失败也不会丢失用户输入
        user_rec = self._store.add_message(conv.id, "user", request.prompt, request.image)
        self._log(logging.INFO, "Stored user message", log_ctx, message_id=user_rec.id)

        history = self._store.get_conversation_history(conv.id, self._history_limit)
        # 最后一条是刚写入的用户消息，本轮 prompt 单独传给循环
        prior_history = history[:-1]
        self._log(logging.INFO, "Loaded history", log_ctx, history_length=len(prior_history))

        system_prompt = with_turn_context(
            self._store.get_system_prompt(request.device_id),
            device_id=request.device_id,
            conversation_id=conv.id,
        )
        text = self._agent_loop.run(
            request.prompt,
            prior_history,
            system_prompt,
            image=request.image,
            log_ctx=log_ctx,
        )

        assistant_rec = self._store.add_message(conv.id, "assistant", text)
        self._log(logging.INFO, "Stored assistant message", log_ctx, message_id=assistant_rec.id)
        return TurnResult(text=text, conversation_id=conv.id, message_id=assistant_rec.id)

    def _resolve_conversation(self, request: TurnRequest) -> Conversation:
        if request.conversation_id:
            return self._store.get_conversation(request.conversation_id)
        conv = self._store.get_or_create_conversation(request.device_id)
        self._log(logging.INFO, "Resolved device conversation", {"device_id": request.device_id}, conversation_id=conv.id)
        return conv

    @staticmethod
    def _validate(request: TurnRequest) -> None:
        if not (request.device_id or "").strip():
            raise ValidationError(code="INVALID_TURN_REQUEST", message="deviceId is required")
        if not (request.prompt or "").strip():
            raise ValidationError(code="INVALID_TURN_REQUEST", message="prompt is required")

    def _error_result(self, error: BusinessError, log_ctx: Dict[str, Any]) -> TurnResult:
        self._log(logging.ERROR, "Turn failed", log_ctx, error_code=error.code, error=error.message)
        return TurnResult(text=f"Error: {error.message}", conversation_id="", message_id="", error=error.code)

    def _unexpected_result(self, error: Exception, log_ctx: Dict[str, Any]) -> TurnResult:
        logger.exception("Turn failed unexpectedly", extra={"extra": dict(log_ctx)})
        return TurnResult(text=f"Error: {error}", conversation_id="", message_id="", error="INTERNAL_ERROR")

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})

"""对外 API 服务模块。

提供简化的函数接口供传输层（HTTP/RPC）调用，返回可直接序列化的 dict。
传输层负责把 ConversationBusyError 等 BusinessError 映射为状态码。
"""

from typing import Optional, Dict, Any, List

from aurora_core.agents.agent_loop import AgentLoop
from aurora_core.agents.guard import ConversationGuard
from aurora_core.agents.orchestrator import TurnOrchestrator
from aurora_core.config.settings import settings
from aurora_core.domain.conversation import Conversation, ConversationStore, MessageRecord
from aurora_core.domain.exceptions import BusinessError
from aurora_core.domain.models import TurnRequest
from aurora_core.infrastructure.logging.logger import logger
from aurora_core.infrastructure.storage.json_store import JsonConversationStore
from aurora_core.providers import create_provider
from aurora_core.tools.registry import ToolRegistry


_store: Optional[ConversationStore] = None
_orchestrator: Optional[TurnOrchestrator] = None


def get_default_store() -> ConversationStore:
    global _store
    if _store is None:
        _store = JsonConversationStore(root=settings.storage_root)
    return _store


def get_default_orchestrator() -> TurnOrchestrator:
    """获取默认的编排器实例（单例），会话锁随编排器一起创建。"""
    global _orchestrator
    if _orchestrator is None:
        store = get_default_store()
        agent_loop = AgentLoop(
            provider_client=create_provider(),
            tool_registry=ToolRegistry(store),
        )
        _orchestrator = TurnOrchestrator(
            store=store,
            agent_loop=agent_loop,
            guard=ConversationGuard(),
        )
    return _orchestrator


def generate_text(
    device_id: str,
    prompt: str,
    conversation_id: Optional[str] = None,
    image: Optional[str] = None,
) -> Dict[str, Any]:
    """运行一轮对话。

    Args:
        device_id: 设备ID
        prompt: 用户输入
        conversation_id: 会话ID（可选，不提供则使用设备最近的会话或新建）
        image: base64 图片（可选）

    Returns:
        {text, conversationId, messageId}；失败时 ID 为空并带 error 字段

    Raises:
        ConversationBusyError: 该会话已有请求在处理中
    """
    result = get_default_orchestrator().run_turn(
        TurnRequest(
            device_id=device_id,
            prompt=prompt,
            conversation_id=conversation_id,
            image=image,
        )
    )
    return result.to_dict()


def get_or_create_conversation(device_id: str) -> Dict[str, Any]:
    return _call("get_or_create_conversation", lambda s: _conversation_to_dict(s.get_or_create_conversation(device_id)))


def get_conversations_by_device(device_id: str) -> List[Dict[str, Any]]:
    return _call(
        "get_conversations_by_device",
        lambda s: [_conversation_to_dict(c) for c in s.get_conversations_by_device(device_id)],
    )


def get_conversation(conversation_id: str) -> Dict[str, Any]:
    return _call("get_conversation", lambda s: _conversation_to_dict(s.get_conversation(conversation_id)))


def get_messages(conversation_id: str) -> List[Dict[str, Any]]:
    return _call("get_messages", lambda s: [_message_to_dict(m) for m in s.get_messages(conversation_id)])


def create_conversation(device_id: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """新建会话（开始新的话题），之后设备的默认会话即为它。"""
    return _call("create_conversation", lambda s: _conversation_to_dict(s.create_conversation(device_id, metadata)))


def _call(operation: str, fn):
    try:
        return fn(get_default_store())
    except BusinessError as e:
        logger.error(f"{operation} failed: {e}", extra={"extra": {
            "operation": operation,
            "error_code": e.code,
            "error": e.message,
        }})
        raise


def _conversation_to_dict(conv: Conversation) -> Dict[str, Any]:
    return {
        "id": conv.id,
        "device_id": conv.device_id,
        "created_at": conv.created_at.isoformat(),
        "updated_at": conv.updated_at.isoformat(),
        "metadata": conv.metadata,
    }


def _message_to_dict(msg: MessageRecord) -> Dict[str, Any]:
    payload = {
        "id": msg.id,
        "conversation_id": msg.conversation_id,
        "role": msg.role,
        "content": msg.content,
        "created_at": msg.created_at.isoformat(),
        "metadata": msg.metadata,
    }
    if msg.image:
        payload["image"] = msg.image
    return payload

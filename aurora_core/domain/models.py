"""统一的对话与结果数据模型。

本模块定义了核心层在 Provider、Agent 循环与编排器之间共享的标准数据结构：

- ChatMessage: 一条发给模型的消息（system/user/assistant），可附带图片。
- ChatRequest: 发给底层 LLM Provider 的完整请求。
- ChatResult: 从 Provider 解析后的统一响应结果。
- TurnRequest / TurnResult: 对话轮次的入参与出参，由传输层直接使用。

所有 Provider 适配器都必须只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass
from typing import Literal, Optional, Any, Dict, List, TYPE_CHECKING

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from aurora_core.tools.definitions import ToolCall, ToolDef


# 持久化消息的角色（与存储中的 role 字段一致）
Role = Literal["user", "assistant", "system"]


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - role: 消息角色。
    - content: 纯文本内容。
    - image: 可选的 base64 图片（JPEG），只会出现在 user 消息上。
    - tool_calls: 模型在响应中发起的工具调用列表。
    """

    role: Role
    content: str
    image: Optional[str] = None
    tool_calls: Optional[List["ToolCall"]] = None


@dataclass
class ChatRequest:
    """一次完整的聊天请求。

    Agent 循环每一轮都会重新构造 ChatRequest，再交给具体 ProviderClient。
    """

    provider: str  # 逻辑 Provider 名，如 "openrouter"
    model: str  # 逻辑模型名，如 "aurora-chat"
    messages: List[ChatMessage]
    temperature: float = 0.7
    top_p: float = 0.95
    max_tokens: Optional[int] = None
    tools: Optional[List["ToolDef"]] = None
    tool_choice: Literal["auto", "none", "required"] = "auto"


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答（目前只用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次模型调用的最终结果。"""

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None

    @property
    def text(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].message.content or ""

    @property
    def tool_calls(self) -> List["ToolCall"]:
        if not self.choices:
            return []
        return list(self.choices[0].message.tool_calls or [])


@dataclass
class TurnRequest:
    device_id: str
    prompt: str
    conversation_id: Optional[str] = None
    image: Optional[str] = None


@dataclass
class TurnResult:
    """一轮对话的结果。

    失败时 conversation_id / message_id 为空字符串，text 为错误说明，
    error 为机器可读错误码；成功时 error 为 None。
    """

    text: str
    conversation_id: str
    message_id: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "text": self.text,
            "conversationId": self.conversation_id,
            "messageId": self.message_id,
        }
        if self.error:
            payload["error"] = self.error
        return payload

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Protocol
from datetime import datetime
from .models import Role


@dataclass
class Conversation:
    id: str
    device_id: str
    created_at: datetime
    updated_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MessageRecord:
    id: str
    conversation_id: str
    role: Role
    content: str
    created_at: datetime
    image: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HistoryEntry:
    """送给模型的历史消息投影（只保留 role/content/image）。"""

    role: Role
    content: str
    image: Optional[str] = None


@dataclass
class DeviceSettings:
    device_id: str
    system_prompt: str
    created_at: datetime
    updated_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)


class ConversationStore(Protocol):
    def get_conversation(self, conversation_id: str) -> Conversation:
        ...

    def create_conversation(self, device_id: str, metadata: Optional[Dict[str, Any]] = None) -> Conversation:
        ...

    def get_or_create_conversation(self, device_id: str) -> Conversation:
        ...

    def get_conversations_by_device(self, device_id: str) -> List[Conversation]:
        ...

    def get_messages(self, conversation_id: str) -> List[MessageRecord]:
        ...

    def add_message(
        self,
        conversation_id: str,
        role: Role,
        content: str,
        image: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MessageRecord:
        ...

    def get_conversation_history(self, conversation_id: str, limit: Optional[int] = None) -> List[HistoryEntry]:
        ...

    def update_conversation_metadata(self, conversation_id: str, metadata: Dict[str, Any]) -> Conversation:
        ...

    def get_device_settings(self, device_id: str) -> DeviceSettings:
        ...

    def get_system_prompt(self, device_id: str) -> str:
        ...

    def update_system_prompt(self, device_id: str, system_prompt: str) -> str:
        ...

import threading
from typing import Set


class ConversationGuard:
    """记录正在处理中的会话 ID，拒绝同一会话的并发轮次。

    不排队：try_acquire 失败的调用方应立即以 ConversationBusyError 失败。
    不同会话互不影响，锁只保护集合本身的检查-插入。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Set[str] = set()

    def try_acquire(self, conversation_id: str) -> bool:
        with self._lock:
            if conversation_id in self._active:
                return False
            self._active.add(conversation_id)
            return True

    def release(self, conversation_id: str) -> None:
        with self._lock:
            self._active.discard(conversation_id)

    def is_active(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._active

import hashlib
import json
import os
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional
from uuid import uuid4

from aurora_core.config.settings import settings
from aurora_core.domain.conversation import (
    ConversationStore,
    Conversation,
    DeviceSettings,
    HistoryEntry,
    MessageRecord,
)
from aurora_core.domain.exceptions import ConversationNotFoundError, PersistenceError
from aurora_core.domain.models import Role
from aurora_core.prompts import load_default_system_prompt


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class JsonConversationStore(ConversationStore):
    """基于本地文件的会话存储。

    目录结构::

        <root>/conversations/<conversation_id>/meta.json
        <root>/conversations/<conversation_id>/messages.jsonl
        <root>/devices/<sha1(device_id)>.json

    同一进程内的并发读改写由内部的 RLock 串行化。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._conv_root = self._root / "conversations"
        self._device_root = self._root / "devices"
        self._conv_root.mkdir(parents=True, exist_ok=True)
        self._device_root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------
    def create_conversation(self, device_id: str, metadata: Optional[Dict[str, Any]] = None) -> Conversation:
        cid = f"c-{uuid4().hex}"
        now = datetime.now(timezone.utc)
        conv = Conversation(
            id=cid,
            device_id=device_id,
            created_at=now,
            updated_at=now,
            metadata=dict(metadata or {}),
        )
        with self._lock:
            cdir = self._conv_root / cid
            try:
                cdir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise PersistenceError(code="STORE_WRITE_ERROR", message=str(e))
            self._write_meta(cdir, conv)
        return conv

    def get_conversation(self, conversation_id: str) -> Conversation:
        if not conversation_id or Path(conversation_id).name != conversation_id:
            raise ConversationNotFoundError(conversation_id)
        meta_path = self._conv_root / conversation_id / "meta.json"
        if not meta_path.exists():
            raise ConversationNotFoundError(conversation_id)
        try:
            data = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(code="STORE_READ_ERROR", message=str(e), conversation_id=conversation_id)
        return self._to_conversation(data)

    def get_or_create_conversation(self, device_id: str) -> Conversation:
        with self._lock:
            existing = self.get_conversations_by_device(device_id)
            if existing:
                return existing[0]
            return self.create_conversation(device_id)

    def get_conversations_by_device(self, device_id: str) -> List[Conversation]:
        items: List[Conversation] = []
        for meta_path in self._conv_root.glob("*/meta.json"):
            try:
                data = json.loads(meta_path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                continue
            if data.get("device_id") == device_id:
                items.append(self._to_conversation(data))
        items.sort(key=lambda c: c.updated_at, reverse=True)
        return items

    def update_conversation_metadata(self, conversation_id: str, metadata: Dict[str, Any]) -> Conversation:
        with self._lock:
            conv = self.get_conversation(conversation_id)
            conv.metadata = dict(metadata)
            self._touch(conv)
            self._write_meta(self._conv_root / conversation_id, conv)
        return conv

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    def add_message(
        self,
        conversation_id: str,
        role: Role,
        content: str,
        image: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MessageRecord:
        with self._lock:
            conv = self.get_conversation(conversation_id)
            message = MessageRecord(
                id=f"m-{uuid4().hex}",
                conversation_id=conversation_id,
                role=role,
                content=content,
                image=image,
                created_at=datetime.now(timezone.utc),
                metadata=dict(metadata or {}),
            )
            cdir = self._conv_root / conversation_id
            try:
                payload = asdict(message)
                payload["created_at"] = _iso(message.created_at)
                line = json.dumps(payload, ensure_ascii=False)
                with (cdir / "messages.jsonl").open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except (OSError, TypeError, ValueError) as e:
                raise PersistenceError(code="STORE_WRITE_ERROR", message=str(e), conversation_id=conversation_id)
            self._touch(conv)
            self._write_meta(cdir, conv)
        return message

    def get_messages(self, conversation_id: str) -> List[MessageRecord]:
        self.get_conversation(conversation_id)
        msgs_path = self._conv_root / conversation_id / "messages.jsonl"
        items: List[MessageRecord] = []
        if not msgs_path.exists():
            return items
        try:
            lines = msgs_path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise PersistenceError(code="STORE_READ_ERROR", message=str(e), conversation_id=conversation_id)
        for line in lines:
            try:
                items.append(self._to_message(json.loads(line)))
            except (ValueError, KeyError):
                continue
        # sort 是稳定的：同一时间戳的消息保持追加顺序
        items.sort(key=lambda m: m.created_at)
        return items

    def get_conversation_history(self, conversation_id: str, limit: Optional[int] = None) -> List[HistoryEntry]:
        msgs = self.get_messages(conversation_id)
        if limit is not None:
            msgs = msgs[-limit:] if limit > 0 else []
        return [HistoryEntry(role=m.role, content=m.content, image=m.image) for m in msgs]

    # ------------------------------------------------------------------
    # Device settings
    # ------------------------------------------------------------------
    def get_device_settings(self, device_id: str) -> DeviceSettings:
        with self._lock:
            path = self._device_path(device_id)
            if path.exists():
                try:
                    data = json.loads(path.read_text(encoding="utf-8"))
                except (OSError, ValueError) as e:
                    raise PersistenceError(code="STORE_READ_ERROR", message=str(e), device_id=device_id)
                return DeviceSettings(
                    device_id=data["device_id"],
                    system_prompt=data["system_prompt"],
                    created_at=_parse_iso(data["created_at"]),
                    updated_at=_parse_iso(data["updated_at"]),
                    metadata=data.get("metadata") or {},
                )
            now = datetime.now(timezone.utc)
            device = DeviceSettings(
                device_id=device_id,
                system_prompt=load_default_system_prompt(),
                created_at=now,
                updated_at=now,
            )
            self._write_device(device)
            return device

    def get_system_prompt(self, device_id: str) -> str:
        return self.get_device_settings(device_id).system_prompt

    def update_system_prompt(self, device_id: str, system_prompt: str) -> str:
        with self._lock:
            device = self.get_device_settings(device_id)
            device.system_prompt = system_prompt
            device.updated_at = max(device.updated_at, datetime.now(timezone.utc))
            self._write_device(device)
        return device.system_prompt

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @staticmethod
    def _touch(conv: Conversation) -> None:
        # updated_at 单调不减，即使系统时钟回拨
        conv.updated_at = max(conv.updated_at, datetime.now(timezone.utc))

    def _device_path(self, device_id: str) -> Path:
        digest = hashlib.sha1(device_id.encode("utf-8")).hexdigest()
        return self._device_root / f"{digest}.json"

    def _write_device(self, device: DeviceSettings) -> None:
        obj = {
            "device_id": device.device_id,
            "system_prompt": device.system_prompt,
            "created_at": _iso(device.created_at),
            "updated_at": _iso(device.updated_at),
            "metadata": device.metadata,
        }
        self._atomic_write(self._device_path(device.device_id), obj)

    def _write_meta(self, cdir: Path, conv: Conversation) -> None:
        obj = {
            "id": conv.id,
            "device_id": conv.device_id,
            "created_at": _iso(conv.created_at),
            "updated_at": _iso(conv.updated_at),
            "metadata": conv.metadata,
        }
        self._atomic_write(cdir / "meta.json", obj)

    @staticmethod
    def _atomic_write(path: Path, obj: Dict[str, Any]) -> None:
        tmp_path = path.parent / f"{path.stem}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _to_conversation(data: Dict[str, Any]) -> Conversation:
        try:
            return Conversation(
                id=data["id"],
                device_id=data["device_id"],
                created_at=_parse_iso(data["created_at"]),
                updated_at=_parse_iso(data["updated_at"]),
                metadata=data.get("metadata") or {},
            )
        except (KeyError, ValueError) as e:
            raise PersistenceError(code="STORE_READ_ERROR", message=f"corrupt conversation meta: {e}")

    @staticmethod
    def _to_message(data: Dict[str, Any]) -> MessageRecord:
        return MessageRecord(
            id=data["id"],
            conversation_id=data["conversation_id"],
            role=data["role"],
            content=data.get("content") or "",
            image=data.get("image"),
            created_at=_parse_iso(data["created_at"]),
            metadata=data.get("metadata") or {},
        )

"""OpenRouter Provider 适配器。

本模块负责：

1. 接收统一的 ChatRequest。
2. 将其转换为 OpenAI 兼容的 /chat/completions 请求格式（图片作为 image_url 片段）。
3. 调用 HTTP 接口并处理网络/API 异常。
4. 将响应 JSON 解析为统一的 ChatResult / ChatMessage 结构（含工具调用）。
"""

import httpx
import json
from typing import Any, Dict, List

from aurora_core.domain.models import (
    ChatRequest,
    ChatResult,
    ChatMessage,
    ChatChoice,
    ChatUsage,
)
from aurora_core.domain.exceptions import NetworkError, ApiError, RateLimitError, ValidationError
from aurora_core.providers.registry import OPENROUTER_CONFIG, ModelConfig
from aurora_core.tools.definitions import ToolDef, ToolCall


IMAGE_DATA_URL_PREFIX = "data:image/jpeg;base64,"


class OpenRouterClient:
    """OpenRouter 提供方客户端实现。"""

    name = "openrouter"

    def __init__(self, settings):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = settings

    def chat(self, req: ChatRequest) -> ChatResult:
        """执行一次非流式对话调用。

        步骤：
        1. 读取模型配置（logical model -> provider model）。
        2. 构造 HTTP 请求 payload。
        3. 发送请求并捕获网络错误/限流/服务端错误。
        4. 使用统一的解析函数构造 ChatResult。
        """

        if not getattr(self._settings, "openrouter_api_key", None):
            raise ValidationError(code="MISSING_API_KEY", message="OPENROUTER_API_KEY not set")
        model_cfg = OPENROUTER_CONFIG.models.get(req.model)
        if model_cfg is None:
            raise ValidationError(code="UNKNOWN_MODEL", message=f"Unknown model: {req.model}")
        payload = self._build_payload(req, model_cfg)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                base = getattr(self._settings, "openrouter_base_url", None) or OPENROUTER_CONFIG.base_url
                resp = client.post(
                    f"{base}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._settings.openrouter_api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="OpenRouter rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        data = resp.json()
        if isinstance(data, dict) and data.get("error"):
            # OpenRouter 在上游模型失败时可能返回 200 + error 字段
            err = data["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise ApiError(code="API_ERROR", message=message or "upstream error", http_status=502)
        return self._parse_response(data, req)

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> dict:
        """将 ChatRequest 转成 OpenRouter 所需的请求 JSON。"""

        msgs = [self._message_to_payload(m, model_cfg) for m in req.messages]
        payload = {
            "model": model_cfg.provider_model,
            "messages": msgs,
            "temperature": req.temperature or model_cfg.default_temperature,
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "top_p": req.top_p,
        }
        if req.tools:
            payload["tools"] = [self._serialize_tool(tool) for tool in req.tools]
            payload["tool_choice"] = req.tool_choice
        return payload

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        """将原始响应 JSON 解析为统一的 ChatResult。"""

        choices: list[ChatChoice] = []
        for i, ch in enumerate(data.get("choices", [])):
            msg = ch.get("message") or {}
            cm = self._build_chat_message(msg)
            choices.append(ChatChoice(index=i, message=cm, finish_reason=ch.get("finish_reason")))
        usage_raw = data.get("usage") or {}
        usage = ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)

    def _serialize_tool(self, tool: ToolDef) -> Dict[str, Any]:
        """把内部的 ToolDef 转成 function tool 描述。"""

        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, param in tool.params.items():
            properties[name] = param.schema or {"type": "string"}
            if param.description:
                properties[name] = {
                    **properties[name],
                    "description": param.description,
                }
            if param.required:
                required.append(name)
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                },
            },
        }

    def _build_chat_message(self, payload: Dict[str, Any]) -> ChatMessage:
        """将单条厂商 message 转换为 ChatMessage，并解析 tool_calls。"""

        tool_calls: List[ToolCall] = []
        for idx, call in enumerate(payload.get("tool_calls") or []):
            func = call.get("function") or {}
            tool_calls.append(
                ToolCall(
                    id=call.get("id") or f"tool_call_{idx}",
                    name=func.get("name") or call.get("name") or "",
                    arguments=self._parse_arguments(func.get("arguments")),
                )
            )
        return ChatMessage(
            role=payload.get("role") or "assistant",
            content=self._content_text(payload.get("content")),
            tool_calls=tool_calls or None,
        )

    @staticmethod
    def _content_text(content: Any) -> str:
        # 部分上游模型会把 content 返回为片段数组
        if isinstance(content, list):
            return "".join(part.get("text", "") for part in content if isinstance(part, dict))
        return content or ""

    @staticmethod
    def _parse_arguments(raw: Any) -> Dict[str, Any]:
        """解析工具调用的 arguments 字段。

        arguments 通常是 JSON 字符串，这里做一层 json.loads 尝试，
        失败时保留原始字符串到 `_raw`，交给工具注册表的参数校验去拒绝。
        """

        if isinstance(raw, dict):
            return raw
        if isinstance(raw, str):
            if not raw.strip():
                return {}
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                return {"_raw": raw}
            return parsed if isinstance(parsed, dict) else {"_raw": raw}
        return {}

    def _message_to_payload(self, message: ChatMessage, model_cfg: ModelConfig) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": message.role}
        if message.role == "system":
            payload["content"] = message.content
            return payload
        parts: List[Dict[str, Any]] = [{"type": "text", "text": message.content}]
        if message.image and model_cfg.supports_vision:
            parts.append({"type": "image_url", "image_url": {"url": f"{IMAGE_DATA_URL_PREFIX}{message.image}"}})
        payload["content"] = parts
        return payload

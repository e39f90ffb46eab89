"""提示词相关的文本与拼装工具。

- load_default_system_prompt: 新设备首次读取时写入的默认系统提示词。
- with_turn_context: 在设备系统提示词后附加本轮的设备/会话 ID，方便模型填写工具参数。
- format_tool_results: 把一轮工具结果合成为一条 user 消息。
"""

from pathlib import Path
from typing import Iterable, Tuple


PROMPTS_DIR = Path(__file__).resolve().parent

EXHAUSTED_FALLBACK = "I tried to help but encountered complexity. Could you rephrase your request?"

TOOL_RESULTS_HEADER = "Here are the results from the tools you just used:"
TOOL_RESULTS_FOOTER = (
    "Please provide a natural response to my original question based on these results. "
    "Do not call any more tools."
)

TURN_CONTEXT_TEMPLATE = """

Context for tool use:
- deviceId: {device_id}
- conversationId: {conversation_id}"""


def load_default_system_prompt(locale: str = "en") -> str:
    """读取内置的默认系统提示词；配置项 default_system_prompt 优先。"""

    from aurora_core.config.settings import settings

    if settings.default_system_prompt:
        return settings.default_system_prompt
    fname = PROMPTS_DIR / locale / "aurora_system.md"
    return fname.read_text(encoding="utf-8").strip()


def with_turn_context(system_prompt: str, device_id: str, conversation_id: str) -> str:
    return system_prompt + TURN_CONTEXT_TEMPLATE.format(
        device_id=device_id,
        conversation_id=conversation_id,
    )


def format_tool_results(results: Iterable[Tuple[str, str]]) -> str:
    """results: (工具名, 结果文本) 序列，顺序与模型发起调用的顺序一致。"""

    lines = "\n".join(f"Result from {name}: {content}" for name, content in results)
    return f"{TOOL_RESULTS_HEADER}\n\n{lines}\n\n{TOOL_RESULTS_FOOTER}"

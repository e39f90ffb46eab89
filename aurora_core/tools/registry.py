import logging
from typing import Dict, List, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from aurora_core.domain.conversation import ConversationStore
from aurora_core.domain.exceptions import ToolInvocationError
from aurora_core.infrastructure.logging.logger import logger
from .definitions import ToolCall, ToolDef, ToolResult
from .handlers import TOOL_PARAMS, ToolFunc, default_tool_defs, default_tools


class ToolRegistry:
    """固定的工具目录：参数校验 + 分发。

    execute 是全函数：未注册的工具、参数校验失败、处理函数异常
    都会被转换成文本结果返回给 Agent 循环。
    """

    def __init__(
        self,
        store: ConversationStore,
        tools: Optional[Dict[str, ToolFunc]] = None,
        tool_defs: Optional[List[ToolDef]] = None,
        params: Optional[Dict[str, Type[BaseModel]]] = None,
    ):
        self._tools = tools if tools is not None else default_tools(store)
        self._tool_defs = tool_defs if tool_defs is not None else default_tool_defs()
        self._params = params if params is not None else TOOL_PARAMS

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def tool_defs(self) -> List[ToolDef]:
        return list(self._tool_defs)

    def validate(self, call: ToolCall) -> BaseModel:
        model = self._params.get(call.name)
        if model is None:
            raise ToolInvocationError(call.name, f"Tool not registered: {call.name}")
        try:
            return model.model_validate(call.arguments or {})
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}" for err in exc.errors()
            )
            raise ToolInvocationError(call.name, f"Invalid parameters for {call.name}: {problems}") from exc

    def execute(self, call: ToolCall) -> ToolResult:
        func = self._tools.get(call.name)
        try:
            if func is None:
                raise ToolInvocationError(call.name, f"Tool not registered: {call.name}")
            params = self.validate(call)
            content = func(params)
        except ToolInvocationError as exc:
            logger.log(
                logging.WARNING,
                "Tool invocation rejected",
                extra={"extra": {"tool_name": call.name, "tool_call_id": call.id, "error": exc.message}},
            )
            content = exc.message
        except Exception as exc:
            logger.exception(
                "Tool handler crashed",
                extra={"extra": {"tool_name": call.name, "tool_call_id": call.id}},
            )
            content = f"Error running {call.name}: {exc}"
        return ToolResult(call_id=call.id, content=content)

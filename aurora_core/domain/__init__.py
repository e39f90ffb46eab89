"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult 以及 TurnRequest / TurnResult。
- conversation: 会话、消息、设备设置的存储模型及 ConversationStore 抽象。
- exceptions: 业务异常类型定义。
"""

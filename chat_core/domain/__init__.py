"""领域层模型。

包含：
- models: Message / ChatRequest / TurnState 等数据结构。
- conversation: 有容量上限的会话日志 ConversationLog。
- exceptions: 业务异常类型定义。
"""

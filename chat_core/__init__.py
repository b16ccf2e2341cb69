"""Chat Core 顶层包。

该包提供流式聊天客户端的核心实现，
包括配置加载、领域模型、Provider 适配、流式管线、回合控制与一个简单的 tkinter 窗口。
"""

from chat_core.api.service import ChatSession, build_session, run_single_turn

__all__ = ["ChatSession", "build_session", "run_single_turn"]

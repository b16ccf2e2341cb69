"""对外 API 服务模块。

提供简化的函数接口，把配置、会话日志、Provider、管线和控制器组装在一起，
供 GUI 与命令行入口调用。
"""

from dataclasses import dataclass
from typing import Callable, Optional

from chat_core.config.settings import Settings, settings
from chat_core.controller import TurnController
from chat_core.domain.conversation import ConversationLog
from chat_core.domain.models import Role, TurnState
from chat_core.infrastructure.logging.logger import logger
from chat_core.pipeline.scheduler import QueuedScheduler, Scheduler
from chat_core.pipeline.turn_pipeline import TurnPipeline
from chat_core.providers import create_provider
from chat_core.providers.base import StreamingProvider


@dataclass
class ChatSession:
    """一次进程内的聊天会话：会话日志 + 回合控制器。"""

    store: ConversationLog
    controller: TurnController


def build_session(
    scheduler: Scheduler,
    cfg: Optional[Settings] = None,
    provider: Optional[StreamingProvider] = None,
    reset_input: Optional[Callable[[], None]] = None,
    on_state_change: Optional[Callable[[TurnState], None]] = None,
) -> ChatSession:
    """根据配置创建会话。

    Args:
        scheduler: 单线程上下文的调度器（GUI 用 TkScheduler，无界面用 QueuedScheduler）
        cfg: 配置（可选，默认全局 settings）
        provider: Provider 实例（可选，默认按配置创建）
        reset_input: 提交成功后清空输入框的回调
        on_state_change: 回合状态变化回调，用于启用/禁用发送按钮
    """
    cfg = cfg or settings
    store = ConversationLog(max_messages=cfg.max_messages)
    pipeline = TurnPipeline(
        provider=provider or create_provider(cfg.default_provider, cfg),
        store=store,
        scheduler=scheduler,
        model=cfg.default_model,
        debounce_interval=cfg.debounce_ms / 1000.0,
    )
    controller = TurnController(
        store,
        pipeline,
        reset_input=reset_input,
        on_state_change=on_state_change,
    )
    logger.info(
        "session.created",
        extra={"extra": {"provider": cfg.default_provider, "model": cfg.default_model}},
    )
    return ChatSession(store=store, controller=controller)


def run_single_turn(
    user_input: str,
    cfg: Optional[Settings] = None,
    provider: Optional[StreamingProvider] = None,
    timeout: float = 300.0,
) -> str:
    """无界面地运行一轮对话，返回助手消息的最终内容。

    当前线程充当单线程上下文，直到回合结束或超时。
    输入为空白时不会发起请求，返回空字符串。
    """
    scheduler = QueuedScheduler()
    session = build_session(scheduler, cfg=cfg, provider=provider)
    if not session.controller.submit(user_input):
        return ""
    if not scheduler.run_until(lambda: not session.controller.state.active, timeout=timeout):
        raise TimeoutError(f"turn did not finish within {timeout}s")
    replies = [m for m in session.store.snapshot() if m.role is Role.ASSISTANT]
    return replies[-1].content if replies else ""

"""回合控制器：保证同一时间最多只有一轮对话在进行。

状态机只有两个状态：IDLE 与 RUNNING。

- IDLE --submit(去除首尾空白后非空)--> RUNNING
- RUNNING --本轮结束（成功或失败）--> IDLE

RUNNING 期间的再次提交是静默的空操作（通常来自重复按键），不排队也不打断当前回合。

用户消息与助手占位消息总是成对写入日志；UI 回调（清空输入框、重绘、状态通知）
的失败只记录日志，不会中断提交流程。
"""

import itertools
from typing import Callable, Optional

from chat_core.domain.conversation import ConversationLog
from chat_core.domain.exceptions import NotifyError
from chat_core.domain.models import Message, Role, TurnState
from chat_core.infrastructure.logging.logger import logger
from chat_core.pipeline.turn_pipeline import TurnPipeline


class TurnController:
    def __init__(
        self,
        store: ConversationLog,
        pipeline: TurnPipeline,
        reset_input: Optional[Callable[[], None]] = None,
        on_state_change: Optional[Callable[[TurnState], None]] = None,
    ):
        self._store = store
        self._pipeline = pipeline
        self._reset_input = reset_input
        self._on_state_change = on_state_change
        self._ids = itertools.count()
        self._state = TurnState.idle()

    @property
    def state(self) -> TurnState:
        return self._state

    def submit(self, text: str) -> bool:
        """提交用户输入，返回是否真正启动了一轮对话。"""

        if self._state.active:
            logger.debug("submit.ignored_running", extra={"extra": {"target_message_id": self._state.target_message_id}})
            return False
        content = (text or "").strip()
        if not content:
            logger.debug("submit.ignored_empty")
            return False

        user_id = next(self._ids)
        target_id = next(self._ids)
        self._append(Message(id=user_id, role=Role.USER, content=content))
        self._append(Message(id=target_id, role=Role.ASSISTANT, content=""))

        self._set_state(self._state.start(target_id))
        try:
            self._pipeline.start_turn(
                self._store.snapshot(),
                target_id,
                on_finished=self._release,
            )
        except Exception:
            self._set_state(self._state.finish())
            raise
        if self._reset_input is not None:
            self._guarded("submit.reset_input_failed", self._reset_input)
        return True

    def _append(self, message: Message) -> None:
        # 消息已写入，只有重绘失败；不能让它打断成对写入
        try:
            self._store.append(message)
        except NotifyError:
            logger.exception("submit.redraw_failed", extra={"extra": {"message_id": message.id}})

    def _release(self) -> None:
        logger.info(
            "turn.released",
            extra={"extra": {"target_message_id": self._state.target_message_id, "messages": len(self._store)}},
        )
        self._set_state(self._state.finish())

    def _set_state(self, state: TurnState) -> None:
        self._state = state
        if self._on_state_change is not None:
            self._guarded("turn.state_listener_failed", self._on_state_change, state)

    @staticmethod
    def _guarded(event: str, action: Callable, *args) -> None:
        try:
            action(*args)
        except Exception:
            logger.exception(event)

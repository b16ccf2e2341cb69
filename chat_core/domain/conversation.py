"""会话日志：有序、有容量上限的消息列表。

ConversationLog 只在单线程上下文（UI 调度线程）中被访问：
用户提交路径负责 append，TurnPipeline 负责修改助手消息内容。
后台线程从不直接触碰它，因此这里不需要锁。
"""

from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from chat_core.domain.exceptions import NotifyError, ValidationError
from chat_core.domain.models import Message
from chat_core.infrastructure.logging.logger import logger

Listener = Callable[[], None]

MAX_MESSAGES = 200


class ConversationLog:
    def __init__(self, max_messages: int = MAX_MESSAGES):
        if max_messages < 2 or max_messages % 2:
            # 按整轮（用户 + 助手）淘汰，上限必须是偶数
            raise ValidationError(
                code="INVALID_MAX_MESSAGES",
                message=f"max_messages must be an even number >= 2, got {max_messages}",
            )
        self._max_messages = max_messages
        self._messages: List[Message] = []
        self._listeners: List[Listener] = []

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def __len__(self) -> int:
        return len(self._messages)

    def subscribe(self, listener: Listener) -> None:
        """注册重绘回调，每次变更后调用一次。

        回调抛出的异常不会阻止其他回调，也不会回滚变更；变更方法在所有回调执行完后抛出 NotifyError。
        """

        self._listeners.append(listener)

    def append(self, message: Message) -> None:
        """追加一条消息（id 由调用方预先分配），超出上限时淘汰最早的一整轮。"""

        if self._messages and message.id <= self._messages[-1].id:
            raise ValidationError(
                code="NON_MONOTONIC_ID",
                message=f"message id {message.id} is not greater than {self._messages[-1].id}",
            )
        self._messages.append(message)
        if len(self._messages) > self._max_messages:
            del self._messages[:2]
        self._notify()

    def find_mutable(self, message_id: int) -> Optional[Message]:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def set_content(self, message_id: int, content: str) -> bool:
        message = self.find_mutable(message_id)
        if message is None:
            return False
        message.content = content
        self._notify()
        return True

    def append_content(self, message_id: int, text: str) -> bool:
        message = self.find_mutable(message_id)
        if message is None:
            return False
        message.content += text
        self._notify()
        return True

    def snapshot(self) -> Tuple[Message, ...]:
        """返回当前日志的副本，供渲染和构造请求使用。"""

        return tuple(replace(m) for m in self._messages)

    def _notify(self) -> None:
        # 变更已经生效；每个回调单独调用，失败逐个记录，全部调用完后再统一上报
        failures = []
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as exc:
                failures.append(exc)
                logger.exception(
                    "store.listener_failed",
                    extra={"extra": {"listener": getattr(listener, "__qualname__", repr(listener))}},
                )
        if failures:
            raise NotifyError(failed=len(failures), first_error=failures[0])

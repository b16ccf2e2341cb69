"""单轮对话的流式管线。

一轮对话的数据流：

1. start_turn 在单线程上下文中对历史消息做快照（排除正在填充的助手占位消息）。
2. 后台守护线程调用 Provider.stream_fragments，每拿到一个片段立即放入无界 FIFO 通道，
   并通过 scheduler.call_soon 唤醒消费端；结束时放入一个 TurnOutcome 作为通道关闭标记。
3. 消费端 _drain 在单线程上下文中累积片段，按防抖间隔把累积文本写回 ConversationLog。
4. 收到 TurnOutcome 后无条件做最后一次刷新，出错时在已有内容后追加错误提示，
   最后在 finally 中调用 on_finished 释放回合锁。

后台线程从不直接修改 ConversationLog 或回合状态。
"""

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, Iterable, Optional, Union
from uuid import uuid4

from chat_core.domain.conversation import ConversationLog
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.models import ChatMessage, ChatRequest, Message, TurnOutcome
from chat_core.infrastructure.logging.logger import logger
from chat_core.pipeline.scheduler import Scheduler
from chat_core.providers.base import StreamingProvider

DEBOUNCE_INTERVAL = 0.05  # 秒

Clock = Callable[[], float]
ChannelItem = Union[str, TurnOutcome]


class StreamingTurn:
    """一轮对话的运行时状态：通道、累积文本、防抖计时。"""

    def __init__(
        self,
        provider: StreamingProvider,
        store: ConversationLog,
        scheduler: Scheduler,
        request: ChatRequest,
        target_message_id: int,
        on_finished: Callable[[], None],
        debounce_interval: float = DEBOUNCE_INTERVAL,
        clock: Clock = time.monotonic,
    ):
        self.turn_id = f"tr-{uuid4().hex}"
        self.request = request
        self.target_message_id = target_message_id
        self._provider = provider
        self._store = store
        self._scheduler = scheduler
        self._on_finished = on_finished
        self._debounce_interval = debounce_interval
        self._clock = clock
        self._channel: "queue.Queue[ChannelItem]" = queue.Queue()
        self._text = ""
        self._last_flush = clock()
        self._flushing = True
        self._finished = False
        self._wake_failed = False
        self._thread = threading.Thread(
            target=self._produce,
            name=f"turn-{target_message_id}",
            daemon=True,
        )
        self._log_ctx: Dict[str, Any] = {
            "turn_id": self.turn_id,
            "target_message_id": target_message_id,
            "provider": getattr(provider, "name", "unknown"),
        }

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self) -> None:
        self._log(logging.INFO, "turn.start", history=len(self.request.messages))
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    # ---- 后台线程 ----

    def _produce(self) -> None:
        count = 0
        error = None
        try:
            for fragment in self._provider.stream_fragments(self.request):
                count += 1
                self._send(fragment)
        except BusinessError as exc:
            error = exc.message
            self._log(logging.WARNING, "turn.stream_failed", code=exc.code, error=exc.message, fragments=count)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            self._log(logging.ERROR, "turn.stream_crashed", exc_info=True, error=error, fragments=count)
        self._send(TurnOutcome(error=error, fragments=count))

    def _send(self, item: ChannelItem) -> None:
        self._channel.put(item)
        try:
            self._scheduler.call_soon(self._drain)
        except Exception:
            # 消费端已经不在（例如窗口关闭），继续把网络流读完，但只记一次日志
            if not self._wake_failed:
                self._wake_failed = True
                self._log(logging.WARNING, "turn.wake_failed", exc_info=True)

    # ---- 单线程上下文 ----

    def _drain(self) -> None:
        while not self._finished:
            try:
                item = self._channel.get_nowait()
            except queue.Empty:
                return
            if isinstance(item, TurnOutcome):
                self._finish(item)
            else:
                self._text += item
                self._maybe_flush()

    def _maybe_flush(self) -> None:
        if not self._flushing:
            return
        now = self._clock()
        if now - self._last_flush < self._debounce_interval:
            return
        self._last_flush = now
        try:
            self._store.set_content(self.target_message_id, self._text)
        except Exception:
            self._flushing = False
            self._log(logging.ERROR, "turn.update_failed", exc_info=True)

    def _finish(self, outcome: TurnOutcome) -> None:
        self._finished = True
        try:
            self._guarded("turn.final_flush_failed", self._store.set_content, self.target_message_id, self._text)
            if outcome.error is not None:
                self._guarded("turn.finalize_failed", self._append_error, outcome.error)
        finally:
            self._on_finished()
            self._log(
                logging.INFO,
                "turn.end",
                ok=outcome.ok,
                fragments=outcome.fragments,
                chars=len(self._text),
            )

    def _append_error(self, error: str) -> None:
        message = self._store.find_mutable(self.target_message_id)
        if message is None:
            return
        separator = "\n\n" if message.content else ""
        self._store.append_content(self.target_message_id, f"{separator}Error: {error}")

    def _guarded(self, event: str, action: Callable[..., Any], *args: Any) -> None:
        try:
            action(*args)
        except Exception:
            self._log(logging.ERROR, event, exc_info=True)

    def _log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        payload = dict(self._log_ctx)
        payload.update(fields)
        logger.log(level, message, exc_info=exc_info, extra={"extra": payload})


class TurnPipeline:
    """把 Provider、会话日志和调度器组装起来，每次 start_turn 启动一轮 StreamingTurn。"""

    def __init__(
        self,
        provider: StreamingProvider,
        store: ConversationLog,
        scheduler: Scheduler,
        model: str,
        debounce_interval: float = DEBOUNCE_INTERVAL,
        clock: Clock = time.monotonic,
    ):
        self._provider = provider
        self._store = store
        self._scheduler = scheduler
        self._model = model
        self._debounce_interval = debounce_interval
        self._clock = clock

    def start_turn(
        self,
        history: Iterable[Message],
        target_message_id: int,
        on_finished: Callable[[], None],
    ) -> StreamingTurn:
        """启动一轮对话。

        history 会被立即复制为 ChatMessage 快照，之后会话日志的任何修改都不影响本次请求。
        """

        snapshot = [
            ChatMessage(role=m.role.value, content=m.content)
            for m in history
            if m.id != target_message_id
        ]
        turn = StreamingTurn(
            provider=self._provider,
            store=self._store,
            scheduler=self._scheduler,
            request=ChatRequest(model=self._model, messages=snapshot),
            target_message_id=target_message_id,
            on_finished=on_finished,
            debounce_interval=self._debounce_interval,
            clock=self._clock,
        )
        turn.start()
        return turn

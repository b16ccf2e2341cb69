"""统一的消息与请求数据模型。

本模块定义了会话日志与 Provider 之间共享的数据结构：

- Message: 会话日志中的一条消息，content 可变，只由 ConversationLog 修改。
- ChatMessage / ChatRequest: 发给 Provider 的请求快照，与日志中的对象完全解耦。
- TurnState: 当前是否有一轮对话在进行，以及正在填充的助手消息 id。
- TurnOutcome: 后台线程的一次性终止结果，作为通道中的最后一项送达。
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Literal, Optional


class Role(str, Enum):
    """消息角色，取值与 OpenAI chat/completions 的 role 字段一致。"""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """会话日志中的一条消息。

    - id: 由 TurnController 预先分配的单调递增整数。
    - role: USER 或 ASSISTANT。
    - content: 可变文本；助手消息在流式过程中被逐步覆盖。
    """

    id: int
    role: Role
    content: str = ""


# 请求里使用的角色字面量
WireRole = Literal["user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """请求中的一条消息（不可变快照）。"""

    role: WireRole
    content: str


@dataclass(frozen=True)
class ChatRequest:
    """一次完整的流式聊天请求。

    model 是逻辑模型名（如 "chat"），由 registry 映射为真实模型 ID；
    找不到映射时按原样作为厂商模型 ID 使用。
    """

    model: str
    messages: List[ChatMessage]


class TurnPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class TurnState:
    """单轮对话的锁状态（一个许可的信号量）。

    状态值不可变，每次迁移都返回新的 TurnState，便于测试直接断言迁移。
    """

    active: bool = False
    target_message_id: Optional[int] = None

    @classmethod
    def idle(cls) -> "TurnState":
        return cls()

    @property
    def phase(self) -> TurnPhase:
        return TurnPhase.RUNNING if self.active else TurnPhase.IDLE

    def start(self, target_message_id: int) -> "TurnState":
        if self.active:
            raise RuntimeError("turn already running")
        return TurnState(active=True, target_message_id=target_message_id)

    def finish(self) -> "TurnState":
        return TurnState.idle()


@dataclass(frozen=True)
class TurnOutcome:
    """后台流式调用的终止结果。

    error 为 None 表示正常结束；否则为已经转换成纯文本的错误信息。
    """

    error: Optional[str] = None
    fragments: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

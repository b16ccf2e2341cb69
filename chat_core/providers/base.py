"""Provider 抽象接口。

TurnPipeline 不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- 每个厂商实现一个 StreamingProvider（如 OpenAIClient）。
- 负责：把 ChatRequest 转成 HTTP 请求，并把事件流解析为纯文本片段。
"""

from typing import Iterator, Protocol

from chat_core.domain.models import ChatRequest


class StreamingProvider(Protocol):
    """流式 LLM Provider 协议。

    - name: Provider 名称，用于日志。
    - stream_fragments(req): 阻塞式地逐个产出文本片段；出错时抛出 BusinessError。
    """

    name: str

    def stream_fragments(self, req: ChatRequest) -> Iterator[str]:
        ...

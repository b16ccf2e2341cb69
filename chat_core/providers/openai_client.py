"""OpenAI 兼容 Provider 适配器（流式）。

本模块负责：

1. 接收 ChatRequest，转换为 chat/completions 的 JSON 请求体（stream=true）。
2. 通过 httpx 打开一次流式 POST 请求，逐行读取 server-sent events。
3. 把每个事件里的 choices[0].delta.content 作为一个文本片段 yield 出去。

事件行的处理规则：
- 空行、event:/id:/retry:/注释行忽略；
- "data: [DONE]" 结束整个序列，后续行不再读取；
- 无法解析的 data 行（心跳、保活等）静默跳过，只在 DEBUG 级别记录；
- 只有 role 或 finish_reason 的增量不产出片段。
"""

import json
from typing import Any, Dict, Iterator, Optional, Tuple

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, NetworkError, RateLimitError, StreamReadError, ValidationError
from chat_core.domain.models import ChatRequest
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.registry import OPENAI_CONFIG, ProviderConfig

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def parse_event_line(line: str) -> Tuple[bool, Optional[str]]:
    """解析一行事件流，返回 (是否结束, 文本片段)。"""

    if not line or not line.startswith(DATA_PREFIX):
        return False, None
    data = line[len(DATA_PREFIX):]
    if data.startswith(" "):
        data = data[1:]
    if data == DONE_SENTINEL:
        return True, None
    try:
        envelope = json.loads(data)
    except json.JSONDecodeError as exc:
        fields = {"error": str(exc), "length": len(data)}
        if not settings.log_redact_content:
            fields["line"] = data[:200]
        logger.debug("stream.skip_undecodable_line", extra={"extra": fields})
        return False, None
    return False, _delta_content(envelope)


def _delta_content(envelope: Any) -> Optional[str]:
    if not isinstance(envelope, dict):
        logger.debug("stream.skip_non_object", extra={"extra": {"type": type(envelope).__name__}})
        return None
    choices = envelope.get("choices") or []
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    if isinstance(content, str) and content:
        return content
    return None


class OpenAIClient:
    """OpenAI 兼容的流式客户端。

    - name: Provider 名称（供日志/调试使用）。
    - stream_fragments: 对外统一调用入口，阻塞式地产出文本片段。
    """

    name = "openai"

    def __init__(self, settings, provider_config: ProviderConfig = OPENAI_CONFIG):
        # Settings 里包含 base_url、api_key、超时等配置；provider_config 来自 registry
        self._settings = settings
        self._provider_config = provider_config

    def stream_fragments(self, req: ChatRequest) -> Iterator[str]:
        """执行一次流式对话调用，逐个 yield 文本片段。

        步骤：
        1. 解析逻辑模型名并构造 payload。
        2. 发送请求；连接阶段的错误包装为 NetworkError，HTTP 错误包装为 ApiError/RateLimitError。
        3. 逐行读取事件流；读取过程中的 I/O 错误包装为 StreamReadError，
           已经产出的片段保持有效。
        """

        if not getattr(self._settings, "openai_api_key", None):
            raise ValidationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        payload = self._build_payload(req)
        base = getattr(self._settings, "openai_base_url", None) or self._provider_config.base_url
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{base}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._settings.openai_api_key}",
                        "Content-Type": "application/json",
                        "Accept": "text/event-stream",
                    },
                ) as resp:
                    self._raise_for_status(resp)
                    yield from self._iter_fragments(resp)
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、TLS 握手失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=f"API request failed: {e}")

    @staticmethod
    def _iter_fragments(resp) -> Iterator[str]:
        # 读取阶段的错误单独包装，StreamReadError 不是 httpx 异常，不会被外层再次改写
        lines = iter(resp.iter_lines())
        emitted = 0
        while True:
            try:
                line = next(lines)
            except StopIteration:
                return
            except httpx.HTTPError as e:
                raise StreamReadError(message=f"Failed to read response: {e}", fragments=emitted)
            done, fragment = parse_event_line(line.rstrip("\r"))
            if done:
                return
            if fragment:
                emitted += 1
                yield fragment

    def _raise_for_status(self, resp) -> None:
        if resp.status_code < 400:
            return
        try:
            body = resp.read().decode("utf-8", errors="replace")
        except httpx.HTTPError:
            body = ""
        if resp.status_code == 429:
            # 限流同样只尝试一次，交给用户手动重试
            raise RateLimitError(code="RATE_LIMIT", message="API request failed: rate limited (HTTP 429)", http_status=429)
        raise ApiError(
            code="API_ERROR",
            message=f"API request failed: HTTP {resp.status_code} {body}".rstrip(),
            http_status=resp.status_code,
        )

    def _build_payload(self, req: ChatRequest) -> Dict[str, Any]:
        """将 ChatRequest 转成 chat/completions 所需的请求 JSON。"""

        return {
            "model": self._provider_config.resolve_model(req.model),
            "messages": [{"role": m.role, "content": m.content} for m in req.messages],
            "stream": True,
        }

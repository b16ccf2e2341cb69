"""LLM Provider 集成层。

该包下的模块负责：
- 定义流式 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (openai_client)。
"""

from typing import Optional

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ValidationError
from chat_core.providers.base import StreamingProvider
from chat_core.providers.openai_client import OpenAIClient
from chat_core.providers.registry import get_provider_config


def create_provider(name: Optional[str] = None, cfg=None) -> StreamingProvider:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    cfg = cfg or settings
    provider_name = name or getattr(cfg, "default_provider", "openai")
    try:
        provider_config = get_provider_config(provider_name)
    except KeyError as e:
        raise ValidationError(code="UNKNOWN_PROVIDER", message=str(e))
    return OpenAIClient(cfg, provider_config)

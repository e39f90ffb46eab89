"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供各厂商的具体实现 (openrouter_client)。
"""

from typing import Optional

from aurora_core.config.settings import settings
from aurora_core.providers.base import ProviderClient
from aurora_core.providers.openrouter_client import OpenRouterClient
from aurora_core.providers.registry import get_provider_config


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    provider_name = (name or getattr(settings, "default_provider", "openrouter")).lower()
    # 未知名称直接抛 KeyError，避免静默回退到错误的厂商
    cfg = get_provider_config(provider_name)
    if cfg.name == "openrouter":
        return OpenRouterClient(settings)
    raise KeyError(f"Provider not implemented: {provider_name!r}")

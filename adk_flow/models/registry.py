"""LlmRegistry - 模型名称到 LLM 实现的显式注册表"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from ..errors import ConfigurationError
from .base_llm import BaseLlm

logger = logging.getLogger(__name__)


class LlmRegistry:
    """
    LLM 注册表

    不使用模块级全局变量：由调用方创建实例并传给 Runner，
    再经 InvocationContext 传递到 Agent。

    两类注册项:
    - 类注册：模型名称正则 -> BaseLlm 子类（以及构造参数）
    - 实例注册：名称 -> 已构造好的 BaseLlm 实例

    Example:
        registry = LlmRegistry()
        registry.register_llm(OpenAILlm, api_base="http://localhost:8000/v1")
        llm = registry.new_llm("gpt-4o")
    """

    def __init__(self):
        self._classes: list[tuple[re.Pattern[str], type[BaseLlm], dict[str, Any]]] = []
        self._instances: dict[str, BaseLlm] = {}

    # ==================== 类注册 ====================

    def register(self, model_name_regex: str, llm_cls: type[BaseLlm], **defaults: Any) -> None:
        """注册一个模型名称正则"""
        self._classes.append((re.compile(model_name_regex), llm_cls, defaults))

    def register_llm(self, llm_cls: type[BaseLlm], **defaults: Any) -> None:
        """注册 LLM 类支持的全部模型正则"""
        for pattern in llm_cls.supported_models():
            self.register(pattern, llm_cls, **defaults)

    def resolve(self, model: str) -> Optional[type[BaseLlm]]:
        entry = self._resolve_entry(model)
        return entry[1] if entry else None

    def new_llm(self, model: str) -> BaseLlm:
        """根据模型名称创建 LLM 实例"""
        entry = self._resolve_entry(model)
        if entry is None:
            raise ConfigurationError(f"No LLM class found for model: {model}")
        _, llm_cls, defaults = entry
        logger.debug(f"[LlmRegistry] Creating {llm_cls.__name__} for model={model}")
        return llm_cls(model=model, **defaults)

    def _resolve_entry(self, model: str) -> Optional[tuple[re.Pattern[str], type[BaseLlm], dict[str, Any]]]:
        for entry in self._classes:
            if entry[0].fullmatch(model):
                return entry
        return None

    # ==================== 实例注册 ====================

    def register_instance(self, name: str, llm: BaseLlm) -> None:
        self._instances[name] = llm

    def get_instance(self, name: str) -> BaseLlm:
        if name not in self._instances:
            raise ConfigurationError(f"Model '{name}' not found in registry")
        return self._instances[name]

    def has_instance(self, name: str) -> bool:
        return name in self._instances

    def unregister_instance(self, name: str) -> None:
        self._instances.pop(name, None)

    def get_model_or_create(self, name: str) -> BaseLlm:
        """优先返回已注册实例，否则按正则创建"""
        if name in self._instances:
            return self._instances[name]
        return self.new_llm(name)

    def clear(self) -> None:
        self._classes.clear()
        self._instances.clear()

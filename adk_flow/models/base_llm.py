"""LLM 抽象基类"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncGenerator

from pydantic import BaseModel, ConfigDict

from .llm_request import LlmRequest
from .llm_response import LlmResponse


class BaseLlm(BaseModel, ABC):
    """
    LLM 抽象基类（使用 Pydantic）

    设计理念:
    - 统一生成器接口：无论流式/非流式，都返回 AsyncGenerator
    - 通过 stream 参数区分：非流式只 yield 一次，流式 yield 多次
    - 让 Flow 可以统一处理，无需区分流式/非流式
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    model: str = ''
    """模型名称"""

    @abstractmethod
    async def generate_content_async(
        self,
        llm_request: LlmRequest,
        stream: bool = False,
    ) -> AsyncGenerator[LlmResponse, None]:
        """
        异步生成

        Args:
            llm_request: LLM 请求
            stream: 是否流式生成

        Yields:
            - stream=False: 只 yield 一次完整响应
            - stream=True: yield 多个部分响应 (partial=True) + 最后一个完整响应
        """
        raise NotImplementedError
        yield  # 保持为 AsyncGenerator

    def get_model(self, llm_request: LlmRequest) -> str:
        """获取实际使用的模型名称"""
        return llm_request.model or self.model

    @classmethod
    def supported_models(cls) -> list[str]:
        """返回支持的模型名称正则列表"""
        return []

"""请求/响应处理器基类"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, AsyncGenerator

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from ..events import Event
    from ..models.llm_request import LlmRequest
    from ..models.llm_response import LlmResponse


class BaseLlmRequestProcessor(ABC):
    """
    请求处理器

    在 LLM 请求发送前按固定顺序执行，原地修改请求，
    也可以产生事件（例如代码执行、认证恢复后的函数响应）。
    """

    @abstractmethod
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: 'LlmRequest',
    ) -> AsyncGenerator['Event', None]:
        """处理请求，可 yield 事件"""
        raise NotImplementedError
        yield  # 保持为 AsyncGenerator


class BaseLlmResponseProcessor(ABC):
    """响应处理器：在 LLM 响应返回后原地修改响应，也可以产生事件"""

    @abstractmethod
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_response: 'LlmResponse',
    ) -> AsyncGenerator['Event', None]:
        raise NotImplementedError
        yield  # 保持为 AsyncGenerator

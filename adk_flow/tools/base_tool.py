"""BaseTool - 工具基类，定义执行契约和重试策略"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ..errors import ToolExecutionError
from ..types import FunctionDeclaration

if TYPE_CHECKING:
    from ..models.llm_request import LlmRequest
    from .tool_context import ToolContext

logger = logging.getLogger(__name__)

_TOOL_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9_]+$')


class BaseTool(BaseModel):
    """
    工具基类

    核心设计理念: 工具是带有描述的能力，LLM 可以理解并调用

    执行契约:
    - get_declaration: 返回函数声明（None 表示不向模型暴露）
    - run_async: 真正的执行逻辑，子类实现
    - safe_execute: Flow 调用的入口，负责参数校验、重试和错误降级
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str

    is_long_running: bool = False
    """长时间运行的工具：首次调用可以不返回结果，稍后再恢复"""

    # === 重试策略 ===
    should_retry_on_failure: bool = True
    max_retry_attempts: int = 3
    base_retry_delay: float = 1.0
    max_retry_delay: float = 10.0

    @field_validator('name', mode='after')
    @classmethod
    def validate_name(cls, value: str) -> str:
        if not _TOOL_NAME_PATTERN.match(value):
            raise ValueError(
                f"Invalid tool name: '{value}'. "
                "Only letters, digits and underscores are allowed."
            )
        return value

    @field_validator('description', mode='after')
    @classmethod
    def validate_description(cls, value: str) -> str:
        if len(value.strip()) < 3:
            raise ValueError("Tool description must be at least 3 characters long.")
        return value

    def get_declaration(self) -> Optional[FunctionDeclaration]:
        """函数声明（供 LLM 理解），默认不暴露"""
        return None

    async def run_async(self, args: dict[str, Any], tool_context: 'ToolContext') -> Any:
        """
        异步执行工具（子类应覆盖此方法）

        Args:
            args: 模型给出的参数
            tool_context: 本次调用的工具上下文

        Returns:
            工具执行结果；长时间运行的工具可以返回 None
        """
        raise NotImplementedError(f"Tool {self.name} must implement run_async")

    def validate_arguments(self, args: dict[str, Any]) -> Optional[str]:
        """校验参数，返回错误描述；None 表示通过"""
        declaration = self.get_declaration()
        if declaration is None or not declaration.parameters:
            return None
        missing = [
            name
            for name in declaration.parameters.get('required', [])
            if name not in args
        ]
        if missing:
            return f"Missing required arguments: {', '.join(missing)}"
        return None

    async def process_llm_request(self, tool_context: 'ToolContext', llm_request: 'LlmRequest') -> None:
        """在请求发出前把自己注册到请求中"""
        llm_request.append_tools([self])

    # ==================== 安全执行 ====================

    async def safe_execute(self, args: dict[str, Any], tool_context: 'ToolContext') -> Any:
        """
        带校验和重试的执行

        - 参数无效：返回 {"error": "Invalid arguments", ...}，不执行
        - 未启用重试：执行失败抛出 ToolExecutionError
        - 启用重试：指数退避 + 抖动，耗尽后返回 {"error": "Execution failed", ...}
        """
        validation_error = self.validate_arguments(args)
        if validation_error:
            logger.warning(f"[{self.name}] Invalid arguments: {validation_error}")
            return {
                'error': 'Invalid arguments',
                'message': validation_error,
                'tool': self.name,
            }

        if not self.should_retry_on_failure:
            try:
                return await self.run_async(args, tool_context)
            except Exception as e:
                raise ToolExecutionError(self.name, str(e)) from e

        attempts = max(1, self.max_retry_attempts)
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                return await self.run_async(args, tool_context)
            except Exception as e:
                last_error = e
                if attempt >= attempts:
                    break
                delay = self._compute_backoff(attempt)
                logger.warning(
                    f"[{self.name}] Attempt {attempt}/{attempts} failed: {e}. "
                    f"Retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

        logger.error(f"[{self.name}] All {attempts} attempts failed: {last_error}")
        return {
            'error': 'Execution failed',
            'message': str(last_error),
            'tool': self.name,
        }

    def _compute_backoff(self, attempt: int) -> float:
        """base * 2^(attempt-1) 加上最多 50% 的抖动，不超过 max_retry_delay"""
        delay = self.base_retry_delay * (2 ** (attempt - 1))
        delay += random.uniform(0, delay * 0.5)
        return min(delay, self.max_retry_delay)

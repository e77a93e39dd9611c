"""BaseCodeExecutor - 代码执行器基类"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from .code_execution_utils import CodeExecutionInput, CodeExecutionResult

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext


class BaseCodeExecutor(BaseModel, abc.ABC):
    """
    代码执行器

    模型在响应中写出代码块（按 code_block_delimiters 识别），
    执行器运行代码并把结果以 execution_result_delimiters 包裹后交回模型。

    Attributes:
        optimize_data_file: 是否自动预处理对话中的 CSV 数据文件
        stateful: 是否在多次执行之间保留变量
        error_retry_attempts: 同一次调用中允许的连续失败次数
    """

    optimize_data_file: bool = False
    stateful: bool = False
    error_retry_attempts: int = 2
    code_block_delimiters: list[tuple[str, str]] = Field(
        default_factory=lambda: [
            ('```tool_code\n', '\n```'),
            ('```python\n', '\n```'),
        ]
    )
    execution_result_delimiters: tuple[str, str] = ('```tool_output\n', '\n```')

    @abc.abstractmethod
    async def execute_code(
        self,
        invocation_context: 'InvocationContext',
        code_execution_input: CodeExecutionInput,
    ) -> CodeExecutionResult:
        """执行代码并返回结果"""

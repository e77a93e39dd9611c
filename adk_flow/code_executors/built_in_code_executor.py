"""BuiltInCodeExecutor - 使用模型自带的代码执行能力"""

from __future__ import annotations

from typing import TYPE_CHECKING

from typing_extensions import override

from ..types import Tool
from .base_code_executor import BaseCodeExecutor
from .code_execution_utils import CodeExecutionInput, CodeExecutionResult

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from ..models.llm_request import LlmRequest


class BuiltInCodeExecutor(BaseCodeExecutor):
    """代码在模型侧执行，这里只负责在请求中声明代码执行工具"""

    @override
    async def execute_code(
        self,
        invocation_context: 'InvocationContext',
        code_execution_input: CodeExecutionInput,
    ) -> CodeExecutionResult:
        raise NotImplementedError("BuiltInCodeExecutor.execute_code should not be called directly")

    def process_llm_request(self, llm_request: 'LlmRequest') -> None:
        if llm_request.config.tools is None:
            llm_request.config.tools = []
        llm_request.config.tools.append(Tool(code_execution={}))

"""UnsafeLocalCodeExecutor - 在当前进程内执行代码（仅用于开发和测试）"""

from __future__ import annotations

import contextlib
import io
import logging
from typing import TYPE_CHECKING, Any

from pydantic import field_validator
from typing_extensions import override

from .base_code_executor import BaseCodeExecutor
from .code_execution_utils import CodeExecutionInput, CodeExecutionResult

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext

logger = logging.getLogger(__name__)


class UnsafeLocalCodeExecutor(BaseCodeExecutor):
    """
    本地 exec 执行器

    没有任何沙箱隔离，模型生成的代码拥有当前进程的全部权限。
    每次执行使用独立的全局命名空间，因此不支持 stateful。
    """

    @field_validator('stateful', 'optimize_data_file', mode='after')
    @classmethod
    def _not_supported(cls, value: bool) -> bool:
        if value:
            raise ValueError("UnsafeLocalCodeExecutor does not support stateful or optimize_data_file.")
        return value

    @override
    async def execute_code(
        self,
        invocation_context: 'InvocationContext',
        code_execution_input: CodeExecutionInput,
    ) -> CodeExecutionResult:
        logger.debug(f"[UnsafeLocalCodeExecutor] Executing code in {invocation_context.agent.name}")
        stdout = io.StringIO()
        stderr = ''
        globals_: dict[str, Any] = {'__name__': '__main__'}
        try:
            with contextlib.redirect_stdout(stdout):
                exec(code_execution_input.code, globals_, globals_)
        except Exception as e:
            stderr = f"{type(e).__name__}: {e}"
        return CodeExecutionResult(stdout=stdout.getvalue(), stderr=stderr)

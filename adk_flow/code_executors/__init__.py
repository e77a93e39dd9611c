"""代码执行模块 - 执行模型生成的代码并把结果交回模型"""

from .base_code_executor import BaseCodeExecutor
from .built_in_code_executor import BuiltInCodeExecutor
from .code_execution_utils import CodeExecutionInput, CodeExecutionResult, File
from .code_executor_context import CodeExecutorContext
from .unsafe_local_code_executor import UnsafeLocalCodeExecutor

__all__ = [
    'BaseCodeExecutor',
    'BuiltInCodeExecutor',
    'UnsafeLocalCodeExecutor',
    'CodeExecutorContext',
    'CodeExecutionInput',
    'CodeExecutionResult',
    'File',
]

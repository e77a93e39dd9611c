"""工具系统 - Agent 可以调用的能力"""

from .agent_tool import AgentTool
from .base_tool import BaseTool
from .exit_loop_tool import ExitLoopTool, exit_loop_tool
from .function_tool import FunctionTool, LongRunningFunctionTool, tool
from .tool_context import ToolContext
from .transfer_to_agent_tool import TransferToAgentTool, transfer_to_agent_tool

__all__ = [
    'AgentTool',
    'BaseTool',
    'ExitLoopTool',
    'exit_loop_tool',
    'FunctionTool',
    'LongRunningFunctionTool',
    'tool',
    'ToolContext',
    'TransferToAgentTool',
    'transfer_to_agent_tool',
]

"""agents 模块 - Agent 定义与调用上下文"""

# 上下文模块必须先于 Agent 导入：tools 依赖 callback_context，llm_agent 依赖 tools
from .invocation_context import InvocationContext, new_invocation_context_id
from .readonly_context import ReadonlyContext
from .callback_context import CallbackContext
from .run_config import RunConfig, StreamingMode
from .base_agent import AfterAgentCallback, BaseAgent, BeforeAgentCallback
from .llm_agent import Agent, LlmAgent
from .sequential_agent import SequentialAgent
from .parallel_agent import ParallelAgent
from .loop_agent import LoopAgent
from .graph_agent import GraphAgent, GraphNode

__all__ = [
    # 上下文
    'InvocationContext',
    'new_invocation_context_id',
    'ReadonlyContext',
    'CallbackContext',
    'RunConfig',
    'StreamingMode',
    # 基类
    'BaseAgent',
    # LLM Agent
    'LlmAgent',
    'Agent',  # LlmAgent 的别名
    # 编排 Agent
    'SequentialAgent',
    'ParallelAgent',
    'LoopAgent',
    'GraphAgent',
    'GraphNode',
    # 回调类型
    'BeforeAgentCallback',
    'AfterAgentCallback',
]

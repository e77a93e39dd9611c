"""
adk_flow - Agent 编排运行时

核心组件:
- Agent: LlmAgent 以及 Sequential / Parallel / Loop / Graph 编排 Agent
- Runner: 无状态执行引擎（绑定 Agent）
- Tool/BaseTool: 可调用的工具（自动重试、长时间运行、认证）
- Session/State: 会话状态管理，SessionService 负责持久化
- Event: 追加式事件日志（支持压缩和回退）
- Config: 配置管理

架构:
- Runner: 执行编排（绑定 Agent）
- Flow: 请求处理器 → LLM → 响应处理器 + 工具执行
- Model: LLM 抽象 + 模型注册表
"""

# agents 必须最先导入（tools 与 agents 之间存在循环引用）
from .agents import (
    Agent,
    BaseAgent,
    CallbackContext,
    GraphAgent,
    GraphNode,
    InvocationContext,
    LlmAgent,
    LoopAgent,
    ParallelAgent,
    ReadonlyContext,
    RunConfig,
    SequentialAgent,
    StreamingMode,
)
from .config import CompactionConfig, Config, LLMConfig, RunnerConfig, get_config, set_config
from .events import Event, EventActions
from .runner import InMemoryRunner, Runner
from .sessions import BaseSessionService, InMemorySessionService, Session, State
from .tools import AgentTool, BaseTool, FunctionTool, LongRunningFunctionTool, ToolContext, tool
from .types import Content, Part

# Model 层
from .models import BaseLlm, LlmRegistry, LlmRequest, LlmResponse, OpenAILlm

__all__ = [
    # 核心组件
    'Agent',
    'BaseAgent',
    'LlmAgent',
    'SequentialAgent',
    'ParallelAgent',
    'LoopAgent',
    'GraphAgent',
    'GraphNode',
    'Config',
    'LLMConfig',
    'RunnerConfig',
    'CompactionConfig',
    'get_config',
    'set_config',
    'Event',
    'EventActions',
    'Runner',
    'InMemoryRunner',
    'Session',
    'State',
    'BaseSessionService',
    'InMemorySessionService',
    'InvocationContext',
    'ReadonlyContext',
    'CallbackContext',
    'RunConfig',
    'StreamingMode',
    'BaseTool',
    'FunctionTool',
    'LongRunningFunctionTool',
    'AgentTool',
    'ToolContext',
    'tool',
    'Content',
    'Part',

    # Model 层
    'BaseLlm',
    'LlmRegistry',
    'LlmRequest',
    'LlmResponse',
    'OpenAILlm',
]

__version__ = '0.1.0'

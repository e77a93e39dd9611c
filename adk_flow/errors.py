"""异常定义 - 运行时的错误分类"""

from __future__ import annotations


# ==================== 错误码 ====================

AGENT_EXECUTION_ERROR = "AGENT_EXECUTION_ERROR"
OUTPUT_SCHEMA_VALIDATION_FAILED = "OUTPUT_SCHEMA_VALIDATION_FAILED"
NODE_EXECUTION_ERROR = "NODE_EXECUTION_ERROR"


class AdkError(Exception):
    """所有运行时错误的基类"""


class ConfigurationError(AdkError, ValueError):
    """构造阶段的配置错误，立即失败且不重试"""


class LlmCallsLimitExceededError(AdkError):
    """单次调用中 LLM 调用次数超过上限"""


class ProtocolError(AdkError):
    """协议违例：一个 step 的最后事件是 partial（输出被截断）"""


class ToolExecutionError(AdkError):
    """工具执行失败且未启用重试"""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(AdkError, ValueError):
    """模型调用了未注册的工具"""


class AgentNotFoundError(AdkError, ValueError):
    """找不到跳转目标 Agent"""


class SessionNotFoundError(AdkError, ValueError):
    """Session 不存在"""


class ContextVariableNotFoundError(AdkError, KeyError):
    """指令模板引用的必需变量不存在"""

    def __str__(self) -> str:
        # KeyError 默认会给消息加引号
        return str(self.args[0]) if self.args else ''

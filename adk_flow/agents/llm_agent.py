"""LlmAgent - LLM 驱动的 Agent"""

from __future__ import annotations

import inspect
import json
import logging
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator
from typing_extensions import override

from ..code_executors.base_code_executor import BaseCodeExecutor
from ..errors import (
    AGENT_EXECUTION_ERROR,
    ConfigurationError,
    LlmCallsLimitExceededError,
    ProtocolError,
)
from ..events import Event
from ..models.base_llm import BaseLlm
from ..planners.base_planner import BasePlanner
from ..tools.base_tool import BaseTool
from ..tools.function_tool import FunctionTool
from ..types import Content, GenerateContentConfig
from .base_agent import BaseAgent
from .readonly_context import ReadonlyContext

if TYPE_CHECKING:
    from ..flows.base_llm_flow import BaseLlmFlow
    from ..models.registry import LlmRegistry
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)

# 回调类型定义（使用简化类型避免 Pydantic 前向引用问题）
InstructionProvider = Callable[..., Any]      # (readonly_context) -> str | Awaitable[str]
BeforeModelCallback = Callable[..., Any]      # (callback_context, llm_request) -> Optional[LlmResponse]
AfterModelCallback = Callable[..., Any]       # (callback_context, llm_response) -> Optional[LlmResponse]
BeforeToolCallback = Callable[..., Any]       # (tool, args, tool_context) -> Optional[dict]
AfterToolCallback = Callable[..., Any]        # (tool, args, tool_context, result) -> Optional[dict]
ToolUnion = Union[BaseTool, Callable[..., Any]]


class LlmAgent(BaseAgent):
    """
    LLM 驱动的 Agent

    职责:
    - 管理 LLM 相关配置（model、instruction、tools、schema 等）
    - 委托给 Flow 执行实际的 LLM 交互
    - 把最终回复保存到 output_key

    Example:
        agent = LlmAgent(
            name="assistant",
            model="gpt-4o",
            instruction="你是一个乐于助人的助手。用户名: {user_name?}",
            tools=[get_weather],
            output_key="answer",
        )
    """

    # === LLM 配置 ===
    model: Union[str, BaseLlm] = ''
    """模型名称或 LLM 实例，为空时继承最近的 LlmAgent 祖先"""

    instruction: Union[str, InstructionProvider] = ''
    """Agent 的指令，支持 {var} / {var?} / {artifact.name} 模板"""

    global_instruction: Union[str, InstructionProvider] = ''
    """全局指令，只有根 Agent 的全局指令生效"""

    generate_content_config: Optional[GenerateContentConfig] = None
    """生成配置（temperature、max_output_tokens 等）"""

    # === 工具 ===
    tools: list[ToolUnion] = Field(default_factory=list)
    """可用工具，普通函数会被包装为 FunctionTool"""

    code_executor: Optional[BaseCodeExecutor] = None
    planner: Optional[BasePlanner] = None

    # === Agent 跳转控制 ===
    disallow_transfer_to_parent: bool = False
    """禁止跳转回父 Agent"""

    disallow_transfer_to_peers: bool = False
    """禁止跳转到同级 Agent"""

    # === 内容与输出 ===
    include_contents: Literal['default', 'none'] = 'default'
    """none 时只发送当前轮的内容"""

    input_schema: Optional[type[BaseModel]] = None
    """作为 AgentTool 使用时的输入 schema"""

    output_schema: Optional[type[BaseModel]] = None
    """最终回复必须符合的 JSON schema"""

    output_key: Optional[str] = None
    """最终回复保存到的状态键"""

    # === 回调 ===
    before_model_callback: Optional[Union[BeforeModelCallback, list[BeforeModelCallback]]] = None
    after_model_callback: Optional[Union[AfterModelCallback, list[AfterModelCallback]]] = None
    before_tool_callback: Optional[Union[BeforeToolCallback, list[BeforeToolCallback]]] = None
    after_tool_callback: Optional[Union[AfterToolCallback, list[AfterToolCallback]]] = None

    @model_validator(mode='after')
    def _check_output_schema(self) -> LlmAgent:
        if self.output_schema is None:
            return self
        if not self.disallow_transfer_to_parent or not self.disallow_transfer_to_peers:
            logger.warning(
                f"[{self.name}] output_schema is set while transfer flags allow transfers; "
                "the schema will be applied in response post-processing"
            )
        if self.sub_agents:
            logger.warning(
                f"[{self.name}] output_schema is set and sub_agents are present; "
                "transfers to sub agents remain enabled"
            )
        if self.tools:
            logger.warning(
                f"[{self.name}] output_schema is set and tools are configured; "
                "tools stay callable and the schema is validated on the final reply"
            )
        return self

    # ==================== 解析后的配置 ====================

    @property
    def canonical_model(self) -> Union[str, BaseLlm]:
        """本 Agent 的模型，未设置时沿祖先链继承"""
        if self.model:
            return self.model
        ancestor = self.parent_agent
        while ancestor is not None:
            if isinstance(ancestor, LlmAgent):
                return ancestor.canonical_model
            ancestor = ancestor.parent_agent
        raise ConfigurationError(
            f"No model found for agent '{self.name}'. "
            "Please specify a model directly on this agent or an ancestor."
        )

    def resolve_model(self, default_model: Optional[str] = None) -> Union[str, BaseLlm]:
        """canonical_model，整棵树都未设置时使用 default_model（来自运行配置）"""
        try:
            return self.canonical_model
        except ConfigurationError:
            if default_model:
                return default_model
            raise

    def get_llm(
        self,
        llm_registry: Optional['LlmRegistry'] = None,
        default_model: Optional[str] = None,
    ) -> BaseLlm:
        """获取 LLM 实例，模型名称通过注册表解析"""
        model = self.resolve_model(default_model)
        if isinstance(model, BaseLlm):
            return model
        if llm_registry is None:
            raise ConfigurationError(
                f"Agent '{self.name}' uses model name '{model}' but no LLM registry is available"
            )
        return llm_registry.get_model_or_create(model)

    async def canonical_instruction(self, ctx: ReadonlyContext) -> tuple[str, bool]:
        """
        返回 (instruction, bypass_state_injection)

        字符串指令需要做状态注入；provider 生成的指令原样使用。
        """
        if isinstance(self.instruction, str):
            return self.instruction, False
        return await _resolve_provider(self.instruction, ctx), True

    async def canonical_global_instruction(self, ctx: ReadonlyContext) -> tuple[str, bool]:
        if isinstance(self.global_instruction, str):
            return self.global_instruction, False
        return await _resolve_provider(self.global_instruction, ctx), True

    async def canonical_tools(self, ctx: Optional[ReadonlyContext] = None) -> list[BaseTool]:
        resolved: list[BaseTool] = []
        for tool_union in self.tools:
            if isinstance(tool_union, BaseTool):
                resolved.append(tool_union)
            else:
                resolved.append(FunctionTool(tool_union))
        return resolved

    @property
    def canonical_before_model_callbacks(self) -> list[BeforeModelCallback]:
        return _as_list(self.before_model_callback)

    @property
    def canonical_after_model_callbacks(self) -> list[AfterModelCallback]:
        return _as_list(self.after_model_callback)

    @property
    def canonical_before_tool_callbacks(self) -> list[BeforeToolCallback]:
        return _as_list(self.before_tool_callback)

    @property
    def canonical_after_tool_callbacks(self) -> list[AfterToolCallback]:
        return _as_list(self.after_tool_callback)

    @property
    def flow(self) -> 'BaseLlmFlow':
        """不可能跳转时使用 SingleFlow，否则 AutoFlow"""
        from ..flows.auto_flow import AutoFlow
        from ..flows.single_flow import SingleFlow

        if self.disallow_transfer_to_parent and self.disallow_transfer_to_peers and not self.sub_agents:
            return SingleFlow()
        return AutoFlow()

    # ==================== 执行 ====================

    @override
    async def _run_async_impl(self, ctx: 'InvocationContext') -> AsyncGenerator[Event, None]:
        """
        LLM Agent 的核心执行逻辑

        Agent 内部的错误转换为 AGENT_EXECUTION_ERROR 事件；
        调用次数超限和协议违例直接抛出。
        """
        logger.debug(f"[{self.name}] Starting LlmAgent execution")
        try:
            async for event in self.flow.run_async(ctx):
                self._maybe_save_output_to_state(event)
                yield event
        except (LlmCallsLimitExceededError, ProtocolError):
            raise
        except Exception as e:
            logger.error(f"[{self.name}] Error in LlmAgent execution: {e}", exc_info=True)
            yield Event(
                invocation_id=ctx.invocation_id,
                author=self.name,
                branch=ctx.branch,
                content=Content.from_text(f"Error: {e}", role='model'),
                error_code=AGENT_EXECUTION_ERROR,
                error_message=str(e),
            )

    def _maybe_save_output_to_state(self, event: Event) -> None:
        """最终回复写入 actions.state_delta[output_key]"""
        if not self.output_key or event.author != self.name:
            return
        if event.error_code or not event.is_final_response():
            return
        if not event.content or not event.content.parts:
            return

        result: Any = ''.join(p.text or '' for p in event.content.parts if not p.thought)
        if self.output_schema is not None:
            if not result.strip():
                return
            try:
                result = self.output_schema.model_validate(json.loads(result)).model_dump()
            except Exception as e:
                logger.error(f"[{self.name}] Failed to validate output with schema: {e}")
                raise ValueError(f"Output validation failed: {e}") from e

        if result:
            event.actions.state_delta[self.output_key] = result


Agent = LlmAgent


def _as_list(callback: Any) -> list[Any]:
    if not callback:
        return []
    if isinstance(callback, list):
        return callback
    return [callback]


async def _resolve_provider(provider: InstructionProvider, ctx: ReadonlyContext) -> str:
    result = provider(ctx)
    if inspect.isawaitable(result):
        result = await result
    return result

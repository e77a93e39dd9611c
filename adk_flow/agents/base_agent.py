"""BaseAgent - Agent 基类，定义配置和生命周期框架"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..events import Event, EventActions
from ..types import Content
from .callback_context import CallbackContext

if TYPE_CHECKING:
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)

# 回调类型定义（使用简化类型避免 Pydantic 前向引用问题）
SingleAgentCallback = Callable[..., Any]  # (callback_context) -> Optional[Content]
BeforeAgentCallback = Union[SingleAgentCallback, list[SingleAgentCallback]]
AfterAgentCallback = Union[SingleAgentCallback, list[SingleAgentCallback]]


class BaseAgent(BaseModel):
    """
    Agent 基类 - 纯配置容器 + 树形结构 + 生命周期框架

    设计理念:
    - Agent 是配置，不包含状态（状态都在 Session 中）
    - run_async 是模板方法，子类实现 _run_async_impl
    - 支持 before/after 回调钩子
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra='forbid')

    # === 基本配置 ===
    name: str
    """Agent 名称，必须是有效的 Python 标识符"""

    description: str = ''
    """Agent 描述，用于 LLM 决定是否委托给此 Agent"""

    # === 树形结构 ===
    sub_agents: list['BaseAgent'] = Field(default_factory=list)
    """子 Agent 列表"""

    parent_agent: Optional['BaseAgent'] = Field(default=None, exclude=True)
    """父 Agent（自动设置，不序列化）"""

    # === 生命周期回调 ===
    before_agent_callback: Optional[BeforeAgentCallback] = None
    """Agent 执行前的回调，返回 Content 则跳过执行"""

    after_agent_callback: Optional[AfterAgentCallback] = None
    """Agent 执行后的回调，返回 Content 则追加一个事件"""

    # === 验证器 ===

    @field_validator('name', mode='after')
    @classmethod
    def validate_name(cls, value: str) -> str:
        """验证 Agent 名称"""
        if not value.isidentifier():
            raise ValueError(
                f"Invalid agent name: '{value}'. "
                "Must be a valid Python identifier."
            )
        if value == 'user':
            raise ValueError("Agent name cannot be 'user' (reserved).")
        return value

    def model_post_init(self, __context: Any) -> None:
        """初始化后设置父子关系"""
        self._set_parent_for_sub_agents()

    def _set_parent_for_sub_agents(self) -> None:
        for sub_agent in self.sub_agents:
            if sub_agent.parent_agent is not None:
                raise ValueError(
                    f"Agent '{sub_agent.name}' already has parent "
                    f"'{sub_agent.parent_agent.name}', cannot add to '{self.name}'"
                )
            sub_agent.parent_agent = self

    # === 树形结构操作 ===

    @property
    def root_agent(self) -> 'BaseAgent':
        """获取根 Agent"""
        root = self
        while root.parent_agent is not None:
            root = root.parent_agent
        return root

    def find_agent(self, name: str) -> Optional['BaseAgent']:
        """在当前 Agent 及其后代中查找"""
        if self.name == name:
            return self
        return self.find_sub_agent(name)

    def find_sub_agent(self, name: str) -> Optional['BaseAgent']:
        """在后代中查找"""
        for sub_agent in self.sub_agents:
            if result := sub_agent.find_agent(name):
                return result
        return None

    # === 回调 ===

    @property
    def canonical_before_agent_callbacks(self) -> list[SingleAgentCallback]:
        return _as_callback_list(self.before_agent_callback)

    @property
    def canonical_after_agent_callbacks(self) -> list[SingleAgentCallback]:
        return _as_callback_list(self.after_agent_callback)

    # === 执行入口（模板方法） ===

    async def run_async(self, parent_context: 'InvocationContext') -> AsyncGenerator[Event, None]:
        """
        执行入口 - 模板方法

        处理生命周期回调，具体执行逻辑委托给 _run_async_impl。
        执行中设置的 end_invocation 会传播回父上下文，使外层循环停止。
        """
        ctx = parent_context.copy_with(agent=self)
        logger.debug(f"[{self.name}] Starting execution")

        try:
            event = await self._handle_before_agent_callback(ctx)
            if event is not None:
                yield event
                if event.content is not None:
                    return
            if ctx.end_invocation:
                return

            async for event in self._run_async_impl(ctx):
                yield event
            if ctx.end_invocation:
                return

            event = await self._handle_after_agent_callback(ctx)
            if event is not None:
                yield event
        finally:
            if ctx.end_invocation:
                parent_context.end_invocation = True

        logger.debug(f"[{self.name}] Execution completed")

    async def _run_async_impl(self, ctx: 'InvocationContext') -> AsyncGenerator[Event, None]:
        """核心执行逻辑 - 子类必须实现"""
        raise NotImplementedError(
            f"_run_async_impl not implemented for {type(self).__name__}"
        )
        yield  # 保持为 AsyncGenerator

    async def _handle_before_agent_callback(self, ctx: 'InvocationContext') -> Optional[Event]:
        """
        依次调用 before 回调，第一个返回 Content 的回调生效：
        产生该内容的事件，并跳过本 Agent 的执行。
        没有返回内容但修改了状态时，产生一个只带 state_delta 的事件。
        """
        callbacks = self.canonical_before_agent_callbacks
        if not callbacks:
            return None

        callback_context = CallbackContext(ctx)
        for callback in callbacks:
            content = await _call(callback, callback_context)
            if content is not None:
                return self._callback_event(ctx, callback_context.actions, content)

        if callback_context.state.has_delta():
            return self._callback_event(ctx, callback_context.actions)
        return None

    async def _handle_after_agent_callback(self, ctx: 'InvocationContext') -> Optional[Event]:
        callbacks = self.canonical_after_agent_callbacks
        if not callbacks:
            return None

        callback_context = CallbackContext(ctx)
        for callback in callbacks:
            content = await _call(callback, callback_context)
            if content is not None:
                return self._callback_event(ctx, callback_context.actions, content)

        if callback_context.state.has_delta():
            return self._callback_event(ctx, callback_context.actions)
        return None

    def _callback_event(
        self,
        ctx: 'InvocationContext',
        actions: EventActions,
        content: Optional[Content] = None,
    ) -> Event:
        return Event(
            invocation_id=ctx.invocation_id,
            author=self.name,
            branch=ctx.branch,
            content=content,
            actions=actions,
        )

    # === 序列化 ===

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            'name': self.name,
            'description': self.description,
            'type': type(self).__name__,
            'sub_agents': [a.name for a in self.sub_agents],
        }


def _as_callback_list(callback: Any) -> list[SingleAgentCallback]:
    if not callback:
        return []
    if isinstance(callback, list):
        return callback
    return [callback]


async def _call(callback: SingleAgentCallback, *args: Any) -> Any:
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result

"""AgentTool - 把一个 Agent 包装为工具"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import model_validator
from typing_extensions import override

from ..types import Content, FunctionDeclaration
from .base_tool import BaseTool
from .tool_context import ToolContext

logger = logging.getLogger(__name__)


class AgentTool(BaseTool):
    """
    Agent 工具

    和 transfer 不同，控制权不会交给被调用的 Agent：
    它在一个新的子调用上下文中运行（独立的内存会话和 invocation_id，
    共享 LLM 调用计数），最后一条由该 Agent 产生的文本作为工具结果返回给调用方模型。
    子 Agent 写入的状态会合并回调用方的 tool_context.state。

    Example:
        summarizer = LlmAgent(name="summarizer", model="gpt-4o", instruction="...")
        root = LlmAgent(name="root", model="gpt-4o", tools=[AgentTool(agent=summarizer)])
    """

    agent: Any
    """被包装的 Agent（BaseAgent 实例）"""

    output_key: Optional[str] = None
    """结果同时写入该状态键"""

    skip_summarization: bool = False
    should_retry_on_failure: bool = False

    @model_validator(mode='before')
    @classmethod
    def _defaults_from_agent(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get('agent') is not None:
            agent = data['agent']
            data.setdefault('name', agent.name)
            if not data.get('description'):
                data['description'] = agent.description or f"Agent {agent.name}"
        return data

    @override
    def get_declaration(self) -> Optional[FunctionDeclaration]:
        instruction = getattr(self.agent, 'instruction', None)
        description = instruction if isinstance(instruction, str) and instruction else self.description
        return FunctionDeclaration(
            name=self.name,
            description=description,
            parameters={
                'type': 'object',
                'properties': {
                    'input': {
                        'type': 'string',
                        'description': 'The input to provide to the agent',
                    },
                },
                'required': ['input'],
            },
        )

    @override
    async def run_async(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        from ..agents.invocation_context import new_invocation_context_id
        from ..events import Event
        from ..sessions.in_memory_session_service import InMemorySessionService
        from ..sessions.state import State

        if self.skip_summarization:
            tool_context.actions.skip_summarization = True

        user_input = args.get('input')
        if user_input is None and args:
            user_input = next(iter(args.values()))
        user_content = Content.from_text(str(user_input or ''), role='user')

        # 子 Agent 使用独立的会话：从调用方状态开始，输入作为第一条用户消息
        parent = tool_context.invocation_context
        session_service = InMemorySessionService()
        session = await session_service.create_session(
            app_name=parent.app_name,
            user_id=parent.user_id,
            state={
                k: v for k, v in tool_context.state.to_dict().items()
                if not k.startswith(State.TEMP_PREFIX)
            },
        )
        child = parent.copy_with(
            agent=self.agent,
            session=session,
            session_service=session_service,
            invocation_id=new_invocation_context_id(),
            user_content=user_content,
            branch=None,
            end_invocation=False,
        )
        await session_service.append_event(session, Event(
            invocation_id=child.invocation_id,
            author='user',
            content=user_content,
        ))

        try:
            last_event = None
            async for event in self.agent.run_async(child):
                if event.partial:
                    continue
                await session_service.append_event(session, event)
                # 子 Agent 的状态修改随函数响应事件回传给调用方
                if event.actions.state_delta:
                    tool_context.state.update(event.actions.state_delta)
                if event.content and event.author == self.agent.name:
                    last_event = event
        except Exception as e:
            logger.error(f"[AgentTool] Error executing agent tool {self.name}: {e}")
            raise RuntimeError(f"Agent tool execution failed: {e}") from e

        if last_event is None or not last_event.content:
            return ''

        merged_text = '\n'.join(p.text for p in last_event.content.parts if p.text is not None)
        try:
            result: Any = json.loads(merged_text)
        except json.JSONDecodeError:
            result = merged_text

        if self.output_key:
            tool_context.state[self.output_key] = result
        return result

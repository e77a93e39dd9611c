"""函数调用处理 - 执行模型发起的工具调用并生成函数响应事件"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Optional
from uuid import uuid4

from ..errors import ToolNotFoundError
from ..events import Event, merge_event_actions
from ..tools.tool_context import ToolContext
from ..types import Content, FunctionCall, Part

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from ..tools.base_tool import BaseTool

logger = logging.getLogger(__name__)

AF_FUNCTION_CALL_ID_PREFIX = 'adk-'
REQUEST_EUC_FUNCTION_CALL_NAME = 'adk_request_credential'


# ==================== 客户端函数调用 id ====================

def generate_client_function_call_id() -> str:
    return f"{AF_FUNCTION_CALL_ID_PREFIX}{uuid4()}"


def populate_client_function_call_id(model_response_event: Event) -> None:
    """给没有 id 的函数调用补上客户端 id"""
    for function_call in model_response_event.get_function_calls():
        if not function_call.id:
            function_call.id = generate_client_function_call_id()


def remove_client_function_call_id(content: Optional[Content]) -> None:
    """发送给模型前去掉客户端生成的 id（模型不认识这些 id）"""
    if not content or not content.parts:
        return
    for part in content.parts:
        if (
            part.function_call
            and part.function_call.id
            and part.function_call.id.startswith(AF_FUNCTION_CALL_ID_PREFIX)
        ):
            part.function_call.id = None
        if (
            part.function_response
            and part.function_response.id
            and part.function_response.id.startswith(AF_FUNCTION_CALL_ID_PREFIX)
        ):
            part.function_response.id = None


def get_long_running_function_calls(
    function_calls: list[FunctionCall],
    tools_dict: dict[str, 'BaseTool'],
) -> set[str]:
    """返回调用了长时间运行工具的函数调用 id"""
    long_running_tool_ids = set()
    for function_call in function_calls:
        tool = tools_dict.get(function_call.name)
        if tool is not None and tool.is_long_running and function_call.id:
            long_running_tool_ids.add(function_call.id)
    return long_running_tool_ids


# ==================== 认证请求 ====================

def generate_auth_event(
    invocation_context: 'InvocationContext',
    function_response_event: Event,
) -> Optional[Event]:
    """
    根据工具请求的认证配置生成 adk_request_credential 调用事件

    每个请求一个函数调用，且都标记为长时间运行，
    调用方因此会把这个事件当作本轮的最终响应并中断。
    """
    requested = function_response_event.actions.requested_auth_configs
    if not requested:
        return None

    parts = []
    long_running_tool_ids = set()
    for function_call_id, auth_config in requested.items():
        request_euc_function_call = FunctionCall(
            id=generate_client_function_call_id(),
            name=REQUEST_EUC_FUNCTION_CALL_NAME,
            args={
                'function_call_id': function_call_id,
                'auth_config': auth_config.model_dump(),
            },
        )
        long_running_tool_ids.add(request_euc_function_call.id)
        parts.append(Part(function_call=request_euc_function_call))

    return Event(
        invocation_id=invocation_context.invocation_id,
        author=invocation_context.agent.name,
        branch=invocation_context.branch,
        content=Content(
            role=function_response_event.content.role if function_response_event.content else None,
            parts=parts,
        ),
        long_running_tool_ids=long_running_tool_ids,
    )


# ==================== 函数调用执行 ====================

async def _call_callback(callback: Any, *args: Any) -> Any:
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def handle_function_calls_async(
    invocation_context: 'InvocationContext',
    function_call_event: Event,
    tools_dict: dict[str, 'BaseTool'],
    filters: Optional[set[str]] = None,
) -> Optional[Event]:
    """
    依次执行事件中的函数调用，返回合并后的函数响应事件

    Args:
        invocation_context: 调用上下文
        function_call_event: 包含函数调用的模型事件
        tools_dict: 工具名 -> 工具实例
        filters: 只执行 id 在其中的函数调用（用于认证后重放）

    Returns:
        合并后的函数响应事件；没有任何响应时返回 None

    Raises:
        ToolNotFoundError: 模型调用了未注册的工具
    """
    from ..agents.llm_agent import LlmAgent

    agent = invocation_context.agent
    if not isinstance(agent, LlmAgent):
        return None

    function_response_events: list[Event] = []
    for function_call in function_call_event.get_function_calls():
        if filters is not None and function_call.id not in filters:
            continue

        tool = tools_dict.get(function_call.name)
        if tool is None:
            raise ToolNotFoundError(f"Function {function_call.name} is not found in the tools_dict.")

        tool_context = ToolContext(invocation_context, function_call_id=function_call.id)
        function_args = function_call.args or {}
        logger.debug(f"[{agent.name}] Calling tool {tool.name} args={function_args}")

        function_response = None
        for callback in agent.canonical_before_tool_callbacks:
            function_response = await _call_callback(callback, tool, function_args, tool_context)
            if function_response is not None:
                break

        if function_response is None:
            function_response = await tool.safe_execute(function_args, tool_context)
            if tool.is_long_running and function_response is None:
                # 结果稍后由客户端补充
                continue

        for callback in agent.canonical_after_tool_callbacks:
            altered = await _call_callback(callback, tool, function_args, tool_context, function_response)
            if altered is not None:
                function_response = altered
                break

        function_response_events.append(
            _build_response_event(tool, function_response, tool_context, invocation_context)
        )

    if not function_response_events:
        return None
    return merge_parallel_function_response_events(function_response_events)


def _build_response_event(
    tool: 'BaseTool',
    function_result: Any,
    tool_context: ToolContext,
    invocation_context: 'InvocationContext',
) -> Event:
    if not isinstance(function_result, dict):
        function_result = {'result': function_result}

    part = Part.from_function_response(
        name=tool.name,
        response=function_result,
        id=tool_context.function_call_id,
    )
    return Event(
        invocation_id=invocation_context.invocation_id,
        author=invocation_context.agent.name,
        content=Content(role='user', parts=[part]),
        actions=tool_context.actions,
        branch=invocation_context.branch,
    )


def merge_parallel_function_response_events(function_response_events: list[Event]) -> Event:
    """
    合并多个函数响应事件

    parts 按调用顺序拼接，actions 按 first-call-wins 合并，
    author / branch / timestamp / invocation_id 取第一个事件。
    """
    if not function_response_events:
        raise ValueError("No function response events provided.")
    if len(function_response_events) == 1:
        return function_response_events[0]

    merged_parts: list[Part] = []
    for event in function_response_events:
        if event.content:
            merged_parts.extend(event.content.parts)

    base_event = function_response_events[0]
    merged_actions = merge_event_actions([e.actions for e in function_response_events])

    return Event(
        invocation_id=base_event.invocation_id,
        author=base_event.author,
        branch=base_event.branch,
        content=Content(role='user', parts=merged_parts),
        actions=merged_actions,
        timestamp=base_event.timestamp,
    )


def find_matching_function_call(events: list[Event]) -> Optional[Event]:
    """最后一个事件是函数响应时，向前找到发起对应函数调用的事件"""
    if not events:
        return None

    last_event = events[-1]
    function_responses = last_event.get_function_responses()
    if not function_responses:
        return None

    function_call_id = function_responses[0].id
    for event in reversed(events[:-1]):
        for function_call in event.get_function_calls():
            if function_call.id == function_call_id:
                return event
    return None

"""内容处理器 - 把会话事件重建为发送给模型的对话历史"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, AsyncGenerator, Optional

from typing_extensions import override

from ...events import Event
from ...types import Content, Part
from ..base_llm_processor import BaseLlmRequestProcessor
from ..functions import REQUEST_EUC_FUNCTION_CALL_NAME, remove_client_function_call_id

if TYPE_CHECKING:
    from ...agents.invocation_context import InvocationContext
    from ...models.llm_request import LlmRequest


class ContentLlmRequestProcessor(BaseLlmRequestProcessor):
    """
    内容处理器

    - include_contents='default': 完整对话历史
    - include_contents='none': 只保留当前轮（最近一条用户消息或其他 Agent 回复之后）
    """

    @override
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: 'LlmRequest',
    ) -> AsyncGenerator[Event, None]:
        from ...agents.llm_agent import LlmAgent

        agent = invocation_context.agent
        if not isinstance(agent, LlmAgent):
            return

        events = invocation_context.session.events
        if agent.include_contents == 'default':
            llm_request.contents = get_contents(invocation_context.branch, events, agent.name)
        else:
            llm_request.contents = get_current_turn_contents(invocation_context.branch, events, agent.name)
        return
        yield  # 保持为 AsyncGenerator


request_processor = ContentLlmRequestProcessor()


# ==================== 历史重建 ====================

def get_contents(
    current_branch: Optional[str],
    events: list[Event],
    agent_name: str = '',
) -> list[Content]:
    """
    重建对话历史

    1. 回退过滤：rewind 标记与其目标 invocation 之间的事件全部跳过
    2. 跳过无内容事件、其他分支事件和认证事件
    3. 其他 Agent 的回复改写为 user 角色的上下文说明
    4. 压缩事件替换其覆盖的时间范围
    5. 把函数响应重新排列到对应的函数调用之后
    """
    filtered_events: list[Event] = []
    for event in _filter_rewound_events(events):
        if event.actions.compaction is not None:
            filtered_events.append(event)
            continue
        if not event.content or not event.content.role or not event.content.parts:
            continue
        if not any(_has_data(p) for p in event.content.parts):
            continue
        if not _is_event_belongs_to_branch(current_branch, event):
            continue
        if _is_auth_event(event):
            continue
        if _is_other_agent_reply(agent_name, event):
            filtered_events.append(_convert_foreign_event(event))
        else:
            filtered_events.append(event)

    result_events = _process_compaction_events(filtered_events)
    result_events = _rearrange_events_for_latest_function_response(result_events)
    result_events = _rearrange_events_for_async_function_responses_in_history(result_events)

    contents = []
    for event in result_events:
        content = event.content.model_copy(deep=True)
        remove_client_function_call_id(content)
        contents.append(content)
    return contents


def get_current_turn_contents(
    current_branch: Optional[str],
    events: list[Event],
    agent_name: str = '',
) -> list[Content]:
    """只重建当前轮：从最近一条用户消息或其他 Agent 回复开始"""
    for i in range(len(events) - 1, -1, -1):
        event = events[i]
        if event.author == 'user' or _is_other_agent_reply(agent_name, event):
            return get_contents(current_branch, events[i:], agent_name)
    return []


def _filter_rewound_events(events: list[Event]) -> list[Event]:
    invocation_index: dict[str, int] = {}
    for idx, event in enumerate(events):
        if event.invocation_id:
            invocation_index.setdefault(event.invocation_id, idx)

    kept: list[Event] = []
    i = len(events) - 1
    while i >= 0:
        event = events[i]
        rewind_id = event.actions.rewind_before_invocation_id
        if rewind_id:
            rewind_index = invocation_index.get(rewind_id)
            if rewind_index is not None and rewind_index < i:
                i = rewind_index
        else:
            kept.append(event)
        i -= 1
    kept.reverse()
    return kept


def _has_data(part: Part) -> bool:
    return bool(
        part.text
        or part.function_call
        or part.function_response
        or part.inline_data
        or part.file_data
        or part.executable_code
        or part.code_execution_result
    )


def _is_event_belongs_to_branch(invocation_branch: Optional[str], event: Event) -> bool:
    """分支是前缀关系：父分支的事件对子分支可见，兄弟分支互不可见"""
    if not invocation_branch or not event.branch:
        return True
    return invocation_branch.startswith(event.branch)


def _is_auth_event(event: Event) -> bool:
    for part in event.content.parts:
        if part.function_call and part.function_call.name == REQUEST_EUC_FUNCTION_CALL_NAME:
            return True
        if part.function_response and part.function_response.name == REQUEST_EUC_FUNCTION_CALL_NAME:
            return True
    return False


def _is_other_agent_reply(current_agent_name: str, event: Event) -> bool:
    return bool(
        current_agent_name
        and event.author != current_agent_name
        and event.author != 'user'
    )


def _convert_foreign_event(event: Event) -> Event:
    """其他 Agent 的回复对当前 Agent 来说是上下文，而不是自己说过的话"""
    if not event.content or not event.content.parts:
        return event

    parts = [Part(text='For context:')]
    for part in event.content.parts:
        if part.text:
            parts.append(Part(text=f"[{event.author}] said: {part.text}"))
        elif part.function_call:
            parts.append(Part(text=(
                f"[{event.author}] called tool `{part.function_call.name}` with parameters: "
                f"{json.dumps(part.function_call.args, ensure_ascii=False, default=str)}"
            )))
        elif part.function_response:
            parts.append(Part(text=(
                f"[{event.author}] `{part.function_response.name}` tool returned result: "
                f"{json.dumps(part.function_response.response, ensure_ascii=False, default=str)}"
            )))
        else:
            parts.append(part)

    return Event(
        timestamp=event.timestamp,
        author='user',
        content=Content(role='user', parts=parts),
        branch=event.branch,
    )


def _process_compaction_events(events: list[Event]) -> list[Event]:
    """
    倒序扫描：压缩事件替换为摘要

    被已采用的摘要覆盖的原始事件丢弃；范围完全落在更新摘要之内的旧摘要也丢弃。
    """
    result: list[Event] = []
    covered: list[tuple[float, float]] = []

    for event in reversed(events):
        compaction = event.actions.compaction
        if compaction is not None:
            if _is_covered(covered, compaction.start_timestamp, compaction.end_timestamp):
                continue
            covered.append((compaction.start_timestamp, compaction.end_timestamp))
            result.append(Event(
                timestamp=compaction.end_timestamp,
                author='model',
                content=compaction.compacted_content,
                branch=event.branch,
                invocation_id=event.invocation_id,
            ))
        elif not _is_covered(covered, event.timestamp, event.timestamp):
            result.append(event)

    result.reverse()
    return result


def _is_covered(ranges: list[tuple[float, float]], start: float, end: float) -> bool:
    return any(s <= start and end <= e for s, e in ranges)


# ==================== 函数响应重排 ====================

def _rearrange_events_for_latest_function_response(events: list[Event]) -> list[Event]:
    """
    最后一个事件是函数响应，但对应的函数调用不在它前面时，
    把中间的函数响应合并后紧跟在函数调用事件之后
    """
    if not events:
        return events

    function_responses = events[-1].get_function_responses()
    if not function_responses:
        return events

    function_responses_ids = {r.id for r in function_responses if r.id}

    if len(events) >= 2:
        for function_call in events[-2].get_function_calls():
            if function_call.id and function_call.id in function_responses_ids:
                return events

    function_call_event_idx = -1
    for idx in range(len(events) - 2, -1, -1):
        function_calls = events[idx].get_function_calls()
        if any(fc.id and fc.id in function_responses_ids for fc in function_calls):
            function_call_event_idx = idx
            # 最后的响应事件可能只包含部分调用的响应
            function_responses_ids.update(fc.id for fc in function_calls if fc.id)
            break

    if function_call_event_idx == -1:
        return events

    function_response_events = []
    for idx in range(function_call_event_idx + 1, len(events) - 1):
        responses = events[idx].get_function_responses()
        if any(r.id and r.id in function_responses_ids for r in responses):
            function_response_events.append(events[idx])
    function_response_events.append(events[-1])

    result_events = list(events[:function_call_event_idx + 1])
    result_events.append(_merge_function_response_events(function_response_events))
    return result_events


def _rearrange_events_for_async_function_responses_in_history(events: list[Event]) -> list[Event]:
    """历史中异步返回的函数响应移到各自的函数调用事件之后"""
    function_call_id_to_response_index: dict[str, int] = {}
    for idx, event in enumerate(events):
        for function_response in event.get_function_responses():
            if function_response.id:
                function_call_id_to_response_index[function_response.id] = idx

    result_events: list[Event] = []
    for event in events:
        if event.get_function_responses():
            # 随对应的函数调用一起处理
            continue

        function_calls = event.get_function_calls()
        if not function_calls:
            result_events.append(event)
            continue

        response_indices = sorted({
            function_call_id_to_response_index[fc.id]
            for fc in function_calls
            if fc.id and fc.id in function_call_id_to_response_index
        })
        result_events.append(event)
        if not response_indices:
            continue
        if len(response_indices) == 1:
            result_events.append(events[response_indices[0]])
        else:
            result_events.append(
                _merge_function_response_events([events[i] for i in response_indices])
            )
    return result_events


def _merge_function_response_events(function_response_events: list[Event]) -> Event:
    """同一函数调用 id 的响应以后出现者为准，其余 part 依次追加"""
    if not function_response_events:
        raise ValueError("At least one function_response event is required.")

    merged_event = function_response_events[0].model_copy(deep=True)
    if not merged_event.content or not merged_event.content.parts:
        raise ValueError("There should be at least one function_response part.")
    parts = merged_event.content.parts

    part_indices: dict[str, int] = {}
    for idx, part in enumerate(parts):
        if part.function_response and part.function_response.id:
            part_indices[part.function_response.id] = idx

    for event in function_response_events[1:]:
        if not event.content or not event.content.parts:
            raise ValueError("There should be at least one function_response part.")
        for part in event.content.parts:
            if part.function_response and part.function_response.id:
                function_call_id = part.function_response.id
                if function_call_id in part_indices:
                    parts[part_indices[function_call_id]] = part
                else:
                    parts.append(part)
                    part_indices[function_call_id] = len(parts) - 1
            else:
                parts.append(part)

    return merged_event

"""规划处理器 - 请求前注入规划指令，响应后整理规划标记"""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncGenerator, Optional

from typing_extensions import override

from ...agents.callback_context import CallbackContext
from ...agents.readonly_context import ReadonlyContext
from ...events import Event
from ...planners.built_in_planner import BuiltInPlanner
from ..base_llm_processor import BaseLlmRequestProcessor, BaseLlmResponseProcessor

if TYPE_CHECKING:
    from ...agents.invocation_context import InvocationContext
    from ...models.llm_request import LlmRequest
    from ...models.llm_response import LlmResponse
    from ...planners.base_planner import BasePlanner


def _get_planner(invocation_context: 'InvocationContext') -> Optional['BasePlanner']:
    return getattr(invocation_context.agent, 'planner', None)


class NlPlanningRequestProcessor(BaseLlmRequestProcessor):

    @override
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: 'LlmRequest',
    ) -> AsyncGenerator[Event, None]:
        planner = _get_planner(invocation_context)
        if planner is None:
            return

        if isinstance(planner, BuiltInPlanner):
            planner.apply_thinking_config(llm_request)

        planning_instruction = planner.build_planning_instruction(
            ReadonlyContext(invocation_context), llm_request
        )
        if planning_instruction:
            llm_request.append_instructions([planning_instruction])

        # 历史中的思考内容以普通文本发送
        for content in llm_request.contents:
            for part in content.parts:
                part.thought = None
        return
        yield  # 保持为 AsyncGenerator


class NlPlanningResponseProcessor(BaseLlmResponseProcessor):

    @override
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_response: 'LlmResponse',
    ) -> AsyncGenerator[Event, None]:
        if not llm_response.content or not llm_response.content.parts:
            return

        planner = _get_planner(invocation_context)
        if planner is None:
            return

        callback_context = CallbackContext(invocation_context)
        processed_parts = planner.process_planning_response(
            callback_context, llm_response.content.parts
        )
        if processed_parts:
            llm_response.content.parts = processed_parts

        if callback_context.state.has_delta():
            yield Event(
                invocation_id=invocation_context.invocation_id,
                author=invocation_context.agent.name,
                branch=invocation_context.branch,
                actions=callback_context.actions,
            )


request_processor = NlPlanningRequestProcessor()
response_processor = NlPlanningResponseProcessor()

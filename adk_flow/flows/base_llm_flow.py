"""BaseLlmFlow - 驱动单个 LlmAgent 的 请求 -> LLM -> 响应 -> 工具 循环"""

from __future__ import annotations

import inspect
import logging
import time
from abc import ABC
from typing import TYPE_CHECKING, Any, AsyncGenerator, Optional

from ..agents.callback_context import CallbackContext
from ..agents.readonly_context import ReadonlyContext
from ..agents.run_config import StreamingMode
from ..errors import AgentNotFoundError, ProtocolError
from ..events import Event
from ..models.llm_request import LlmRequest
from ..models.llm_response import LlmResponse
from ..tools.tool_context import ToolContext
from . import functions

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from .base_llm_processor import BaseLlmRequestProcessor, BaseLlmResponseProcessor

logger = logging.getLogger(__name__)


class BaseLlmFlow(ABC):
    """
    Flow 基类

    Flow 负责编排 LLM 调用循环（Reason-Act Loop）：
    1. 请求处理器链构建 LlmRequest
    2. 调用 LLM（流式或非流式）
    3. 响应处理器链处理 LlmResponse，生成模型事件
    4. 有函数调用时执行工具，必要时跳转到其他 Agent
    5. 重复 1-4，直到某个 step 的最后事件是最终响应

    设计理念:
    - Flow 是无状态的，所有状态在 Session 中
    - Flow 只 yield 事件，由 Runner 负责持久化
    - 处理器链可扩展：子类在 __init__ 中追加处理器
    """

    def __init__(self):
        self.request_processors: list['BaseLlmRequestProcessor'] = []
        self.response_processors: list['BaseLlmResponseProcessor'] = []

    # ==================== 主循环 ====================

    async def run_async(self, invocation_context: 'InvocationContext') -> AsyncGenerator[Event, None]:
        """
        执行直到产生最终响应

        Raises:
            ProtocolError: step 的最后事件是 partial（输出被截断）
            LlmCallsLimitExceededError: LLM 调用次数超过上限
        """
        step = 0
        while True:
            step += 1
            logger.debug(f"[BaseLlmFlow] {invocation_context.agent.name} step {step}")

            last_event: Optional[Event] = None
            async for event in self._run_one_step_async(invocation_context):
                last_event = event
                yield event

            if last_event is None or last_event.is_final_response():
                break
            if last_event.partial:
                logger.error(f"[BaseLlmFlow] Last event of step {step} is partial")
                raise ProtocolError(
                    "Last event shouldn't be partial. LLM max output limit may be reached."
                )
            if invocation_context.end_invocation:
                break

    async def _run_one_step_async(self, invocation_context: 'InvocationContext') -> AsyncGenerator[Event, None]:
        llm_request = LlmRequest()

        async for event in self._preprocess_async(invocation_context, llm_request):
            yield event
        if invocation_context.end_invocation:
            return

        model_response_event = Event(
            invocation_id=invocation_context.invocation_id,
            author=invocation_context.agent.name,
            branch=invocation_context.branch,
        )

        async for llm_response in self._call_llm_async(invocation_context, llm_request, model_response_event):
            async for event in self._postprocess_async(
                invocation_context, llm_request, llm_response, model_response_event
            ):
                # 同一 step 中的每个事件使用不同的 id
                model_response_event.id = Event.new_id()
                yield event

    # ==================== 预处理 ====================

    async def _preprocess_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: LlmRequest,
    ) -> AsyncGenerator[Event, None]:
        from ..agents.llm_agent import LlmAgent

        agent = invocation_context.agent
        if not isinstance(agent, LlmAgent):
            return

        for processor in self.request_processors:
            async for event in processor.run_async(invocation_context, llm_request):
                yield event

        # 工具自行注册到请求中（同名工具只注册第一个）
        tools = await agent.canonical_tools(ReadonlyContext(invocation_context))
        seen: set[str] = set()
        for tool in tools:
            if tool.name in seen:
                continue
            seen.add(tool.name)
            await tool.process_llm_request(ToolContext(invocation_context), llm_request)

    # ==================== 后处理 ====================

    async def _postprocess_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: LlmRequest,
        llm_response: LlmResponse,
        model_response_event: Event,
    ) -> AsyncGenerator[Event, None]:
        for processor in self.response_processors:
            async for event in processor.run_async(invocation_context, llm_response):
                yield event

        # 跳过没有内容的响应（例如代码执行后清空的响应）
        if (
            not llm_response.content
            and not llm_response.error_code
            and not llm_response.interrupted
        ):
            return

        event = self._finalize_model_response_event(llm_request, llm_response, model_response_event)
        yield event

        if event.partial or not event.get_function_calls():
            return

        async for function_event in self._postprocess_handle_function_calls_async(
            invocation_context, event, llm_request
        ):
            yield function_event

    async def _postprocess_handle_function_calls_async(
        self,
        invocation_context: 'InvocationContext',
        function_call_event: Event,
        llm_request: LlmRequest,
    ) -> AsyncGenerator[Event, None]:
        function_response_event = await functions.handle_function_calls_async(
            invocation_context, function_call_event, llm_request.tools_dict
        )
        if function_response_event is None:
            return

        auth_event = functions.generate_auth_event(invocation_context, function_response_event)
        if auth_event is not None:
            yield auth_event

        yield function_response_event

        transfer_to_agent = function_response_event.actions.transfer_to_agent
        if transfer_to_agent:
            agent_to_run = self._get_agent_to_run(invocation_context, transfer_to_agent)
            logger.info(
                f"[BaseLlmFlow] Transferring {invocation_context.agent.name} -> {transfer_to_agent}"
            )
            async for event in agent_to_run.run_async(invocation_context):
                yield event

    def _get_agent_to_run(self, invocation_context: 'InvocationContext', agent_name: str) -> Any:
        root_agent = invocation_context.agent.root_agent
        agent_to_run = root_agent.find_agent(agent_name)
        if agent_to_run is None:
            raise AgentNotFoundError(f"Agent {agent_name} not found in the agent tree.")
        return agent_to_run

    def _finalize_model_response_event(
        self,
        llm_request: LlmRequest,
        llm_response: LlmResponse,
        model_response_event: Event,
    ) -> Event:
        """骨架事件 + 响应中所有非空字段"""
        update: dict[str, Any] = {
            name: getattr(llm_response, name)
            for name in LlmResponse.model_fields
            if getattr(llm_response, name) is not None
        }
        update['timestamp'] = time.time()
        event = model_response_event.model_copy(update=update, deep=False)
        event.actions = model_response_event.actions.model_copy(deep=True)

        if event.content:
            function_calls = event.get_function_calls()
            if function_calls:
                functions.populate_client_function_call_id(event)
                long_running_tool_ids = functions.get_long_running_function_calls(
                    function_calls, llm_request.tools_dict
                )
                event.long_running_tool_ids = long_running_tool_ids or None
        return event

    # ==================== LLM 调用 ====================

    async def _call_llm_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: LlmRequest,
        model_response_event: Event,
    ) -> AsyncGenerator[LlmResponse, None]:
        agent = invocation_context.agent

        response = await self._handle_before_model_callback(invocation_context, llm_request, model_response_event)
        if response is not None:
            yield response
            return

        if llm_request.config.labels is None:
            llm_request.config.labels = {}
        llm_request.config.labels.setdefault('adk_agent_name', agent.name)

        llm = agent.get_llm(invocation_context.llm_registry, invocation_context.run_config.default_model)

        if invocation_context.run_config.support_cfc:
            logger.warning("[BaseLlmFlow] CFC is not supported by this flow; using non-live generation")

        invocation_context.increment_llm_call_count()
        stream = invocation_context.run_config.streaming_mode == StreamingMode.SSE
        llm_request.dedupe_function_declarations()

        logger.debug(
            f"[BaseLlmFlow] Calling LLM agent={agent.name} model={llm_request.model} "
            f"contents={len(llm_request.contents)} stream={stream}"
        )
        async for llm_response in llm.generate_content_async(llm_request, stream=stream):
            altered = await self._handle_after_model_callback(
                invocation_context, llm_response, model_response_event
            )
            yield altered if altered is not None else llm_response

    async def _handle_before_model_callback(
        self,
        invocation_context: 'InvocationContext',
        llm_request: LlmRequest,
        model_response_event: Event,
    ) -> Optional[LlmResponse]:
        agent = invocation_context.agent
        callbacks = agent.canonical_before_model_callbacks
        if not callbacks:
            return None

        callback_context = CallbackContext(invocation_context, event_actions=model_response_event.actions)
        for callback in callbacks:
            result = callback(callback_context, llm_request)
            if inspect.isawaitable(result):
                result = await result
            if result is not None:
                return result
        return None

    async def _handle_after_model_callback(
        self,
        invocation_context: 'InvocationContext',
        llm_response: LlmResponse,
        model_response_event: Event,
    ) -> Optional[LlmResponse]:
        agent = invocation_context.agent
        callbacks = agent.canonical_after_model_callbacks
        if not callbacks:
            return None

        callback_context = CallbackContext(invocation_context, event_actions=model_response_event.actions)
        for callback in callbacks:
            result = callback(callback_context, llm_response)
            if inspect.isawaitable(result):
                result = await result
            if result is not None:
                return result
        return None

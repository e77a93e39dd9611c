"""认证处理器 - 用户回传凭证后恢复被挂起的工具调用"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, AsyncGenerator

from pydantic import ValidationError
from typing_extensions import override

from ...agents.readonly_context import ReadonlyContext
from ...auth.auth_config import AuthConfig
from ...sessions.state import State
from ..base_llm_processor import BaseLlmRequestProcessor
from ..functions import REQUEST_EUC_FUNCTION_CALL_NAME, handle_function_calls_async

if TYPE_CHECKING:
    from ...agents.invocation_context import InvocationContext
    from ...events import Event
    from ...models.llm_request import LlmRequest

logger = logging.getLogger(__name__)


def store_auth_response(invocation_context: 'InvocationContext', response: dict[str, Any]) -> None:
    """
    把用户回传的认证配置中的凭证写入 temp: 作用域状态

    temp: 键只在本次调用中可见，不会随事件持久化。
    """
    auth_config = AuthConfig.model_validate(response)
    credential = auth_config.exchanged_auth_credential or auth_config.raw_auth_credential
    if credential is None:
        logger.warning("[Auth] Auth response carries no credential")
        return
    key = State.TEMP_PREFIX + auth_config.get_credential_key()
    invocation_context.session.state[key] = credential


class AuthLlmRequestProcessor(BaseLlmRequestProcessor):
    """
    认证处理器

    1. 最近一条用户事件包含 adk_request_credential 的函数响应时，保存凭证
    2. 找到对应的 adk_request_credential 调用，读出原始函数调用 id
    3. 找到原始函数调用事件，只重放这些调用，同一轮的其他调用不会重新执行
    """

    @override
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: 'LlmRequest',
    ) -> AsyncGenerator['Event', None]:
        from ...agents.llm_agent import LlmAgent

        agent = invocation_context.agent
        if not isinstance(agent, LlmAgent):
            return

        events = invocation_context.session.events
        if not events:
            return

        request_euc_ids: set[str] = set()
        user_event_index = -1
        for user_event_index in range(len(events) - 1, -1, -1):
            event = events[user_event_index]
            if event.author != 'user':
                continue
            responses = event.get_function_responses()
            if not responses:
                return
            for response in responses:
                if response.name != REQUEST_EUC_FUNCTION_CALL_NAME:
                    continue
                request_euc_ids.add(response.id)
                try:
                    store_auth_response(invocation_context, response.response)
                except ValidationError as e:
                    logger.warning(f"[Auth] Failed to parse auth response: {e}")
            break

        if not request_euc_ids:
            return

        for i in range(len(events) - 2, -1, -1):
            function_calls = events[i].get_function_calls()
            if not function_calls:
                continue

            tools_to_resume: set[str] = set()
            for function_call in function_calls:
                if function_call.id not in request_euc_ids:
                    continue
                original_id = function_call.args.get('function_call_id')
                if original_id:
                    tools_to_resume.add(original_id)
                else:
                    logger.warning(f"[Auth] Invalid auth tool arguments: {function_call.args}")
            if not tools_to_resume:
                continue

            # 已经重放过的调用（之后的步骤）不再执行
            tools_to_resume -= {
                r.id
                for e in events[user_event_index + 1:]
                for r in e.get_function_responses()
            }
            if not tools_to_resume:
                return

            for j in range(i - 1, -1, -1):
                original_event = events[j]
                if not any(fc.id in tools_to_resume for fc in original_event.get_function_calls()):
                    continue

                tools = await agent.canonical_tools(ReadonlyContext(invocation_context))
                tools_dict = {tool.name: tool for tool in tools}
                logger.info(f"[{agent.name}] Resuming tool calls after auth: {sorted(tools_to_resume)}")
                function_response_event = await handle_function_calls_async(
                    invocation_context, original_event, tools_dict, tools_to_resume
                )
                if function_response_event is not None:
                    yield function_response_event
                return
            return


request_processor = AuthLlmRequestProcessor()

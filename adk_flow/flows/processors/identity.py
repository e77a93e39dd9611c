"""身份处理器 - 告诉模型它的名称和描述"""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncGenerator

from typing_extensions import override

from ..base_llm_processor import BaseLlmRequestProcessor

if TYPE_CHECKING:
    from ...agents.invocation_context import InvocationContext
    from ...events import Event
    from ...models.llm_request import LlmRequest


class IdentityLlmRequestProcessor(BaseLlmRequestProcessor):

    @override
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: 'LlmRequest',
    ) -> AsyncGenerator['Event', None]:
        agent = invocation_context.agent
        instruction = f'You are an agent. Your internal name is "{agent.name}".'
        if agent.description:
            instruction += f' The description about you is "{agent.description}".'
        llm_request.append_instructions([instruction])
        return
        yield  # 保持为 AsyncGenerator


request_processor = IdentityLlmRequestProcessor()

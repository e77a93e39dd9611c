"""基础请求处理器 - 填充模型名称、生成配置和输出 schema"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncGenerator

from typing_extensions import override

from ...agents.readonly_context import ReadonlyContext
from ...types import GenerateContentConfig
from ..base_llm_processor import BaseLlmRequestProcessor

if TYPE_CHECKING:
    from ...agents.invocation_context import InvocationContext
    from ...events import Event
    from ...models.llm_request import LlmRequest

logger = logging.getLogger(__name__)


class BasicLlmRequestProcessor(BaseLlmRequestProcessor):

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

        run_config = invocation_context.run_config
        model = agent.resolve_model(run_config.default_model)
        llm_request.model = model if isinstance(model, str) else model.model
        base_config = agent.generate_content_config or run_config.generate_content_config
        llm_request.config = base_config.model_copy(deep=True) if base_config else GenerateContentConfig()

        if agent.output_schema is not None:
            # 有工具或可跳转目标时，模型还需要调用函数，schema 只在响应阶段校验
            has_tools = bool(await agent.canonical_tools(ReadonlyContext(invocation_context)))
            has_transfers = bool(agent.sub_agents) and not (
                agent.disallow_transfer_to_parent and agent.disallow_transfer_to_peers
            )
            if not has_tools and not has_transfers:
                llm_request.set_output_schema(agent.output_schema)
            else:
                logger.debug(
                    f"[{agent.name}] Skipping request-level output schema because "
                    "tools/transfers are present"
                )
        return
        yield  # 保持为 AsyncGenerator


request_processor = BasicLlmRequestProcessor()

"""指令处理器 - 注入全局指令和 Agent 指令"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, AsyncGenerator

from typing_extensions import override

from ...agents.readonly_context import ReadonlyContext
from ...utils.instructions_utils import inject_session_state
from ..base_llm_processor import BaseLlmRequestProcessor

if TYPE_CHECKING:
    from ...agents.invocation_context import InvocationContext
    from ...events import Event
    from ...models.llm_request import LlmRequest

_OUTPUT_SCHEMA_FINAL_NOTE = (
    'IMPORTANT: After any tool calls, function calls, or agent transfers have completed, '
    'produce ONE final assistant message whose entire content is ONLY the JSON object that '
    'conforms to the schema provided above. Do NOT include any explanatory text, markdown, '
    'or additional messages. Do NOT wrap the JSON in code fences (for example, do NOT use '
    '```json or ```). If you cannot produce valid JSON that matches the schema, return a '
    'JSON object with an "error" field describing the problem.'
)


class InstructionsLlmRequestProcessor(BaseLlmRequestProcessor):
    """
    指令处理器

    1. 根 Agent 的 global_instruction
    2. 当前 Agent 的 instruction
    3. 设置了 output_schema 时追加 JSON Schema 约束

    字符串指令会做 {var} 模板替换；instruction provider
    返回的指令被视为已经渲染好，不再替换。
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

        readonly_context = ReadonlyContext(invocation_context)
        root_agent = agent.root_agent

        if isinstance(root_agent, LlmAgent) and root_agent.global_instruction:
            raw, bypass_state_injection = await root_agent.canonical_global_instruction(readonly_context)
            instruction = raw if bypass_state_injection else await inject_session_state(raw, readonly_context)
            llm_request.append_instructions([instruction])

        if agent.instruction:
            raw, bypass_state_injection = await agent.canonical_instruction(readonly_context)
            instruction = raw if bypass_state_injection else await inject_session_state(raw, readonly_context)
            llm_request.append_instructions([instruction])

        if agent.output_schema is not None:
            schema = agent.output_schema.model_json_schema()
            llm_request.append_instructions([
                'You must respond with application/json that validates against this JSON Schema '
                '(do NOT wrap the output in markdown or code fences):',
                json.dumps(schema, indent=2),
            ])
            llm_request.append_instructions([_OUTPUT_SCHEMA_FINAL_NOTE])
        return
        yield  # 保持为 AsyncGenerator


request_processor = InstructionsLlmRequestProcessor()

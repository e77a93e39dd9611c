"""输出 schema 处理器 - 校验并规范化模型的 JSON 输出"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, AsyncGenerator

from json_repair import repair_json
from typing_extensions import override

from ...errors import OUTPUT_SCHEMA_VALIDATION_FAILED
from ...events import Event
from ...types import Content, Part
from ..base_llm_processor import BaseLlmResponseProcessor

if TYPE_CHECKING:
    from ...agents.invocation_context import InvocationContext
    from ...models.llm_response import LlmResponse

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r'```(?:json)?\s*([\s\S]*?)```', re.IGNORECASE)


def strip_code_fences(raw: str) -> str:
    """去掉 markdown 代码块；没有代码块时从第一行 JSON 开始截取"""
    match = _FENCE_PATTERN.search(raw)
    if match and match.group(1):
        return match.group(1).strip()

    lines = [line.strip() for line in raw.splitlines()]
    for idx, line in enumerate(lines):
        if line.startswith('{') or line.startswith('['):
            return '\n'.join(lines[idx:]).strip()
    return raw.strip()


def parse_json_with_repair(candidate: str, agent_name: str = '') -> Any:
    """先严格解析，失败后用 json_repair 修复再解析；修复也失败时抛出原始错误"""
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug(f"[{agent_name}] Initial json.loads failed, attempting repair")
        repaired = repair_json(candidate)
        try:
            return json.loads(repaired)
        except (json.JSONDecodeError, TypeError):
            raise e


class OutputSchemaResponseProcessor(BaseLlmResponseProcessor):
    """
    输出 schema 处理器

    成功时把文本 part 改写为缩进的 JSON；
    失败时在响应上设置错误码，并产生一个 OUTPUT_SCHEMA_VALIDATION_FAILED 错误事件。
    """

    @override
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_response: 'LlmResponse',
    ) -> AsyncGenerator[Event, None]:
        if not llm_response.content or not llm_response.content.parts:
            return
        if llm_response.partial:
            return

        agent = invocation_context.agent
        output_schema = getattr(agent, 'output_schema', None)
        if output_schema is None:
            return

        if any(p.function_call for p in llm_response.content.parts):
            return

        text_content = llm_response.content.text
        if not text_content.strip():
            return

        try:
            parsed = parse_json_with_repair(strip_code_fences(text_content), agent.name)
            validated = output_schema.model_validate(parsed)
            normalized = json.dumps(validated.model_dump(mode='json'), indent=2, ensure_ascii=False)
            other_parts = [p for p in llm_response.content.parts if p.text is None or p.thought]
            llm_response.content.parts = other_parts + [Part(text=normalized)]
            logger.debug(f"[{agent.name}] Output schema validation successful")
        except Exception as e:
            detailed_error = f"Output schema validation failed for agent '{agent.name}': {e}"
            preview = text_content[:200] + ('...' if len(text_content) > 200 else '')
            logger.error(f"[{agent.name}] {detailed_error} content={preview!r}")

            llm_response.error_code = OUTPUT_SCHEMA_VALIDATION_FAILED
            llm_response.error_message = detailed_error
            yield Event(
                invocation_id=invocation_context.invocation_id,
                author=agent.name,
                branch=invocation_context.branch,
                content=Content.from_text(f"Error: {detailed_error}", role='model'),
                error_code=OUTPUT_SCHEMA_VALIDATION_FAILED,
                error_message=detailed_error,
            )


response_processor = OutputSchemaResponseProcessor()

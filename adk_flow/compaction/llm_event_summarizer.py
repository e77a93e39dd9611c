"""LlmEventSummarizer - 使用 LLM 生成对话摘要"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from typing_extensions import override

from ..agents.invocation_context import new_invocation_context_id
from ..events import Event, EventActions, EventCompaction
from ..models.base_llm import BaseLlm
from ..models.llm_request import LlmRequest
from ..types import Content, Part
from .base_events_summarizer import BaseEventsSummarizer

logger = logging.getLogger(__name__)

DEFAULT_SUMMARIZATION_PROMPT = """You are a helpful assistant tasked with summarizing a conversation history.
Please provide a concise summary of the following events, capturing the key information and context.
Focus on the main topics discussed, important decisions made, and any action items or results.

Events to summarize:
{events}

Provide your summary in a clear, concise format."""


class LlmEventSummarizer(BaseEventsSummarizer):
    """
    LLM 摘要器

    把事件格式化为按时间排列的文本行，交给 LLM 总结；
    摘要作为 model 角色的内容保存在压缩事件的 actions.compaction 中。
    """

    def __init__(self, llm: BaseLlm, prompt_template: Optional[str] = None):
        self.llm = llm
        self.prompt_template = prompt_template or DEFAULT_SUMMARIZATION_PROMPT

    @override
    async def maybe_summarize_events(self, events: list[Event]) -> Optional[Event]:
        if not events:
            return None

        prompt = self.prompt_template.replace('{events}', self.format_events(events))
        llm_request = LlmRequest(
            model=self.llm.model,
            contents=[Content.from_text(prompt, role='user')],
        )

        summary_text = ''
        async for llm_response in self.llm.generate_content_async(llm_request, stream=False):
            if llm_response.content:
                summary_text += ''.join(p.text or '' for p in llm_response.content.parts)
        summary_text = summary_text.strip()
        if not summary_text:
            logger.debug("[LlmEventSummarizer] Empty summary, skipping compaction")
            return None

        return Event(
            invocation_id=new_invocation_context_id(),
            author='user',
            actions=EventActions(
                compaction=EventCompaction(
                    start_timestamp=events[0].timestamp,
                    end_timestamp=events[-1].timestamp,
                    compacted_content=Content(role='model', parts=[Part(text=summary_text)]),
                ),
            ),
        )

    @staticmethod
    def format_events(events: list[Event]) -> str:
        lines = []
        for event in events:
            if not event.content:
                continue
            timestamp = datetime.fromtimestamp(event.timestamp, tz=timezone.utc).isoformat()
            for part in event.content.parts:
                if part.text:
                    lines.append(f"[{timestamp}] {event.author}: {part.text}")
                elif part.function_call:
                    lines.append(
                        f"[{timestamp}] {event.author}: Called tool '{part.function_call.name}' "
                        f"with args {json.dumps(part.function_call.args, ensure_ascii=False, default=str)}"
                    )
                elif part.function_response:
                    lines.append(
                        f"[{timestamp}] {event.author}: Tool '{part.function_response.name}' "
                        f"returned: {json.dumps(part.function_response.response, ensure_ascii=False, default=str)}"
                    )
        return '\n'.join(lines)

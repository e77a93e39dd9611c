"""共享记忆处理器 - 把与当前问题相关的长期记忆追加到对话历史"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncGenerator

from typing_extensions import override

from ...types import Content
from ..base_llm_processor import BaseLlmRequestProcessor

if TYPE_CHECKING:
    from ...agents.invocation_context import InvocationContext
    from ...events import Event
    from ...models.llm_request import LlmRequest

logger = logging.getLogger(__name__)


class SharedMemoryRequestProcessor(BaseLlmRequestProcessor):
    """用最近一条用户消息检索记忆，对话中已出现过的文本不重复追加"""

    @override
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: 'LlmRequest',
    ) -> AsyncGenerator['Event', None]:
        memory_service = invocation_context.memory_service
        if memory_service is None:
            return

        last_user_event = next(
            (
                e for e in reversed(invocation_context.session.events)
                if e.author == 'user' and e.content and e.content.parts
            ),
            None,
        )
        if last_user_event is None:
            return

        query = ' '.join(p.text or '' for p in last_user_event.content.parts)
        response = await memory_service.search_memory(
            app_name=invocation_context.app_name,
            user_id=invocation_context.user_id,
            query=query,
        )

        seen_texts = {p.text for c in llm_request.contents for p in c.parts}
        added = 0
        for memory in response.memories:
            memory_text = ' '.join(p.text or '' for p in memory.content.parts)
            if memory_text in seen_texts:
                continue
            seen_texts.add(memory_text)
            llm_request.contents.append(
                Content.from_text(f"[{memory.author}] said: {memory_text}", role='user')
            )
            added += 1

        if added:
            logger.debug(f"[SharedMemory] Injected {added} memories for query={query[:50]!r}")
        return
        yield  # 保持为 AsyncGenerator


request_processor = SharedMemoryRequestProcessor()

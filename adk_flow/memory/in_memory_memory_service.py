"""InMemoryMemoryService - 基于关键词匹配的内存记忆服务（用于开发和测试）"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from typing_extensions import override

from .base_memory_service import BaseMemoryService, SearchMemoryResponse
from .memory_entry import MemoryEntry, format_timestamp

if TYPE_CHECKING:
    from ..events import Event
    from ..sessions.session import Session

logger = logging.getLogger(__name__)

_WORD = re.compile(r'[A-Za-z]+')


def _user_key(app_name: str, user_id: str) -> str:
    return f"{app_name}/{user_id}"


def _extract_words_lower(text: str) -> set[str]:
    return {word.lower() for word in _WORD.findall(text)}


class InMemoryMemoryService(BaseMemoryService):
    """
    内存记忆服务

    数据结构: {app_name/user_id: {session_id: [Event]}}

    搜索规则: 查询按空格切词（小写），事件文本中出现任意一个词即命中。
    """

    def __init__(self):
        self._session_events: dict[str, dict[str, list['Event']]] = {}

    @override
    async def add_session_to_memory(self, session: 'Session') -> None:
        user_sessions = self._session_events.setdefault(
            _user_key(session.app_name, session.user_id), {}
        )
        user_sessions[session.id] = [
            event for event in session.events if event.content and event.content.parts
        ]
        logger.debug(
            f"[InMemoryMemoryService] Stored {len(user_sessions[session.id])} events "
            f"from session {session.id}"
        )

    @override
    async def search_memory(
        self,
        *,
        app_name: str,
        user_id: str,
        query: str,
    ) -> SearchMemoryResponse:
        user_sessions = self._session_events.get(_user_key(app_name, user_id))
        response = SearchMemoryResponse()
        if not user_sessions:
            return response

        words_in_query = {word for word in query.lower().split(' ') if word}
        for session_events in user_sessions.values():
            for event in session_events:
                text = ' '.join(p.text for p in event.content.parts if p.text)
                words_in_event = _extract_words_lower(text)
                if not words_in_event:
                    continue
                if words_in_query & words_in_event:
                    response.memories.append(MemoryEntry(
                        content=event.content,
                        author=event.author,
                        timestamp=format_timestamp(event.timestamp),
                    ))
        return response

    def clear(self) -> None:
        self._session_events.clear()

"""
BaseMemoryService - 记忆服务抽象基类

设计理念：
- 简洁的 API：add_session_to_memory + search_memory
- 按 (app_name, user_id) 隔离，跨会话检索
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from .memory_entry import MemoryEntry

if TYPE_CHECKING:
    from ..sessions.session import Session


class SearchMemoryResponse(BaseModel):
    """搜索结果"""

    memories: list[MemoryEntry] = Field(default_factory=list)
    """匹配的记忆条目"""

    def __len__(self) -> int:
        return len(self.memories)

    def to_context_string(self, max_entries: int = 5) -> str:
        """
        转换为可插入 prompt 的上下文字符串

        用于将检索到的记忆注入到 LLM 的上下文中
        """
        if not self.memories:
            return ""

        lines = ["[Relevant Memories]"]
        for entry in self.memories[:max_entries]:
            author = f" ({entry.author})" if entry.author else ""
            time_str = f"[{entry.timestamp}]" if entry.timestamp else ""
            lines.append(f"- {time_str}{author}: {entry.text}")

        if len(self.memories) > max_entries:
            lines.append(f"... and {len(self.memories) - max_entries} more")

        return "\n".join(lines)


class BaseMemoryService(ABC):
    """
    记忆服务抽象基类

    核心方法：
    - add_session_to_memory: 将整个 Session 添加到记忆
    - search_memory: 搜索记忆

    注意：Memory 是跨会话的长期记忆，搜索时不按 session_id 过滤。
    """

    @abstractmethod
    async def add_session_to_memory(self, session: 'Session') -> None:
        """将 Session 的事件添加到记忆（同一 session 重复添加会覆盖）"""

    @abstractmethod
    async def search_memory(
        self,
        *,
        app_name: str,
        user_id: str,
        query: str,
    ) -> SearchMemoryResponse:
        """搜索与查询相关的记忆"""

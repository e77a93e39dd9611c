"""
MemoryEntry - 记忆条目数据结构

设计理念：
- 保留原始 Content，方便重新注入到对话
- 记录作者和时间，便于模型判断信息来源
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from ..types import Content


def format_timestamp(timestamp: float) -> str:
    """秒级时间戳 -> ISO 8601 字符串"""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class MemoryEntry(BaseModel):
    """
    记忆条目 - 存储单条记忆的数据结构

    - content: 记忆内容
    - author: 记忆来源（user/agent 名称）
    - timestamp: 创建时间（ISO 8601）
    """

    content: Content
    author: Optional[str] = None
    timestamp: Optional[str] = None

    @property
    def text(self) -> str:
        return self.content.text

    def __str__(self) -> str:
        author_str = f" by {self.author}" if self.author else ""
        return f"[memory]{author_str}: {self.text[:50]}..."

"""事件摘要器接口"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..events import Event


class BaseEventsSummarizer(abc.ABC):
    """把一段事件压缩为一个带 actions.compaction 的事件"""

    @abc.abstractmethod
    async def maybe_summarize_events(self, events: list['Event']) -> Optional['Event']:
        """返回压缩事件；无需压缩（或摘要为空）时返回 None"""

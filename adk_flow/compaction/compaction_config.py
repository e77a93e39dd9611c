"""压缩配置"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .base_events_summarizer import BaseEventsSummarizer


class EventsCompactionConfig(BaseModel):
    """
    滑动窗口压缩配置

    - compaction_interval: 自上次压缩以来累计多少个新 invocation 后触发压缩
    - overlap_size: 本次压缩范围向前多包含多少个已压缩过的 invocation
    - summarizer: 摘要器，为空时由 Runner 使用根 Agent 的模型创建 LlmEventSummarizer
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    summarizer: Optional[BaseEventsSummarizer] = None
    compaction_interval: int = Field(default=10, gt=0)
    overlap_size: int = Field(default=2, ge=0)

"""compaction 模块 - 用摘要替换历史事件，控制上下文长度"""

from .base_events_summarizer import BaseEventsSummarizer
from .compaction_config import EventsCompactionConfig
from .llm_event_summarizer import DEFAULT_SUMMARIZATION_PROMPT, LlmEventSummarizer
from .sliding_window import run_compaction_for_sliding_window

__all__ = [
    'BaseEventsSummarizer',
    'DEFAULT_SUMMARIZATION_PROMPT',
    'EventsCompactionConfig',
    'LlmEventSummarizer',
    'run_compaction_for_sliding_window',
]

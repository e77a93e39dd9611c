"""滑动窗口压缩"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import ConfigurationError

if TYPE_CHECKING:
    from ..events import Event
    from ..sessions.base_session_service import BaseSessionService
    from ..sessions.session import Session
    from .compaction_config import EventsCompactionConfig

logger = logging.getLogger(__name__)


async def run_compaction_for_sliding_window(
    app_name: str,
    session: 'Session',
    session_service: 'BaseSessionService',
    config: 'EventsCompactionConfig',
) -> None:
    """
    对会话做一次滑动窗口压缩

    1. 找到最近一次压缩覆盖到的结束时间戳
    2. 统计之后出现的新 invocation，不足 compaction_interval 个时什么也不做
    3. 压缩范围从第一个新 invocation 往前 overlap_size 个开始，到最后一个新 invocation 结束
    4. 摘要器生成的压缩事件通过 session_service 追加到会话
    """
    if not session.events:
        return
    if config.summarizer is None:
        raise ConfigurationError("EventsCompactionConfig.summarizer is required to run compaction")

    last_compacted_end = _find_last_compacted_end_timestamp(session.events)
    latest_by_invocation = _build_latest_timestamp_by_invocation(session.events)
    invocation_ids = list(latest_by_invocation)
    new_invocation_ids = [
        inv_id for inv_id in invocation_ids
        if latest_by_invocation[inv_id] > last_compacted_end
    ]

    if len(new_invocation_ids) < config.compaction_interval:
        logger.debug(
            f"[Compaction] {app_name}/{session.id}: not enough new invocations "
            f"(need {config.compaction_interval}, have {len(new_invocation_ids)})"
        )
        return

    end_inv_id = new_invocation_ids[-1]
    first_new_idx = invocation_ids.index(new_invocation_ids[0])
    start_inv_id = invocation_ids[max(0, first_new_idx - config.overlap_size)]

    events_to_compact = _slice_events_by_invocation_range(session.events, start_inv_id, end_inv_id)
    if not events_to_compact:
        logger.debug(f"[Compaction] {app_name}/{session.id}: no events to compact after filtering")
        return

    logger.info(
        f"[Compaction] {app_name}/{session.id}: summarizing {len(events_to_compact)} events "
        f"({len(new_invocation_ids)} new invocations, overlap={config.overlap_size})"
    )
    compaction_event = await config.summarizer.maybe_summarize_events(events_to_compact)
    if compaction_event is None:
        return

    compaction = compaction_event.actions.compaction
    logger.debug(
        f"[Compaction] Covering timestamps {compaction.start_timestamp if compaction else None} "
        f"to {compaction.end_timestamp if compaction else None}"
    )
    await session_service.append_event(session, compaction_event)


def _find_last_compacted_end_timestamp(events: list['Event']) -> float:
    for event in reversed(events):
        if event.actions.compaction is not None:
            return event.actions.compaction.end_timestamp
    return 0.0


def _build_latest_timestamp_by_invocation(events: list['Event']) -> dict[str, float]:
    """invocation_id -> 该 invocation 最后一个事件的时间戳（按首次出现顺序）"""
    latest: dict[str, float] = {}
    for event in events:
        if event.actions.compaction is not None or not event.invocation_id:
            continue
        if event.timestamp > latest.get(event.invocation_id, 0.0):
            latest[event.invocation_id] = event.timestamp
    return latest


def _slice_events_by_invocation_range(
    events: list['Event'],
    start_inv_id: str,
    end_inv_id: str,
) -> list['Event']:
    first_index = -1
    last_index = -1
    for i, event in enumerate(events):
        if event.invocation_id == start_inv_id and first_index == -1:
            first_index = i
        if event.invocation_id == end_inv_id:
            last_index = i

    if first_index == -1 or last_index == -1 or first_index > last_index:
        return []
    return [e for e in events[first_index:last_index + 1] if e.actions.compaction is None]

"""SessionService 抽象基类"""

from __future__ import annotations

import abc
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..events import Event
from .session import Session
from .state import State


class GetSessionConfig(BaseModel):
    """get_session 的过滤条件"""

    num_recent_events: Optional[int] = None
    """只返回最近 N 个事件"""

    after_timestamp: Optional[float] = None
    """只返回该时间戳（含）之后的事件"""


class ListSessionsResponse(BaseModel):
    """list_sessions 的返回值（不含事件和状态）"""

    sessions: list[Session] = Field(default_factory=list)


class BaseSessionService(abc.ABC):
    """
    Session 持久化服务

    设计原则:
    - get_session: 只获取，不存在返回 None
    - create_session: 显式创建
    - append_event: 原子操作追加事件

    所有方法都是异步的，方便扩展到数据库等持久化存储。
    同一个 session 不假设支持并发追加。
    """

    @abc.abstractmethod
    async def create_session(
        self,
        *,
        app_name: str,
        user_id: str,
        state: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Session:
        """创建新 Session"""

    @abc.abstractmethod
    async def get_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        config: Optional[GetSessionConfig] = None,
    ) -> Optional[Session]:
        """获取 Session，不存在返回 None"""

    @abc.abstractmethod
    async def list_sessions(
        self,
        *,
        app_name: str,
        user_id: str,
    ) -> ListSessionsResponse:
        """列出用户的所有 Session"""

    @abc.abstractmethod
    async def delete_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> None:
        """删除 Session"""

    async def append_event(self, session: Session, event: Event) -> Event:
        """
        追加单个事件到 Session

        - partial 事件直接忽略（不改变事件列表和状态）
        - 先合并 state_delta，再追加到事件列表
        """
        if event.partial:
            return event
        self._update_session_state(session, event)
        session.events.append(event)
        return event

    def _update_session_state(self, session: Session, event: Event) -> None:
        """把事件的 state_delta 合并到会话状态"""
        if not event.actions or not event.actions.state_delta:
            return
        for key, value in event.actions.state_delta.items():
            if key.startswith(State.TEMP_PREFIX):
                continue
            if value is None:
                session.state.pop(key, None)
            else:
                session.state[key] = value

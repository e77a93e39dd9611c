"""InMemorySessionService - 内存存储实现（用于开发和测试）"""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Optional
from uuid import uuid4

from typing_extensions import override

from ..events import Event
from .base_session_service import BaseSessionService, GetSessionConfig, ListSessionsResponse
from .session import Session
from .state import State

logger = logging.getLogger(__name__)


class InMemorySessionService(BaseSessionService):
    """
    内存存储的 SessionService

    数据结构:
    - _sessions: {app_name: {user_id: {session_id: Session}}}
    - _app_state: {app_name: {key: value}}（键已去掉 app: 前缀）
    - _user_state: {app_name: {user_id: {key: value}}}（键已去掉 user: 前缀）

    读取时返回深拷贝，并把 app/user 状态带上前缀合并进 session.state。
    """

    def __init__(self):
        self._sessions: dict[str, dict[str, dict[str, Session]]] = {}
        self._app_state: dict[str, dict[str, Any]] = {}
        self._user_state: dict[str, dict[str, dict[str, Any]]] = {}

    # ==================== 创建 ====================

    @override
    async def create_session(
        self,
        *,
        app_name: str,
        user_id: str,
        state: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Session:
        session_id = (session_id or '').strip() or str(uuid4())
        if self._get_storage_session(app_name, user_id, session_id) is not None:
            raise ValueError(f"Session already exists: {session_id}")

        session_state: dict[str, Any] = {}
        for key, value in (state or {}).items():
            if key.startswith(State.APP_PREFIX):
                self._app_state.setdefault(app_name, {})[key[len(State.APP_PREFIX):]] = value
            elif key.startswith(State.USER_PREFIX):
                self._user_state.setdefault(app_name, {}).setdefault(user_id, {})[
                    key[len(State.USER_PREFIX):]
                ] = value
            elif not key.startswith(State.TEMP_PREFIX):
                session_state[key] = value

        session = Session(
            id=session_id,
            app_name=app_name,
            user_id=user_id,
            state=session_state,
            last_update_time=time.time(),
        )
        self._sessions.setdefault(app_name, {}).setdefault(user_id, {})[session_id] = session
        logger.debug(f"[InMemorySessionService] Created session {app_name}/{user_id}/{session_id}")
        return self._merge_state(app_name, user_id, session.model_copy(deep=True))

    # ==================== 获取 ====================

    @override
    async def get_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        config: Optional[GetSessionConfig] = None,
    ) -> Optional[Session]:
        session = self._get_storage_session(app_name, user_id, session_id)
        if session is None:
            return None

        copied = session.model_copy(deep=True)
        if config:
            if config.num_recent_events is not None:
                if config.num_recent_events <= 0:
                    copied.events = []
                else:
                    copied.events = copied.events[-config.num_recent_events:]
            if config.after_timestamp is not None:
                copied.events = [
                    e for e in copied.events if e.timestamp >= config.after_timestamp
                ]
        return self._merge_state(app_name, user_id, copied)

    @override
    async def list_sessions(
        self,
        *,
        app_name: str,
        user_id: str,
    ) -> ListSessionsResponse:
        sessions = []
        for session in self._sessions.get(app_name, {}).get(user_id, {}).values():
            copied = session.model_copy(deep=True)
            copied.events = []
            copied.state = {}
            sessions.append(copied)
        return ListSessionsResponse(sessions=sessions)

    # ==================== 删除 ====================

    @override
    async def delete_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> None:
        user_sessions = self._sessions.get(app_name, {}).get(user_id, {})
        user_sessions.pop(session_id, None)

    # ==================== 追加事件 ====================

    @override
    async def append_event(self, session: Session, event: Event) -> Event:
        """
        追加事件

        1. 更新调用方持有的 session 副本
        2. app:/user: 前缀的增量写入对应作用域
        3. 更新存储中的 session
        """
        await super().append_event(session, event)
        if event.partial:
            return event
        session.last_update_time = event.timestamp

        storage_session = self._get_storage_session(session.app_name, session.user_id, session.id)
        if storage_session is None:
            logger.warning(
                f"[InMemorySessionService] Session not found when appending event: {session.id}"
            )
            return event

        for key, value in event.actions.state_delta.items():
            if key.startswith(State.APP_PREFIX):
                self._apply_scoped(
                    self._app_state.setdefault(session.app_name, {}),
                    key[len(State.APP_PREFIX):],
                    value,
                )
            elif key.startswith(State.USER_PREFIX):
                self._apply_scoped(
                    self._user_state.setdefault(session.app_name, {}).setdefault(session.user_id, {}),
                    key[len(State.USER_PREFIX):],
                    value,
                )

        await super().append_event(storage_session, event)
        storage_session.last_update_time = event.timestamp
        return event

    # ==================== 辅助方法 ====================

    def _get_storage_session(self, app_name: str, user_id: str, session_id: str) -> Optional[Session]:
        return self._sessions.get(app_name, {}).get(user_id, {}).get(session_id)

    @staticmethod
    def _apply_scoped(scope: dict[str, Any], key: str, value: Any) -> None:
        if value is None:
            scope.pop(key, None)
        else:
            scope[key] = copy.deepcopy(value)

    def _merge_state(self, app_name: str, user_id: str, session: Session) -> Session:
        """把 app/user 作用域的状态带前缀合并进 session.state"""
        for key, value in self._app_state.get(app_name, {}).items():
            session.state[State.APP_PREFIX + key] = copy.deepcopy(value)
        for key, value in self._user_state.get(app_name, {}).get(user_id, {}).items():
            session.state[State.USER_PREFIX + key] = copy.deepcopy(value)
        return session

"""sessions 模块 - 会话、状态与持久化服务"""

from .base_session_service import BaseSessionService, GetSessionConfig, ListSessionsResponse
from .in_memory_session_service import InMemorySessionService
from .session import Session
from .state import State

__all__ = [
    'BaseSessionService',
    'GetSessionConfig',
    'InMemorySessionService',
    'ListSessionsResponse',
    'Session',
    'State',
]

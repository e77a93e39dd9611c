"""ReadonlyContext - 只读的调用上下文视图"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional

if TYPE_CHECKING:
    from ..types import Content
    from .invocation_context import InvocationContext


class ReadonlyContext:
    """传给 instruction provider 等只读场景的上下文"""

    def __init__(self, invocation_context: 'InvocationContext') -> None:
        self._invocation_context = invocation_context

    @property
    def user_content(self) -> Optional['Content']:
        return self._invocation_context.user_content

    @property
    def invocation_id(self) -> str:
        return self._invocation_context.invocation_id

    @property
    def agent_name(self) -> str:
        return self._invocation_context.agent.name

    @property
    def app_name(self) -> str:
        return self._invocation_context.app_name

    @property
    def user_id(self) -> str:
        return self._invocation_context.user_id

    @property
    def session_id(self) -> str:
        return self._invocation_context.session.id

    @property
    def state(self) -> Mapping[str, Any]:
        """会话状态的只读视图"""
        return MappingProxyType(self._invocation_context.session.state)

"""CallbackContext - 回调中使用的可写上下文"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ..events import EventActions
from ..sessions.state import State
from .readonly_context import ReadonlyContext

if TYPE_CHECKING:
    from ..types import Part
    from .invocation_context import InvocationContext


class CallbackContext(ReadonlyContext):
    """
    回调上下文

    写入 state 会同时记录到 actions.state_delta，
    由调用方把这些变更随事件一起持久化。
    """

    def __init__(
        self,
        invocation_context: 'InvocationContext',
        *,
        event_actions: Optional[EventActions] = None,
    ) -> None:
        super().__init__(invocation_context)
        self._event_actions = event_actions or EventActions()
        self._state = State(
            value=invocation_context.session.state,
            delta=self._event_actions.state_delta,
        )

    @property
    def state(self) -> State:
        return self._state

    @property
    def actions(self) -> EventActions:
        return self._event_actions

    async def load_artifact(self, filename: str, version: Optional[int] = None) -> Optional['Part']:
        ctx = self._invocation_context
        if ctx.artifact_service is None:
            raise ValueError("Artifact service is not initialized.")
        return await ctx.artifact_service.load_artifact(
            app_name=ctx.app_name,
            user_id=ctx.user_id,
            session_id=ctx.session.id,
            filename=filename,
            version=version,
        )

    async def save_artifact(self, filename: str, artifact: 'Part') -> int:
        """保存 artifact，并把新版本号记录到 actions.artifact_delta"""
        ctx = self._invocation_context
        if ctx.artifact_service is None:
            raise ValueError("Artifact service is not initialized.")
        version = await ctx.artifact_service.save_artifact(
            app_name=ctx.app_name,
            user_id=ctx.user_id,
            session_id=ctx.session.id,
            filename=filename,
            artifact=artifact,
        )
        self._event_actions.artifact_delta[filename] = version
        return version

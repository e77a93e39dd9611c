"""ToolContext - 工具执行时的上下文"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ..agents.callback_context import CallbackContext
from ..sessions.state import State

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from ..auth.auth_config import AuthConfig, AuthCredential
    from ..events import EventActions
    from ..memory.base_memory_service import SearchMemoryResponse


class ToolContext(CallbackContext):
    """
    工具上下文

    每个函数调用一个实例，工具对 state / artifact 的修改
    都记录在 actions 里，随函数响应事件一起持久化。

    Attributes:
        function_call_id: 触发本次执行的函数调用 id
    """

    def __init__(
        self,
        invocation_context: 'InvocationContext',
        *,
        function_call_id: Optional[str] = None,
        event_actions: Optional['EventActions'] = None,
    ) -> None:
        super().__init__(invocation_context, event_actions=event_actions)
        self.function_call_id = function_call_id

    @property
    def invocation_context(self) -> 'InvocationContext':
        return self._invocation_context

    def request_credential(self, auth_config: 'AuthConfig') -> None:
        """请求用户提供凭证，Flow 会据此生成认证请求事件"""
        if not self.function_call_id:
            raise ValueError("function_call_id is not set.")
        self.actions.requested_auth_configs[self.function_call_id] = auth_config

    def get_auth_response(self, auth_config: 'AuthConfig') -> Optional['AuthCredential']:
        """读取用户已提供的凭证（存放在 temp: 前缀的状态中）"""
        from ..auth.auth_config import AuthCredential

        key = State.TEMP_PREFIX + auth_config.get_credential_key()
        value = self.state.get(key)
        if value is None:
            return None
        if isinstance(value, AuthCredential):
            return value
        return AuthCredential.model_validate(value)

    async def list_artifacts(self) -> list[str]:
        ctx = self._invocation_context
        if ctx.artifact_service is None:
            raise ValueError("Artifact service is not initialized.")
        return await ctx.artifact_service.list_artifact_keys(
            app_name=ctx.app_name,
            user_id=ctx.user_id,
            session_id=ctx.session.id,
        )

    async def search_memory(self, query: str) -> 'SearchMemoryResponse':
        ctx = self._invocation_context
        if ctx.memory_service is None:
            raise ValueError("Memory service is not available.")
        return await ctx.memory_service.search_memory(
            app_name=ctx.app_name,
            user_id=ctx.user_id,
            query=query,
        )

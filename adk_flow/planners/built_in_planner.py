"""BuiltInPlanner - 使用模型自带的思考能力"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from typing_extensions import override

from ..types import ThinkingConfig
from .base_planner import BasePlanner

if TYPE_CHECKING:
    from ..agents.callback_context import CallbackContext
    from ..agents.readonly_context import ReadonlyContext
    from ..models.llm_request import LlmRequest
    from ..types import Part


class BuiltInPlanner(BasePlanner):
    """只把 thinking_config 写入请求，不追加指令也不改写响应"""

    def __init__(self, *, thinking_config: ThinkingConfig):
        self.thinking_config = thinking_config

    def apply_thinking_config(self, llm_request: 'LlmRequest') -> None:
        if self.thinking_config:
            llm_request.config.thinking_config = self.thinking_config

    @override
    def build_planning_instruction(
        self,
        readonly_context: 'ReadonlyContext',
        llm_request: 'LlmRequest',
    ) -> Optional[str]:
        return None

    @override
    def process_planning_response(
        self,
        callback_context: 'CallbackContext',
        response_parts: list['Part'],
    ) -> Optional[list['Part']]:
        return None

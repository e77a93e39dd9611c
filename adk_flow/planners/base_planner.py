"""BasePlanner - 规划器接口"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..agents.callback_context import CallbackContext
    from ..agents.readonly_context import ReadonlyContext
    from ..models.llm_request import LlmRequest
    from ..types import Part


class BasePlanner(abc.ABC):
    """
    规划器

    - build_planning_instruction: 请求前追加规划指令
    - process_planning_response: 响应后整理 parts（例如把推理标记为 thought）
    """

    @abc.abstractmethod
    def build_planning_instruction(
        self,
        readonly_context: 'ReadonlyContext',
        llm_request: 'LlmRequest',
    ) -> Optional[str]:
        """返回要追加到系统指令的规划指令，None 表示不追加"""

    @abc.abstractmethod
    def process_planning_response(
        self,
        callback_context: 'CallbackContext',
        response_parts: list['Part'],
    ) -> Optional[list['Part']]:
        """返回整理后的 parts，None 表示保持不变"""

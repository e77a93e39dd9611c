"""事件系统 - 追踪 agent 执行过程中的所有操作"""

from __future__ import annotations

import time
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from .auth.auth_config import AuthConfig
from .models.llm_response import LlmResponse
from .types import Content, FunctionCall, FunctionResponse


class EventCompaction(BaseModel):
    """压缩标记 - 一段历史事件被摘要替换"""

    start_timestamp: float
    """被压缩范围内第一个事件的时间戳"""

    end_timestamp: float
    """被压缩范围内最后一个事件的时间戳"""

    compacted_content: Content
    """替换该范围的摘要内容"""


class EventActions(BaseModel):
    """
    事件动作 - 描述事件触发的副作用

    - state_delta: 状态变更（app:/user:/temp: 前缀路由到不同作用域）
    - artifact_delta: 文件名 -> 版本号
    - transfer_to_agent: 跳转到指定 Agent
    - escalate: 向上级 Agent 报告/退出循环
    - requested_auth_configs: function_call_id -> 认证配置
    - compaction: 历史压缩标记
    - rewind_before_invocation_id: 回退标记
    """

    model_config = ConfigDict(extra='forbid')

    skip_summarization: Optional[bool] = None
    """工具结果不再交给模型总结"""

    state_delta: dict[str, Any] = Field(default_factory=dict)
    """状态变更"""

    artifact_delta: dict[str, int] = Field(default_factory=dict)
    """文件版本变更"""

    transfer_to_agent: Optional[str] = None
    """跳转到的目标 Agent 名称"""

    escalate: Optional[bool] = None
    """是否向上级 Agent 报告（用于退出 LoopAgent）"""

    requested_auth_configs: dict[str, AuthConfig] = Field(default_factory=dict)
    """工具请求的认证配置"""

    compaction: Optional[EventCompaction] = None
    """历史压缩标记"""

    rewind_before_invocation_id: Optional[str] = None
    """回退到该 invocation 之前"""


def merge_event_actions(actions_list: list[EventActions]) -> EventActions:
    """
    按调用顺序合并多个 EventActions

    重叠的键以先出现者为准（first-call-wins），
    requested_auth_configs 则取并集。
    """
    merged = EventActions()
    for actions in actions_list:
        for key, value in actions.state_delta.items():
            merged.state_delta.setdefault(key, value)
        for key, value in actions.artifact_delta.items():
            merged.artifact_delta.setdefault(key, value)
        for key, value in actions.requested_auth_configs.items():
            merged.requested_auth_configs.setdefault(key, value)
        if merged.skip_summarization is None:
            merged.skip_summarization = actions.skip_summarization
        if merged.transfer_to_agent is None:
            merged.transfer_to_agent = actions.transfer_to_agent
        if merged.escalate is None:
            merged.escalate = actions.escalate
        if merged.compaction is None:
            merged.compaction = actions.compaction
        if merged.rewind_before_invocation_id is None:
            merged.rewind_before_invocation_id = actions.rewind_before_invocation_id
    return merged


class Event(LlmResponse):
    """
    事件 - 记录 agent 执行过程中的每一步

    核心设计理念: 所有操作都是事件，事件组成会话历史

    - author: 'user' 或产生此事件的 Agent 名称
    - invocation_id: 同一次 Runner 调用产生的事件共享该 id
    - branch: 以点分隔的 Agent 路径，控制兄弟 Agent 之间的可见性
    - partial: 流式片段，不会被持久化
    """

    invocation_id: str = ''
    author: str
    actions: EventActions = Field(default_factory=EventActions)
    long_running_tool_ids: Optional[set[str]] = None
    branch: Optional[str] = None
    id: str = ''
    timestamp: float = Field(default_factory=time.time)

    def model_post_init(self, __context: Any) -> None:
        if not self.id:
            self.id = Event.new_id()

    @staticmethod
    def new_id() -> str:
        return uuid4().hex[:8]

    # ==================== 便捷方法 ====================

    def is_final_response(self) -> bool:
        """是否是本轮的最终响应"""
        if self.actions.skip_summarization or self.long_running_tool_ids:
            return True
        return (
            not self.get_function_calls()
            and not self.get_function_responses()
            and not self.partial
            and not self.has_trailing_code_execution_result()
        )

    def get_function_calls(self) -> list[FunctionCall]:
        if not self.content:
            return []
        return [p.function_call for p in self.content.parts if p.function_call]

    def get_function_responses(self) -> list[FunctionResponse]:
        if not self.content:
            return []
        return [p.function_response for p in self.content.parts if p.function_response]

    def has_trailing_code_execution_result(self) -> bool:
        if self.content and self.content.parts:
            return self.content.parts[-1].code_execution_result is not None
        return False

    @property
    def text(self) -> str:
        """事件中的非思考文本"""
        return self.content.text if self.content else ''

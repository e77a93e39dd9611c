"""InvocationContext - 单次调用的上下文"""

from __future__ import annotations

import dataclasses
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from ..errors import LlmCallsLimitExceededError
from .run_config import RunConfig

if TYPE_CHECKING:
    from ..artifacts.base_artifact_service import BaseArtifactService
    from ..memory.base_memory_service import BaseMemoryService
    from ..models.registry import LlmRegistry
    from ..sessions.base_session_service import BaseSessionService
    from ..sessions.session import Session
    from ..types import Content
    from .base_agent import BaseAgent


class InvocationCostManager:
    """统计一次调用中的 LLM 调用次数，超过上限时失败"""

    def __init__(self) -> None:
        self._number_of_llm_calls = 0

    @property
    def number_of_llm_calls(self) -> int:
        return self._number_of_llm_calls

    def increment_and_enforce_llm_calls_limit(self, run_config: Optional[RunConfig]) -> None:
        self._number_of_llm_calls += 1
        if (
            run_config
            and run_config.max_llm_calls > 0
            and self._number_of_llm_calls > run_config.max_llm_calls
        ):
            raise LlmCallsLimitExceededError(
                f"Max number of llm calls limit of `{run_config.max_llm_calls}` exceeded"
            )


def new_invocation_context_id() -> str:
    return 'e-' + str(uuid4())


@dataclass
class InvocationContext:
    """
    单次调用的临时上下文

    核心设计理念:
    - InvocationContext 只存在于一次 Runner 调用期间
    - 它持有执行需要的所有服务引用
    - 子 Agent 使用派生出的上下文：共享 invocation_id、session 和调用计数，
      各自持有自己的 branch 和 agent
    """

    session_service: 'BaseSessionService'
    agent: 'BaseAgent'
    session: 'Session'
    invocation_id: str = field(default_factory=new_invocation_context_id)

    artifact_service: Optional['BaseArtifactService'] = None
    memory_service: Optional['BaseMemoryService'] = None
    llm_registry: Optional['LlmRegistry'] = None

    branch: Optional[str] = None
    """以点分隔的 Agent 路径，用于过滤可见事件"""

    user_content: Optional['Content'] = None
    """触发本次调用的用户消息"""

    end_invocation: bool = False
    """设置后所有循环应尽快停止产生新的 step/事件"""

    run_config: RunConfig = field(default_factory=RunConfig)

    cost_manager: InvocationCostManager = field(default_factory=InvocationCostManager)

    start_time: float = field(default_factory=time.time)

    @property
    def app_name(self) -> str:
        return self.session.app_name

    @property
    def user_id(self) -> str:
        return self.session.user_id

    @property
    def elapsed_time(self) -> float:
        """获取已用时间（秒）"""
        return time.time() - self.start_time

    def copy_with(self, **changes) -> InvocationContext:
        """浅拷贝并替换部分字段（session 和计数器按引用共享）"""
        return dataclasses.replace(self, **changes)

    def create_child_context(self, agent: 'BaseAgent') -> InvocationContext:
        """为子 Agent 派生上下文，branch 追加子 Agent 名称"""
        branch = f"{self.branch}.{agent.name}" if self.branch else agent.name
        return self.copy_with(agent=agent, branch=branch)

    def increment_llm_call_count(self) -> None:
        self.cost_manager.increment_and_enforce_llm_calls_limit(self.run_config)

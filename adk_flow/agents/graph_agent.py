"""GraphAgent - 按有向图执行 Agent 节点（编排器）"""

from __future__ import annotations

import inspect
import logging
from collections import deque
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from typing_extensions import override

from ..errors import NODE_EXECUTION_ERROR, ConfigurationError, LlmCallsLimitExceededError, ProtocolError
from ..events import Event
from ..types import Content
from .base_agent import BaseAgent

if TYPE_CHECKING:
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)

_MAX_TRACKED_INVOCATIONS = 16

# (last_event, invocation_context) -> bool | Awaitable[bool]
NodeCondition = Callable[..., Any]


class GraphNode(BaseModel):
    """
    图节点

    Attributes:
        name: 节点名称（图内唯一）
        agent: 该节点执行的 Agent
        targets: 执行完成后可能前往的节点名称
        condition: 进入本节点的条件，参数为上一个节点的最后事件和调用上下文
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    agent: BaseAgent
    targets: list[str] = Field(default_factory=list)
    condition: Optional[NodeCondition] = None


class NodeExecutionResult(BaseModel):
    node: str
    events: list[Event] = Field(default_factory=list)


class GraphAgent(BaseAgent):
    """
    图执行 Agent（LangGraph 风格）

    从 root_node 开始执行，节点完成后沿 targets 边前进，
    所有节点共享图的上下文（同一 branch），下游节点可以看到上游节点的输出；
    目标节点的 condition 决定这条边是否生效；多个目标同时生效时按顺序排队执行。
    最多执行 max_steps 个节点，保证一定终止。

    Example:
        graph = GraphAgent(
            name="support",
            nodes=[
                GraphNode(name="classify", agent=classifier, targets=["refund", "faq"]),
                GraphNode(name="refund", agent=refund_agent,
                          condition=lambda event, ctx: "refund" in event.text),
                GraphNode(name="faq", agent=faq_agent,
                          condition=lambda event, ctx: "refund" not in event.text),
            ],
            root_node="classify",
        )
    """

    nodes: list[GraphNode] = Field(default_factory=list)
    root_node: str
    max_steps: int = 50

    _nodes_by_name: dict[str, GraphNode] = PrivateAttr(default_factory=dict)
    # invocation_id -> 该次调用中各节点的执行结果，只保留最近几次调用
    _results: dict[str, list[NodeExecutionResult]] = PrivateAttr(default_factory=dict)

    @override
    def model_post_init(self, __context: Any) -> None:
        for node in self.nodes:
            if node.name in self._nodes_by_name:
                raise ConfigurationError(f"Duplicate node name in graph: {node.name}")
            self._nodes_by_name[node.name] = node
            self.sub_agents.append(node.agent)

        if self.root_node not in self._nodes_by_name:
            raise ConfigurationError(f'Root node "{self.root_node}" not found in graph nodes')
        self._validate_graph()

        super().model_post_init(__context)

    def _validate_graph(self) -> None:
        for node in self.nodes:
            for target in node.targets:
                if target not in self._nodes_by_name:
                    raise ConfigurationError(f'Node "{node.name}" targets non-existent node "{target}"')

    # ==================== 执行 ====================

    @override
    async def _run_async_impl(self, ctx: 'InvocationContext') -> AsyncGenerator[Event, None]:
        logger.info(f"[{self.name}] Starting graph execution from root node '{self.root_node}'")

        nodes_to_execute = deque([self._nodes_by_name[self.root_node]])
        executed_nodes: list[str] = []
        last_event: Optional[Event] = None
        step_count = 0
        results = self._start_results(ctx.invocation_id)

        while nodes_to_execute and step_count < self.max_steps:
            step_count += 1
            node = nodes_to_execute.popleft()
            logger.debug(f"[{self.name}] Step {step_count}: executing node '{node.name}'")
            executed_nodes.append(node.name)

            node_events: list[Event] = []
            try:
                async for event in node.agent.run_async(ctx):
                    node_events.append(event)
                    last_event = event
                    yield event
                results.append(NodeExecutionResult(node=node.name, events=node_events))

                if last_event is not None:
                    nodes_to_execute.extend(await self._get_next_nodes(node, last_event, ctx))
            except (LlmCallsLimitExceededError, ProtocolError):
                raise
            except Exception as e:
                logger.error(f"[{self.name}] Error in node '{node.name}': {e}", exc_info=True)
                yield Event(
                    invocation_id=ctx.invocation_id,
                    author=self.name,
                    branch=ctx.branch,
                    content=Content.from_text(f'Error in node "{node.name}": {e}', role='model'),
                    error_code=NODE_EXECUTION_ERROR,
                    error_message=str(e),
                )
                return

            if ctx.end_invocation:
                logger.info(f"[{self.name}] Invocation ended in node '{node.name}'")
                return

        if nodes_to_execute:
            logger.warning(f"[{self.name}] Max steps ({self.max_steps}) reached")

        logger.info(f"[{self.name}] Graph execution complete: {' → '.join(executed_nodes)}")
        yield Event(
            invocation_id=ctx.invocation_id,
            author=self.name,
            branch=ctx.branch,
            content=Content.from_text(
                f"Graph execution complete. Executed nodes: {' → '.join(executed_nodes)}",
                role='model',
            ),
            turn_complete=True,
        )

    async def _get_next_nodes(
        self,
        current_node: GraphNode,
        last_event: Event,
        ctx: 'InvocationContext',
    ) -> list[GraphNode]:
        next_nodes = []
        for target_name in current_node.targets:
            target_node = self._nodes_by_name[target_name]
            if target_node.condition is not None:
                should_execute = target_node.condition(last_event, ctx)
                if inspect.isawaitable(should_execute):
                    should_execute = await should_execute
                if not should_execute:
                    logger.debug(f"[{self.name}] Skipping node '{target_name}' due to condition")
                    continue
            next_nodes.append(target_node)
        return next_nodes

    # ==================== 查询 ====================

    def _start_results(self, invocation_id: str) -> list[NodeExecutionResult]:
        results = self._results.setdefault(invocation_id, [])
        while len(self._results) > _MAX_TRACKED_INVOCATIONS:
            self._results.pop(next(iter(self._results)))
        return results

    def get_execution_results(self, invocation_id: Optional[str] = None) -> list[NodeExecutionResult]:
        """某次调用中每个节点产生的事件，默认取最近一次调用"""
        if invocation_id is None:
            if not self._results:
                return []
            invocation_id = next(reversed(self._results))
        return list(self._results.get(invocation_id, []))

    def clear_execution_history(self, invocation_id: Optional[str] = None) -> None:
        if invocation_id is None:
            self._results.clear()
        else:
            self._results.pop(invocation_id, None)

    def get_nodes(self) -> list[GraphNode]:
        return list(self._nodes_by_name.values())

    def get_node(self, name: str) -> Optional[GraphNode]:
        return self._nodes_by_name.get(name)

    def get_root_node_name(self) -> str:
        return self.root_node

    def get_max_steps(self) -> int:
        return self.max_steps

    def set_max_steps(self, max_steps: int) -> None:
        if max_steps <= 0:
            raise ConfigurationError("max_steps must be greater than 0")
        self.max_steps = max_steps

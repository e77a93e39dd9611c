"""SequentialAgent - 顺序执行子 Agent（编排器）"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncGenerator

from typing_extensions import override

from .base_agent import BaseAgent

if TYPE_CHECKING:
    from ..events import Event
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)


class SequentialAgent(BaseAgent):
    """
    顺序执行 Agent - 按顺序运行所有子 Agent

    这是一个编排器（shell agent），它本身不调用 LLM，
    只是按顺序执行子 Agent，并原样转发它们的事件。
    子 Agent 共享同一个上下文（同一 branch），前一个的输出对后一个可见。

    适用场景:
    - 流水线处理：分析 → 生成 → 审核
    - 多阶段任务：规划 → 执行 → 总结

    Example:
        pipeline = SequentialAgent(
            name="pipeline",
            sub_agents=[
                LlmAgent(name="analyzer", instruction="分析需求", output_key="analysis"),
                LlmAgent(name="generator", instruction="根据分析生成方案: {analysis}"),
            ]
        )
    """

    @override
    async def _run_async_impl(self, ctx: 'InvocationContext') -> AsyncGenerator['Event', None]:
        if not self.sub_agents:
            logger.warning(f"[{self.name}] No sub_agents to run")
            return

        logger.info(f"[{self.name}] Starting sequential execution of {len(self.sub_agents)} agents")

        for i, sub_agent in enumerate(self.sub_agents):
            logger.info(f"[{self.name}] Running {i + 1}/{len(self.sub_agents)}: {sub_agent.name}")
            async for event in sub_agent.run_async(ctx):
                yield event
            if ctx.end_invocation:
                logger.info(f"[{self.name}] Invocation ended by {sub_agent.name}")
                return

        logger.info(f"[{self.name}] Sequential execution completed")

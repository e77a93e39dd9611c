"""LoopAgent - 循环执行子 Agent（编排器）"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncGenerator, Optional

from typing_extensions import override

from .base_agent import BaseAgent

if TYPE_CHECKING:
    from ..events import Event
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)


class LoopAgent(BaseAgent):
    """
    循环执行 Agent - 重复运行子 Agent 直到满足条件

    这是一个编排器（shell agent），它本身不调用 LLM，
    每轮按顺序执行全部子 Agent。

    停止条件:
    - 任一事件的 actions.escalate 为真（例如子 Agent 调用了 exit_loop）
    - 达到 max_iterations
    - 上下文被标记为 end_invocation

    Example:
        refiner = LoopAgent(
            name="refiner",
            max_iterations=3,
            sub_agents=[
                LlmAgent(name="writer", instruction="写作"),
                LlmAgent(name="critic", instruction="评审，满意则调用 exit_loop", tools=[exit_loop_tool]),
            ]
        )
    """

    max_iterations: Optional[int] = None
    """最大循环次数，None 表示无限循环直到 escalate"""

    @override
    async def _run_async_impl(self, ctx: 'InvocationContext') -> AsyncGenerator['Event', None]:
        if not self.sub_agents:
            logger.warning(f"[{self.name}] No sub_agents to run")
            return

        logger.info(f"[{self.name}] Starting loop (max={self.max_iterations})")

        times_looped = 0
        while not self.max_iterations or times_looped < self.max_iterations:
            logger.info(f"[{self.name}] Loop iteration {times_looped + 1}")

            for sub_agent in self.sub_agents:
                async for event in sub_agent.run_async(ctx):
                    yield event
                    if event.actions.escalate:
                        logger.info(f"[{self.name}] Received escalate signal from {event.author}")
                        return
                if ctx.end_invocation:
                    logger.info(f"[{self.name}] Invocation ended by {sub_agent.name}")
                    return

            times_looped += 1

        logger.info(f"[{self.name}] Loop completed after {times_looped} iterations")

"""ParallelAgent - 并发执行子 Agent（编排器）"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, AsyncGenerator

from typing_extensions import override

from ..errors import LlmCallsLimitExceededError, ProtocolError
from .base_agent import BaseAgent

if TYPE_CHECKING:
    from ..events import Event
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)


def create_branch_context_for_sub_agent(
    agent: BaseAgent,
    sub_agent: BaseAgent,
    invocation_context: 'InvocationContext',
) -> 'InvocationContext':
    """每个并行分支使用 <parent_branch>.<agent>.<sub_agent> 作为 branch，兄弟分支互不可见"""
    branch_suffix = f"{agent.name}.{sub_agent.name}"
    branch = (
        f"{invocation_context.branch}.{branch_suffix}"
        if invocation_context.branch
        else branch_suffix
    )
    return invocation_context.copy_with(agent=sub_agent, branch=branch)


async def merge_agent_run(agent_runs: list[AsyncGenerator['Event', None]]) -> AsyncGenerator['Event', None]:
    """
    合并多个事件流

    总是先产出最先就绪的那个分支的下一个事件；
    同一分支内的顺序保持不变，分支之间的交错顺序不做保证。
    某个分支抛出异常时记录错误并丢弃该分支，其他分支继续执行；
    调用次数超限与协议违例会直接向上抛出。
    """
    if not agent_runs:
        return

    pending: dict[asyncio.Future, int] = {
        asyncio.ensure_future(run.__anext__()): index
        for index, run in enumerate(agent_runs)
    }

    try:
        while pending:
            done, _ = await asyncio.wait(pending.keys(), return_when=asyncio.FIRST_COMPLETED)
            for future in sorted(done, key=lambda f: pending[f]):
                index = pending.pop(future)
                try:
                    event = future.result()
                except StopAsyncIteration:
                    continue
                except (LlmCallsLimitExceededError, ProtocolError):
                    raise
                except Exception as e:
                    logger.error(f"[ParallelAgent] Error in parallel branch {index}: {e}", exc_info=e)
                    continue

                yield event
                pending[asyncio.ensure_future(agent_runs[index].__anext__())] = index
    finally:
        for future in pending:
            future.cancel()
        if pending:
            await asyncio.gather(*pending.keys(), return_exceptions=True)
        for run in agent_runs:
            await run.aclose()


class ParallelAgent(BaseAgent):
    """
    并行执行 Agent - 同时运行所有子 Agent

    这是一个编排器（shell agent），它本身不调用 LLM。
    每个子 Agent 在独立 branch 的子上下文中运行（共享 session 和 invocation_id），
    适合相互独立的任务，例如从不同角度同时分析同一个问题。

    失败的分支只记录错误日志，不影响其他分支，也不会向调用方抛出异常。

    Example:
        reviewers = ParallelAgent(
            name="reviewers",
            sub_agents=[
                LlmAgent(name="security", instruction="从安全角度评审"),
                LlmAgent(name="performance", instruction="从性能角度评审"),
            ]
        )
    """

    @override
    async def _run_async_impl(self, ctx: 'InvocationContext') -> AsyncGenerator['Event', None]:
        if not self.sub_agents:
            logger.warning(f"[{self.name}] No sub_agents to run")
            return

        logger.info(f"[{self.name}] Starting parallel execution of {len(self.sub_agents)} agents")

        agent_runs = [
            sub_agent.run_async(create_branch_context_for_sub_agent(self, sub_agent, ctx))
            for sub_agent in self.sub_agents
        ]
        async for event in merge_agent_run(agent_runs):
            yield event

        logger.info(f"[{self.name}] Parallel execution completed")

"""Agent 跳转处理器 - 告诉模型可以跳转到哪些 Agent，并注册 transfer_to_agent 工具"""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncGenerator

from typing_extensions import override

from ...tools.tool_context import ToolContext
from ...tools.transfer_to_agent_tool import transfer_to_agent_tool
from ..base_llm_processor import BaseLlmRequestProcessor

if TYPE_CHECKING:
    from ...agents.base_agent import BaseAgent
    from ...agents.invocation_context import InvocationContext
    from ...agents.llm_agent import LlmAgent
    from ...events import Event
    from ...models.llm_request import LlmRequest


class AgentTransferLlmRequestProcessor(BaseLlmRequestProcessor):

    @override
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: 'LlmRequest',
    ) -> AsyncGenerator['Event', None]:
        from ...agents.llm_agent import LlmAgent

        agent = invocation_context.agent
        if not isinstance(agent, LlmAgent):
            return

        transfer_targets = get_transfer_targets(agent)
        if not transfer_targets:
            return

        llm_request.append_instructions([build_target_agents_instructions(agent, transfer_targets)])
        await transfer_to_agent_tool.process_llm_request(ToolContext(invocation_context), llm_request)
        return
        yield  # 保持为 AsyncGenerator


request_processor = AgentTransferLlmRequestProcessor()


def get_transfer_targets(agent: 'LlmAgent') -> list['BaseAgent']:
    """
    可跳转目标

    - 子 Agent 总是可以跳转
    - 父 Agent：除非 disallow_transfer_to_parent
    - 同级 Agent（不含自己）：除非 disallow_transfer_to_peers
    """
    targets: list['BaseAgent'] = list(agent.sub_agents)

    parent = agent.parent_agent
    if parent is None:
        return targets

    if not agent.disallow_transfer_to_parent:
        targets.append(parent)

    if not agent.disallow_transfer_to_peers:
        targets.extend(peer for peer in parent.sub_agents if peer.name != agent.name)

    return targets


def _build_target_agent_info(target_agent: 'BaseAgent') -> str:
    return f"Agent name: {target_agent.name}\nAgent description: {target_agent.description}"


def build_target_agents_instructions(agent: 'LlmAgent', target_agents: list['BaseAgent']) -> str:
    transfer_function_name = transfer_to_agent_tool.name
    agents_info = '\n\n'.join(_build_target_agent_info(a) for a in target_agents)

    instructions = f"""You have a list of other agents to transfer to:

{agents_info}

If you are the best to answer the question according to your description, you
can answer it.

If another agent is better for answering the question according to its
description, call `{transfer_function_name}` function to transfer the
question to that agent. When transferring, do not generate any text other than
the function call.
"""

    if agent.parent_agent is not None and not agent.disallow_transfer_to_parent:
        instructions += f"""
Your parent agent is {agent.parent_agent.name}. If neither the other agents nor
you are best for answering the question according to the descriptions, transfer
to your parent agent.
"""
    return instructions

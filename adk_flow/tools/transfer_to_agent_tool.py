"""内置工具：跳转到另一个 Agent"""

from __future__ import annotations

import logging
from typing import Any, Optional

from typing_extensions import override

from ..types import FunctionDeclaration
from .base_tool import BaseTool
from .tool_context import ToolContext

logger = logging.getLogger(__name__)


class TransferToAgentTool(BaseTool):
    """
    内置工具：跳转到另一个 Agent

    让 LLM 可以主动决定将控制权交给其他 Agent。
    工具只在 actions 上记录目标，真正的跳转由 Flow 在本 step 内完成：
    从根 Agent 开始按名称查找目标并运行它。

    使用场景：
    - 主 Agent 识别到需要专业处理，跳转到专家 Agent
    - 任务完成后返回给父 Agent
    - 在多个专家 Agent 之间路由
    """

    name: str = 'transfer_to_agent'
    description: str = (
        "Transfer the question to another agent when it's more suitable to answer "
        "the user's question according to the agent's description."
    )

    @override
    def get_declaration(self) -> Optional[FunctionDeclaration]:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters={
                'type': 'object',
                'properties': {
                    'agent_name': {
                        'type': 'string',
                        'description': 'The name of the agent to transfer control to',
                    },
                },
                'required': ['agent_name'],
            },
        )

    @override
    async def run_async(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        agent_name = args['agent_name']
        logger.debug(f"[TransferToAgentTool] Transfer requested to {agent_name}")
        tool_context.actions.transfer_to_agent = agent_name
        return None


transfer_to_agent_tool = TransferToAgentTool()

"""AutoFlow - 支持 Agent 跳转的 LLM 循环"""

from __future__ import annotations

import logging

from .processors import agent_transfer
from .single_flow import SingleFlow

logger = logging.getLogger(__name__)


class AutoFlow(SingleFlow):
    """
    在 SingleFlow 的基础上追加 agent_transfer 处理器

    模型可以调用 transfer_to_agent 把控制权交给:
    - 子 Agent
    - 父 Agent（除非 disallow_transfer_to_parent）
    - 同级 Agent（除非 disallow_transfer_to_peers）
    """

    def __init__(self):
        super().__init__()
        self.request_processors.append(agent_transfer.request_processor)
        logger.debug("[AutoFlow] Created")

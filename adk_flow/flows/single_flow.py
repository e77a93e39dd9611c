"""SingleFlow - 不支持 Agent 跳转的 LLM 循环"""

from __future__ import annotations

import logging

from .base_llm_flow import BaseLlmFlow
from .processors import (
    auth,
    basic,
    code_execution,
    contents,
    identity,
    instructions,
    nl_planning,
    output_schema,
    shared_memory,
)

logger = logging.getLogger(__name__)


class SingleFlow(BaseLlmFlow):
    """
    单 Agent Flow

    请求处理器（按顺序）:
    basic -> auth -> instructions -> identity -> contents
    -> shared_memory -> nl_planning -> code_execution

    响应处理器（按顺序）:
    nl_planning -> output_schema -> code_execution
    """

    def __init__(self):
        super().__init__()
        self.request_processors += [
            basic.request_processor,
            auth.request_processor,
            instructions.request_processor,
            identity.request_processor,
            contents.request_processor,
            shared_memory.request_processor,
            # 在 contents 之后，需要移除历史中的思考标记
            nl_planning.request_processor,
            # 在 contents 之后，需要改写历史中的代码执行 part
            code_execution.request_processor,
        ]
        self.response_processors += [
            nl_planning.response_processor,
            output_schema.response_processor,
            code_execution.response_processor,
        ]
        logger.debug("[SingleFlow] Created")

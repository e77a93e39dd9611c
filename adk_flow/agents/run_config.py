"""RunConfig - 单次运行的配置"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ..types import GenerateContentConfig

logger = logging.getLogger(__name__)


class StreamingMode(Enum):
    NONE = None
    SSE = 'sse'
    BIDI = 'bidi'


class RunConfig(BaseModel):
    """
    运行配置

    - streaming_mode: SSE 时 LLM 以流式方式调用，产生 partial 事件
    - max_llm_calls: 单次调用允许的 LLM 调用次数上限，<= 0 表示不限制
    - save_input_blobs_as_artifacts: 把用户消息中的二进制数据保存为 artifact
    - default_model: Agent 树中没有任何 LlmAgent 设置模型时使用的模型名称
    - generate_content_config: Agent 未设置 generate_content_config 时使用的生成参数
    """

    model_config = ConfigDict(extra='forbid')

    streaming_mode: StreamingMode = StreamingMode.NONE
    max_llm_calls: int = 500
    save_input_blobs_as_artifacts: bool = False
    support_cfc: bool = False
    default_model: Optional[str] = None
    generate_content_config: Optional[GenerateContentConfig] = None

    @field_validator('max_llm_calls', mode='after')
    @classmethod
    def validate_max_llm_calls(cls, value: int) -> int:
        if value == sys.maxsize:
            raise ValueError(f"max_llm_calls should be less than {sys.maxsize}.")
        if value <= 0:
            logger.warning(
                "max_llm_calls is less than or equal to 0. This will result in "
                "no enforcement on total number of llm calls that will be made for a run."
            )
        return value

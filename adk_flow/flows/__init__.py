"""flows 模块 - LLM 调用循环和请求/响应处理器"""

from .auto_flow import AutoFlow
from .base_llm_flow import BaseLlmFlow
from .base_llm_processor import BaseLlmRequestProcessor, BaseLlmResponseProcessor
from .single_flow import SingleFlow

__all__ = [
    'AutoFlow',
    'BaseLlmFlow',
    'BaseLlmRequestProcessor',
    'BaseLlmResponseProcessor',
    'SingleFlow',
]

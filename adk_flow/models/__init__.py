"""models 模块 - LLM 抽象层"""

from .base_llm import BaseLlm
from .llm_request import LlmRequest
from .llm_response import LlmResponse
from .openai_llm import OpenAILlm
from .registry import LlmRegistry

__all__ = [
    'BaseLlm',
    'LlmRequest',
    'LlmResponse',
    'LlmRegistry',
    'OpenAILlm',
]

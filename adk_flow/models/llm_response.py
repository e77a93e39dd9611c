"""LLM 响应的标准化格式"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from ..types import Content


class LlmResponse(BaseModel):
    """
    标准化的 LLM 响应格式

    不同 LLM 实现都把各自的返回值转换为这个格式，
    Flow 层因此可以用一致的方式处理响应。

    Attributes:
        content: 响应内容（role + parts）
        partial: 是否是流式响应的部分内容
        turn_complete: 本轮生成是否结束
        finish_reason: 完成原因 (stop, tool_calls, length, ...)
        error_code / error_message: 错误信息（如果有）
        interrupted: 生成是否被中断
        usage_metadata: token 使用统计
        custom_metadata: 自定义元数据
    """

    model_config = ConfigDict(extra='forbid', arbitrary_types_allowed=True)

    content: Optional[Content] = None
    partial: Optional[bool] = None
    turn_complete: Optional[bool] = None
    finish_reason: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    interrupted: Optional[bool] = None
    usage_metadata: Optional[dict[str, int]] = None
    custom_metadata: Optional[dict[str, Any]] = None
    grounding_metadata: Optional[dict[str, Any]] = None

    def is_error(self) -> bool:
        """是否是错误响应"""
        return self.error_code is not None

    @classmethod
    def from_error(cls, error_code: str, error_message: str) -> LlmResponse:
        """从错误创建响应"""
        return cls(error_code=error_code, error_message=error_message)

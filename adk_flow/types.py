"""内容类型 - 与具体 LLM 厂商无关的消息结构

所有 LLM 请求/响应、事件内容都使用这里的类型：
- Content: 一条消息（role + 有序 parts）
- Part: 消息片段（文本 / 函数调用 / 函数响应 / 二进制数据 / 代码 / 代码执行结果）
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class FunctionCall(BaseModel):
    """模型发起的一次函数调用"""

    id: Optional[str] = None
    name: str = ''
    args: dict[str, Any] = Field(default_factory=dict)


class FunctionResponse(BaseModel):
    """函数调用的执行结果"""

    id: Optional[str] = None
    name: str = ''
    response: dict[str, Any] = Field(default_factory=dict)


class Blob(BaseModel):
    """内联二进制数据"""

    mime_type: str = 'application/octet-stream'
    data: bytes = b''
    display_name: Optional[str] = None


class FileData(BaseModel):
    """指向外部存储的文件引用"""

    file_uri: str
    mime_type: Optional[str] = None


class ExecutableCode(BaseModel):
    """模型生成的待执行代码"""

    code: str
    language: str = 'PYTHON'


class CodeExecutionResult(BaseModel):
    """代码执行结果"""

    outcome: str = 'OUTCOME_OK'
    output: Optional[str] = None


class Part(BaseModel):
    """消息片段，同一时刻只应设置一个数据字段"""

    text: Optional[str] = None
    thought: Optional[bool] = None
    function_call: Optional[FunctionCall] = None
    function_response: Optional[FunctionResponse] = None
    inline_data: Optional[Blob] = None
    file_data: Optional[FileData] = None
    executable_code: Optional[ExecutableCode] = None
    code_execution_result: Optional[CodeExecutionResult] = None

    @classmethod
    def from_text(cls, text: str) -> Part:
        return cls(text=text)

    @classmethod
    def from_function_call(cls, name: str, args: dict[str, Any], id: Optional[str] = None) -> Part:
        return cls(function_call=FunctionCall(id=id, name=name, args=args))

    @classmethod
    def from_function_response(
        cls,
        name: str,
        response: dict[str, Any],
        id: Optional[str] = None,
    ) -> Part:
        return cls(function_response=FunctionResponse(id=id, name=name, response=response))


class Content(BaseModel):
    """一条消息"""

    role: Optional[str] = None
    parts: list[Part] = Field(default_factory=list)

    @classmethod
    def from_text(cls, text: str, role: str = 'user') -> Content:
        return cls(role=role, parts=[Part(text=text)])

    @property
    def text(self) -> str:
        """拼接所有非思考文本"""
        return ''.join(p.text for p in self.parts if p.text and not p.thought)


class FunctionDeclaration(BaseModel):
    """工具声明（JSON Schema 描述参数）"""

    name: str
    description: str = ''
    parameters: Optional[dict[str, Any]] = None


class Tool(BaseModel):
    """请求中携带的一组函数声明，或一个模型内置能力"""

    function_declarations: list[FunctionDeclaration] = Field(default_factory=list)
    code_execution: Optional[dict[str, Any]] = None
    """模型内置的代码执行能力"""


class ThinkingConfig(BaseModel):
    """模型思考配置"""

    include_thoughts: Optional[bool] = None
    thinking_budget: Optional[int] = None


class GenerateContentConfig(BaseModel):
    """生成配置"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    top_p: Optional[float] = None
    system_instruction: Optional[str] = None
    tools: Optional[list[Tool]] = None
    response_schema: Optional[Any] = None
    response_mime_type: Optional[str] = None
    labels: Optional[dict[str, str]] = None
    thinking_config: Optional[ThinkingConfig] = None

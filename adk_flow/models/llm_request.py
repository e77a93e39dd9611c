"""LLM 请求的标准化格式"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..types import Content, FunctionDeclaration, GenerateContentConfig, Tool

if TYPE_CHECKING:
    from ..tools.base_tool import BaseTool


class LlmRequest(BaseModel):
    """
    标准化的 LLM 请求格式

    由请求处理器链逐步填充，不同 LLM 实现再将其转换为各自的 API 格式。

    Attributes:
        model: 模型名称
        contents: 对话历史
        config: 生成配置（system instruction、工具声明、输出 schema、labels 等）
        tools_dict: 工具名 -> 工具实例，用于解析函数调用（不发送给模型）
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    model: Optional[str] = None
    contents: list[Content] = Field(default_factory=list)
    config: GenerateContentConfig = Field(default_factory=GenerateContentConfig)
    tools_dict: dict[str, Any] = Field(default_factory=dict, exclude=True)

    def append_instructions(self, instructions: list[str]) -> None:
        """追加系统指令"""
        if not instructions:
            return
        text = '\n\n'.join(instructions)
        if self.config.system_instruction:
            self.config.system_instruction += '\n\n' + text
        else:
            self.config.system_instruction = text

    def append_tools(self, tools: list['BaseTool']) -> None:
        """注册工具并追加其函数声明（同名只保留第一个）"""
        declarations = []
        for tool in tools:
            declaration = tool.get_declaration()
            if declaration is None or tool.name in self.tools_dict:
                continue
            declarations.append(declaration)
            self.tools_dict[tool.name] = tool
        if not declarations:
            return
        if self.config.tools is None:
            self.config.tools = []
        self.config.tools.append(Tool(function_declarations=declarations))

    def dedupe_function_declarations(self) -> None:
        """按名称去重所有函数声明，保留首次出现的声明"""
        if not self.config.tools:
            return
        seen: set[str] = set()
        deduped: list[Tool] = []
        for tool in self.config.tools:
            declarations: list[FunctionDeclaration] = []
            for declaration in tool.function_declarations:
                if declaration.name in seen:
                    continue
                seen.add(declaration.name)
                declarations.append(declaration)
            if declarations or tool.code_execution is not None:
                deduped.append(Tool(
                    function_declarations=declarations,
                    code_execution=tool.code_execution,
                ))
        self.config.tools = deduped

    def get_function_declarations(self) -> list[FunctionDeclaration]:
        return [
            declaration
            for tool in self.config.tools or []
            for declaration in tool.function_declarations
        ]

    def set_output_schema(self, schema: type[BaseModel]) -> None:
        """要求模型输出符合 schema 的 JSON"""
        self.config.response_schema = schema
        self.config.response_mime_type = 'application/json'

    def get_system_instruction_text(self) -> Optional[str]:
        return self.config.system_instruction

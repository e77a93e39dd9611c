"""代码执行相关的数据结构和 Content 处理函数"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Optional

from pydantic import BaseModel, Field

from ..types import CodeExecutionResult as CodeExecutionResultPart
from ..types import Content, ExecutableCode, Part


class File(BaseModel):
    """代码执行的输入/输出文件（content 为 base64 编码）"""

    name: str
    content: str
    mime_type: str = 'text/plain'


class CodeExecutionInput(BaseModel):
    code: str
    input_files: list[File] = Field(default_factory=list)
    execution_id: Optional[str] = None


class CodeExecutionResult(BaseModel):
    stdout: str = ''
    stderr: str = ''
    output_files: list[File] = Field(default_factory=list)


def get_encoded_file_content(data: bytes) -> str:
    """已经是 base64 的内容原样返回，否则编码"""
    try:
        if base64.b64encode(base64.b64decode(data, validate=True)) == data:
            return data.decode('ascii')
    except (binascii.Error, ValueError):
        pass
    return base64.b64encode(data).decode('ascii')


def build_executable_code_part(code: str) -> Part:
    return Part(executable_code=ExecutableCode(code=code, language='PYTHON'))


def build_code_execution_result_part(result: CodeExecutionResult) -> Part:
    """stderr 非空视为失败，否则拼接 stdout 和保存的输出文件名"""
    if result.stderr:
        return Part(code_execution_result=CodeExecutionResultPart(
            outcome='OUTCOME_FAILED',
            output=result.stderr,
        ))

    final_result = []
    if result.stdout or not result.output_files:
        final_result.append(f"Code execution result:\n{result.stdout}\n")
    if result.output_files:
        final_result.append(
            "Saved artifacts:\n" + ','.join(f"`{f.name}`" for f in result.output_files)
        )
    return Part(code_execution_result=CodeExecutionResultPart(
        outcome='OUTCOME_OK',
        output='\n\n'.join(final_result),
    ))


def extract_code_and_truncate_content(
    content: Content,
    code_block_delimiters: list[tuple[str, str]],
) -> Optional[str]:
    """
    从模型响应中提取第一段代码，并截断 content

    - 已有 executable_code part：保留到该 part 为止
    - 否则在文本中按分隔符查找代码块，content 变为 [前缀文本, 代码 part]
    """
    if not content or not content.parts:
        return None

    for idx, part in enumerate(content.parts):
        if part.executable_code:
            content.parts = content.parts[:idx + 1]
            return part.executable_code.code

    text_parts = [p for p in content.parts if p.text and not p.thought]
    if not text_parts:
        return None

    first_text_part = text_parts[0].model_copy(deep=True)
    response_text = '\n'.join(p.text for p in text_parts)

    leading = '|'.join(re.escape(d[0]) for d in code_block_delimiters)
    trailing = '|'.join(re.escape(d[1]) for d in code_block_delimiters)
    pattern = re.compile(
        rf'(?P<prefix>.*?)({leading})(?P<code>.*?)({trailing})(?P<suffix>.*?)$',
        re.DOTALL,
    )
    match = pattern.search(response_text)
    if match is None:
        return None
    code = match.group('code')
    if not code:
        return None

    content.parts = []
    if match.group('prefix'):
        first_text_part.text = match.group('prefix')
        content.parts.append(first_text_part)
    content.parts.append(build_executable_code_part(code))
    return code


def convert_code_execution_parts(
    content: Content,
    code_block_delimiter: tuple[str, str],
    execution_result_delimiters: tuple[str, str],
) -> None:
    """把代码/执行结果 part 转换为带分隔符的文本，供不支持这类 part 的模型使用"""
    if not content.parts:
        return

    last = content.parts[-1]
    if last.executable_code:
        content.parts[-1] = Part(
            text=code_block_delimiter[0] + last.executable_code.code + code_block_delimiter[1]
        )
    elif len(content.parts) == 1 and last.code_execution_result:
        content.parts[-1] = Part(
            text=execution_result_delimiters[0]
            + (last.code_execution_result.output or '')
            + execution_result_delimiters[1]
        )
        content.role = 'user'

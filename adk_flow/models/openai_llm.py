"""OpenAI 兼容的 LLM 实现"""

from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any, AsyncGenerator, Optional

from pydantic import PrivateAttr

from ..types import Content, FunctionCall, Part
from .base_llm import BaseLlm
from .llm_request import LlmRequest
from .llm_response import LlmResponse

logger = logging.getLogger(__name__)

_THINK_OPEN = '<think>'
_THINK_CLOSE = '</think>'


class ThinkingFilter:
    """
    流式思考内容过滤器 - 实时拆分 <think> 标签内外的文本

    标签可能被切分在两个 chunk 之间，因此缓冲区末尾保留可能是标签前缀的字符。
    """

    def __init__(self):
        self.buffer = ''
        self.in_thinking = False
        self.thinking_content = ''
        self.clean_content = ''

    def process_delta(self, delta: str) -> tuple[str, str]:
        """处理流式片段，返回 (正文增量, 思考增量)"""
        self.buffer += delta
        text_out = ''
        thought_out = ''

        while self.buffer:
            tag = _THINK_CLOSE if self.in_thinking else _THINK_OPEN
            idx = self.buffer.find(tag)
            if idx == -1:
                # 保留可能是标签前缀的尾部
                keep = len(tag) - 1
                if len(self.buffer) <= keep:
                    break
                emit, self.buffer = self.buffer[:-keep], self.buffer[-keep:]
            else:
                emit, self.buffer = self.buffer[:idx], self.buffer[idx + len(tag):]

            if self.in_thinking:
                thought_out += emit
            else:
                text_out += emit

            if idx == -1:
                break
            self.in_thinking = not self.in_thinking

        self.clean_content += text_out
        self.thinking_content += thought_out
        return text_out, thought_out

    def finalize(self) -> tuple[str, str]:
        """冲刷缓冲区，返回 (完整正文, 完整思考)"""
        if self.buffer:
            if self.in_thinking:
                self.thinking_content += self.buffer
            else:
                self.clean_content += self.buffer
            self.buffer = ''
        return self.clean_content.strip(), self.thinking_content.strip()


class OpenAILlm(BaseLlm):
    """
    OpenAI Chat Completions 兼容的 LLM 实现

    - 把 LlmRequest（Content/Part）转换为 OpenAI messages 格式
    - 把返回值转换回 LlmResponse
    - 流式：先 yield 多个 partial 响应，思考文本和正文分别作为独立 part，
      最后 yield 一个聚合后的完整响应
    """

    api_base: Optional[str] = None
    api_key: Optional[str] = None
    timeout: Optional[float] = None

    _client: Any = PrivateAttr(default=None)

    @property
    def client(self) -> Any:
        """获取 OpenAI 异步客户端（懒加载）"""
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(
                base_url=self.api_base,
                api_key=self.api_key,
                timeout=self.timeout,
            )
        return self._client

    @classmethod
    def supported_models(cls) -> list[str]:
        return [r"gpt-.*", r"o1-.*", r"o3-.*", r"chatgpt-.*"]

    # ==================== 统一生成接口 ====================

    async def generate_content_async(
        self,
        llm_request: LlmRequest,
        stream: bool = False,
    ) -> AsyncGenerator[LlmResponse, None]:
        params = self._build_params(llm_request, stream)
        logger.debug(
            f"[OpenAILlm] Request model={params['model']} messages={len(params['messages'])} "
            f"tools={len(params.get('tools', []))} stream={stream}"
        )
        try:
            if stream:
                response_stream = await self.client.chat.completions.create(**params)
                async for response in self._process_stream(response_stream):
                    yield response
            else:
                response = await self.client.chat.completions.create(**params)
                yield self._parse_response(response)
        except Exception as e:
            logger.error(f"[OpenAILlm] Request failed: {e}")
            yield LlmResponse.from_error(type(e).__name__, str(e))

    # ==================== 请求转换 ====================

    def _build_params(self, llm_request: LlmRequest, stream: bool) -> dict[str, Any]:
        config = llm_request.config
        messages: list[dict[str, Any]] = []
        if config.system_instruction:
            messages.append({'role': 'system', 'content': config.system_instruction})
        for content in llm_request.contents:
            messages.extend(self._content_to_messages(content))

        params: dict[str, Any] = {
            'model': self.get_model(llm_request),
            'messages': messages,
            'stream': stream,
        }
        if config.temperature is not None:
            params['temperature'] = config.temperature
        if config.max_output_tokens is not None:
            params['max_tokens'] = config.max_output_tokens
        if config.top_p is not None:
            params['top_p'] = config.top_p

        declarations = llm_request.get_function_declarations()
        if declarations:
            params['tools'] = [
                {
                    'type': 'function',
                    'function': {
                        'name': d.name,
                        'description': d.description,
                        'parameters': d.parameters or {'type': 'object', 'properties': {}},
                    },
                }
                for d in declarations
            ]
            params['tool_choice'] = 'auto'
        elif config.response_mime_type == 'application/json':
            params['response_format'] = {'type': 'json_object'}
        return params

    def _content_to_messages(self, content: Content) -> list[dict[str, Any]]:
        """一条 Content 可能对应多条 OpenAI 消息（工具响应各自独立）"""
        role = 'assistant' if content.role == 'model' else 'user'
        messages: list[dict[str, Any]] = []
        texts: list[str] = []
        tool_calls: list[dict[str, Any]] = []
        # 没有 id 时按函数调用/响应各自的序号生成，同一轮的调用与响应顺序一致
        response_count = 0

        for part in content.parts:
            if part.thought:
                continue
            if part.text:
                texts.append(part.text)
            elif part.function_call:
                tool_calls.append({
                    'id': part.function_call.id or f"call_{len(tool_calls)}_{part.function_call.name}",
                    'type': 'function',
                    'function': {
                        'name': part.function_call.name,
                        'arguments': json.dumps(part.function_call.args, ensure_ascii=False),
                    },
                })
            elif part.function_response:
                fallback_id = f"call_{response_count}_{part.function_response.name}"
                response_count += 1
                messages.append({
                    'role': 'tool',
                    'tool_call_id': part.function_response.id or fallback_id,
                    'content': json.dumps(part.function_response.response, ensure_ascii=False, default=str),
                })
            elif part.inline_data and part.inline_data.mime_type.startswith('image/'):
                encoded = base64.b64encode(part.inline_data.data).decode('ascii')
                messages.append({
                    'role': 'user',
                    'content': [{
                        'type': 'image_url',
                        'image_url': {'url': f"data:{part.inline_data.mime_type};base64,{encoded}"},
                    }],
                })
            elif part.executable_code:
                texts.append(f"```python\n{part.executable_code.code}\n```")
            elif part.code_execution_result:
                texts.append(f"```tool_output\n{part.code_execution_result.output or ''}\n```")

        if texts or tool_calls:
            message: dict[str, Any] = {'role': role, 'content': '\n'.join(texts) or None}
            if tool_calls:
                message['role'] = 'assistant'
                message['tool_calls'] = tool_calls
            messages.insert(0, message)
        return messages

    # ==================== 响应解析 ====================

    def _parse_response(self, response: Any) -> LlmResponse:
        """解析非流式响应"""
        choice = response.choices[0]
        message = choice.message
        clean_content, thinking = self._extract_thinking(message.content or '')

        function_calls = []
        for tc in message.tool_calls or []:
            function_calls.append(FunctionCall(
                id=tc.id,
                name=tc.function.name,
                args=self._parse_arguments(tc.function.arguments),
            ))

        usage = None
        if response.usage:
            usage = {
                'prompt_tokens': response.usage.prompt_tokens,
                'completion_tokens': response.usage.completion_tokens,
                'total_tokens': response.usage.total_tokens,
            }
        return LlmResponse(
            content=self._build_content(clean_content, thinking, function_calls),
            finish_reason=choice.finish_reason,
            usage_metadata=usage,
            turn_complete=True,
        )

    async def _process_stream(self, stream: Any) -> AsyncGenerator[LlmResponse, None]:
        """处理流式响应"""
        tool_calls_data: list[dict[str, Any]] = []
        finish_reason = None
        thinking_filter = ThinkingFilter()

        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta

            if delta.content:
                text_delta, thought_delta = thinking_filter.process_delta(delta.content)
                parts = []
                if thought_delta:
                    parts.append(Part(text=thought_delta, thought=True))
                if text_delta:
                    parts.append(Part(text=text_delta))
                if parts:
                    yield LlmResponse(content=Content(role='model', parts=parts), partial=True)

            for tc in delta.tool_calls or []:
                while len(tool_calls_data) <= tc.index:
                    tool_calls_data.append({'id': None, 'name': None, 'arguments': ''})
                existing = tool_calls_data[tc.index]
                if tc.id:
                    existing['id'] = tc.id
                if tc.function and tc.function.name:
                    existing['name'] = tc.function.name
                if tc.function and tc.function.arguments:
                    existing['arguments'] += tc.function.arguments

            if choice.finish_reason:
                finish_reason = choice.finish_reason

        clean_content, thinking = thinking_filter.finalize()
        function_calls = [
            FunctionCall(id=tc['id'], name=tc['name'], args=self._parse_arguments(tc['arguments']))
            for tc in tool_calls_data
            if tc['name']
        ]
        yield LlmResponse(
            content=self._build_content(clean_content, thinking, function_calls),
            finish_reason=finish_reason,
            partial=False,
            turn_complete=True,
        )

    # ==================== 辅助方法 ====================

    @staticmethod
    def _build_content(text: str, thinking: str, function_calls: list[FunctionCall]) -> Optional[Content]:
        parts = []
        if thinking:
            parts.append(Part(text=thinking, thought=True))
        if text:
            parts.append(Part(text=text))
        parts.extend(Part(function_call=fc) for fc in function_calls)
        if not parts:
            return None
        return Content(role='model', parts=parts)

    @staticmethod
    def _parse_arguments(arguments: Optional[str]) -> dict[str, Any]:
        try:
            args = json.loads(arguments or '{}')
        except json.JSONDecodeError:
            logger.warning(f"[OpenAILlm] Unparsable tool arguments: {arguments!r}")
            return {}
        return args if isinstance(args, dict) else {}

    @staticmethod
    def _extract_thinking(raw_content: str) -> tuple[str, str]:
        """提取并分离思考内容，返回 (正文, 思考)"""
        if not raw_content:
            return '', ''
        think_pattern = r'<think>(.*?)</think>'
        thinking_parts = re.findall(think_pattern, raw_content, re.DOTALL)
        clean_content = re.sub(think_pattern, '', raw_content, flags=re.DOTALL).strip()
        return clean_content, '\n'.join(p.strip() for p in thinking_parts)

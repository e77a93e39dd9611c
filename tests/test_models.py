"""模型层（注册表、OpenAI 兼容实现）的测试"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from adk_flow.errors import ConfigurationError
from adk_flow.models import LlmRegistry, LlmRequest, LlmResponse, OpenAILlm
from adk_flow.models.openai_llm import ThinkingFilter
from adk_flow.types import Blob, Content, FunctionDeclaration, GenerateContentConfig, Part, Tool

from .fakes import FakeLlm


def _mock_client(llm: OpenAILlm, **create_kwargs) -> AsyncMock:
    create = AsyncMock(**create_kwargs)
    client = MagicMock()
    client.chat.completions.create = create
    llm._client = client
    return create


async def _chunks(*chunks):
    for chunk in chunks:
        yield chunk


def _chunk(content=None, tool_calls=None, finish_reason=None):
    return SimpleNamespace(choices=[SimpleNamespace(
        delta=SimpleNamespace(content=content, tool_calls=tool_calls),
        finish_reason=finish_reason,
    )])


def _tool_call_delta(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


# =============================================================================
# REGISTRY
# =============================================================================

class TestLlmRegistry:
    """类注册与实例注册"""

    def test_new_llm_from_regex(self):
        registry = LlmRegistry()
        registry.register('fake-.*', FakeLlm)

        llm = registry.new_llm('fake-large')

        assert isinstance(llm, FakeLlm)
        assert llm.model == 'fake-large'
        assert registry.resolve('fake-large') is FakeLlm

    def test_full_match_required(self):
        registry = LlmRegistry()
        registry.register('fake-.*', FakeLlm)
        assert registry.resolve('my-fake-model') is None
        with pytest.raises(ConfigurationError, match='No LLM class found for model: my-fake-model'):
            registry.new_llm('my-fake-model')

    def test_first_registration_wins(self):
        registry = LlmRegistry()
        registry.register('gpt-.*', FakeLlm)
        registry.register('.*', OpenAILlm)
        assert registry.resolve('gpt-4o') is FakeLlm
        assert registry.resolve('anything') is OpenAILlm

    def test_register_llm_uses_supported_models(self):
        registry = LlmRegistry()
        registry.register_llm(OpenAILlm, api_key='sk-test', timeout=5.0)

        llm = registry.new_llm('gpt-4o-mini')

        assert isinstance(llm, OpenAILlm)
        assert llm.api_key == 'sk-test'
        assert llm.timeout == 5.0
        assert registry.resolve('o1-preview') is OpenAILlm
        assert registry.resolve('claude-3') is None

    def test_instances(self):
        registry = LlmRegistry()
        shared = FakeLlm(model='shared')
        registry.register_instance('default', shared)

        assert registry.has_instance('default')
        assert registry.get_instance('default') is shared
        assert registry.get_model_or_create('default') is shared

        registry.unregister_instance('default')
        assert not registry.has_instance('default')
        with pytest.raises(ConfigurationError, match="Model 'default' not found"):
            registry.get_instance('default')

    def test_get_model_or_create_falls_back_to_regex(self):
        registry = LlmRegistry()
        registry.register('fake-.*', FakeLlm)
        assert registry.get_model_or_create('fake-1').model == 'fake-1'

    def test_clear(self):
        registry = LlmRegistry()
        registry.register('fake-.*', FakeLlm)
        registry.register_instance('x', FakeLlm())
        registry.clear()
        assert registry.resolve('fake-1') is None
        assert not registry.has_instance('x')


# =============================================================================
# THINKING FILTER
# =============================================================================

class TestThinkingFilter:
    """流式 <think> 标签拆分"""

    def test_plain_text_held_until_safe(self):
        thinking_filter = ThinkingFilter()
        assert thinking_filter.process_delta('Hello world!') == ('Hello ', '')
        assert thinking_filter.finalize() == ('Hello world!', '')

    def test_tag_split_across_chunks(self):
        thinking_filter = ThinkingFilter()
        assert thinking_filter.process_delta('<thi') == ('', '')
        assert thinking_filter.process_delta('nk>plan</think>answer') == ('', 'plan')
        assert thinking_filter.finalize() == ('answer', 'plan')

    def test_unclosed_thinking(self):
        thinking_filter = ThinkingFilter()
        thinking_filter.process_delta('<think>still thinking')
        assert thinking_filter.finalize() == ('', 'still thinking')


# =============================================================================
# OPENAI LLM
# =============================================================================

class TestOpenAILlmRequest:
    """LlmRequest -> Chat Completions 参数"""

    def test_build_params(self):
        llm = OpenAILlm(model='gpt-4o')
        request = LlmRequest(
            contents=[
                Content(role='user', parts=[Part(text='add 1 and 1')]),
                Content(role='model', parts=[
                    Part(text='thinking...', thought=True),
                    Part.from_function_call('add', {'a': 1, 'b': 1}, id='call_1'),
                ]),
                Content(role='user', parts=[Part.from_function_response('add', {'result': 2}, id='call_1')]),
            ],
            config=GenerateContentConfig(
                system_instruction='Be exact.',
                temperature=0.2,
                max_output_tokens=100,
                tools=[Tool(function_declarations=[FunctionDeclaration(name='add', description='Adds.')])],
            ),
        )

        params = llm._build_params(request, stream=False)

        assert params['model'] == 'gpt-4o'
        assert params['stream'] is False
        assert params['temperature'] == 0.2
        assert params['max_tokens'] == 100
        assert params['tool_choice'] == 'auto'
        assert params['tools'] == [{
            'type': 'function',
            'function': {
                'name': 'add',
                'description': 'Adds.',
                'parameters': {'type': 'object', 'properties': {}},
            },
        }]
        assert params['messages'] == [
            {'role': 'system', 'content': 'Be exact.'},
            {'role': 'user', 'content': 'add 1 and 1'},
            {
                'role': 'assistant',
                'content': None,
                'tool_calls': [{
                    'id': 'call_1',
                    'type': 'function',
                    'function': {'name': 'add', 'arguments': '{"a": 1, "b": 1}'},
                }],
            },
            {'role': 'tool', 'tool_call_id': 'call_1', 'content': '{"result": 2}'},
        ]

    def test_request_model_overrides(self):
        llm = OpenAILlm(model='gpt-4o')
        params = llm._build_params(LlmRequest(model='gpt-4o-mini'), stream=True)
        assert params['model'] == 'gpt-4o-mini'
        assert params['messages'] == []

    def test_json_response_format(self):
        request = LlmRequest(config=GenerateContentConfig(response_mime_type='application/json'))
        params = OpenAILlm(model='gpt-4o')._build_params(request, stream=False)
        assert params['response_format'] == {'type': 'json_object'}

    def test_image_part(self):
        content = Content(role='user', parts=[Part(inline_data=Blob(mime_type='image/png', data=b'\x89PNG'))])
        messages = OpenAILlm(model='gpt-4o')._content_to_messages(content)
        assert messages == [{
            'role': 'user',
            'content': [{'type': 'image_url', 'image_url': {'url': 'data:image/png;base64,iVBORw=='}}],
        }]

    def test_missing_ids_distinct_per_call(self):
        llm = OpenAILlm(model='gpt-4o')
        calls = Content(role='model', parts=[
            Part.from_function_call('weather', {'city': 'Oslo'}),
            Part.from_function_call('weather', {'city': 'Rome'}),
        ])
        responses = Content(role='user', parts=[
            Part.from_function_response('weather', {'temp': 3}),
            Part.from_function_response('weather', {'temp': 21}),
        ])

        call_ids = [c['id'] for c in llm._content_to_messages(calls)[0]['tool_calls']]
        response_ids = [m['tool_call_id'] for m in llm._content_to_messages(responses)]

        assert len(set(call_ids)) == 2
        assert response_ids == call_ids


class TestOpenAILlmResponse:
    """Chat Completions 返回值 -> LlmResponse"""

    @pytest.mark.asyncio
    async def test_non_streaming(self):
        llm = OpenAILlm(model='gpt-4o')
        response = SimpleNamespace(
            choices=[SimpleNamespace(
                message=SimpleNamespace(
                    content='<think>the user wants a sum</think>Let me add.',
                    tool_calls=[SimpleNamespace(
                        id='call_1',
                        function=SimpleNamespace(name='add', arguments='{"a": 1, "b": 1}'),
                    )],
                ),
                finish_reason='tool_calls',
            )],
            usage=SimpleNamespace(prompt_tokens=3, completion_tokens=4, total_tokens=7),
        )
        create = _mock_client(llm, return_value=response)

        responses = [r async for r in llm.generate_content_async(LlmRequest(), stream=False)]

        assert len(responses) == 1
        result = responses[0]
        parts = result.content.parts
        assert (parts[0].text, parts[0].thought) == ('the user wants a sum', True)
        assert parts[1].text == 'Let me add.'
        assert parts[2].function_call.model_dump() == {'id': 'call_1', 'name': 'add', 'args': {'a': 1, 'b': 1}}
        assert result.finish_reason == 'tool_calls'
        assert result.usage_metadata == {'prompt_tokens': 3, 'completion_tokens': 4, 'total_tokens': 7}
        assert result.turn_complete is True
        assert create.await_args.kwargs['stream'] is False

    @pytest.mark.asyncio
    async def test_streaming(self):
        llm = OpenAILlm(model='gpt-4o')
        _mock_client(llm, return_value=_chunks(
            SimpleNamespace(choices=[]),
            _chunk(content='<think>pl'),
            _chunk(content='an</think>Hello there'),
            _chunk(tool_calls=[_tool_call_delta(0, id='call_9', name='add', arguments='{"a":')]),
            _chunk(tool_calls=[_tool_call_delta(0, arguments=' 1}')], finish_reason='tool_calls'),
        ))

        responses = [r async for r in llm.generate_content_async(LlmRequest(), stream=True)]

        assert len(responses) == 2
        partial = responses[0]
        assert partial.partial is True
        assert [(p.text, p.thought) for p in partial.content.parts] == [('plan', True), ('Hello', None)]

        final = responses[1]
        assert final.partial is False
        assert final.finish_reason == 'tool_calls'
        assert [(p.text, p.thought) for p in final.content.parts[:2]] == [('plan', True), ('Hello there', None)]
        function_call = final.content.parts[2].function_call
        assert (function_call.id, function_call.name, function_call.args) == ('call_9', 'add', {'a': 1})

    @pytest.mark.asyncio
    async def test_error_becomes_response(self):
        llm = OpenAILlm(model='gpt-4o')
        _mock_client(llm, side_effect=RuntimeError('connection refused'))

        responses = [r async for r in llm.generate_content_async(LlmRequest())]

        assert len(responses) == 1
        assert responses[0].is_error()
        assert responses[0].error_code == 'RuntimeError'
        assert responses[0].error_message == 'connection refused'

    def test_unparsable_arguments(self):
        assert OpenAILlm._parse_arguments('{not json') == {}
        assert OpenAILlm._parse_arguments('[1, 2]') == {}
        assert OpenAILlm._parse_arguments(None) == {}

    def test_empty_content(self):
        assert OpenAILlm._build_content('', '', []) is None

    def test_error_response_helper(self):
        response = LlmResponse.from_error('RATE_LIMIT', 'slow down')
        assert response.is_error()
        assert response.content is None

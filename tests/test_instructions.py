"""指令模板与指令处理器的测试"""

import pytest
from pydantic import BaseModel

from adk_flow.agents import LlmAgent, ReadonlyContext
from adk_flow.artifacts import InMemoryArtifactService
from adk_flow.errors import ContextVariableNotFoundError
from adk_flow.flows.processors import identity, instructions
from adk_flow.models.llm_request import LlmRequest
from adk_flow.types import Part
from adk_flow.utils.instructions_utils import inject_session_state

from .fakes import APP_NAME, USER_ID, FakeLlm, new_invocation_context


def _readonly(state=None, **kwargs):
    agent = LlmAgent(name='agent', model=FakeLlm())
    return ReadonlyContext(new_invocation_context(agent, state=state, **kwargs))


async def _run_processor(processor, ctx) -> LlmRequest:
    request = LlmRequest()
    async for _ in processor.run_async(ctx, request):
        pass
    return request


# =============================================================================
# TEMPLATE INJECTION
# =============================================================================

class TestInjectSessionState:
    """{var} 模板替换"""

    @pytest.mark.asyncio
    async def test_simple_variable(self):
        result = await inject_session_state('Hello {name}!', _readonly({'name': 'Ada'}))
        assert result == 'Hello Ada!'

    @pytest.mark.asyncio
    async def test_missing_variable_raises(self):
        with pytest.raises(ContextVariableNotFoundError):
            await inject_session_state('Hello {name}!', _readonly())

    @pytest.mark.asyncio
    async def test_optional_variable(self):
        result = await inject_session_state('Hello {name?}!', _readonly())
        assert result == 'Hello !'

    @pytest.mark.asyncio
    async def test_scoped_variables(self):
        state = {'app:theme': 'dark', 'user:lang': 'zh'}
        result = await inject_session_state('{app:theme}/{user:lang}', _readonly(state))
        assert result == 'dark/zh'

    @pytest.mark.asyncio
    async def test_nested_path(self):
        state = {'profile': {'names': ['Ada', 'Grace'], 'city': {'name': 'London'}}}
        result = await inject_session_state(
            '{profile.names[1]} in {profile.city.name}', _readonly(state)
        )
        assert result == 'Grace in London'

    @pytest.mark.asyncio
    async def test_missing_nested_path_optional(self):
        result = await inject_session_state('[{profile.age?}]', _readonly({'profile': {}}))
        assert result == '[]'

    @pytest.mark.asyncio
    async def test_dict_values_rendered_as_json(self):
        result = await inject_session_state('{data}', _readonly({'data': {'a': 1}}))
        assert result == '{\n  "a": 1\n}'

    @pytest.mark.asyncio
    async def test_non_identifier_placeholder_kept(self):
        """JSON 示例中的花括号原样保留"""
        template = 'Reply like {"answer": 1} or { not a var }'
        assert await inject_session_state(template, _readonly()) == template

    @pytest.mark.asyncio
    async def test_unknown_prefix_kept(self):
        assert await inject_session_state('{other:key}', _readonly()) == '{other:key}'

    @pytest.mark.asyncio
    async def test_artifact_text(self):
        artifacts = InMemoryArtifactService()
        await artifacts.save_artifact(
            app_name=APP_NAME,
            user_id=USER_ID,
            session_id='session_1',
            filename='notes.txt',
            artifact=Part(text='remember the milk'),
        )
        ctx = _readonly(artifact_service=artifacts)
        assert await inject_session_state('Notes: {artifact.notes.txt}', ctx) == 'Notes: remember the milk'

    @pytest.mark.asyncio
    async def test_missing_artifact(self):
        ctx = _readonly(artifact_service=InMemoryArtifactService())
        assert await inject_session_state('[{artifact.none.txt?}]', ctx) == '[]'
        with pytest.raises(ContextVariableNotFoundError):
            await inject_session_state('{artifact.none.txt}', ctx)

    @pytest.mark.asyncio
    async def test_artifact_without_service(self):
        with pytest.raises(ValueError, match='Artifact service'):
            await inject_session_state('{artifact.notes.txt}', _readonly())


# =============================================================================
# PROCESSORS
# =============================================================================

class Answer(BaseModel):
    value: int


class TestInstructionsProcessor:
    """全局指令、Agent 指令与输出 schema 说明"""

    @pytest.mark.asyncio
    async def test_global_then_agent_instruction(self):
        child = LlmAgent(name='child', instruction='Child for {user}.')
        root = LlmAgent(
            name='root',
            model=FakeLlm(),
            global_instruction='Be polite.',
            sub_agents=[child],
        )
        ctx = new_invocation_context(child, state={'user': 'Ada'})

        request = await _run_processor(instructions.request_processor, ctx)

        assert request.config.system_instruction == 'Be polite.\n\nChild for Ada.'
        assert child.root_agent is root

    @pytest.mark.asyncio
    async def test_provider_instruction_not_injected(self):
        agent = LlmAgent(
            name='agent',
            model=FakeLlm(),
            instruction=lambda ctx: f'Literal {{braces}} for {ctx.agent_name}',
        )
        request = await _run_processor(instructions.request_processor, new_invocation_context(agent))
        assert request.config.system_instruction == 'Literal {braces} for agent'

    @pytest.mark.asyncio
    async def test_async_provider(self):
        async def provider(ctx):
            return f"State has {len(ctx.state)} keys"

        agent = LlmAgent(name='agent', model=FakeLlm(), instruction=provider)
        ctx = new_invocation_context(agent, state={'a': 1})
        request = await _run_processor(instructions.request_processor, ctx)
        assert request.config.system_instruction == 'State has 1 keys'

    @pytest.mark.asyncio
    async def test_output_schema_note(self):
        agent = LlmAgent(
            name='agent',
            model=FakeLlm(),
            output_schema=Answer,
            disallow_transfer_to_parent=True,
            disallow_transfer_to_peers=True,
        )
        request = await _run_processor(instructions.request_processor, new_invocation_context(agent))
        assert '"value"' in request.config.system_instruction
        assert 'Do NOT wrap the JSON in code fences' in request.config.system_instruction


class TestIdentityProcessor:
    """名称与描述"""

    @pytest.mark.asyncio
    async def test_name_and_description(self):
        agent = LlmAgent(name='helper', model=FakeLlm(), description='answers questions')
        request = await _run_processor(identity.request_processor, new_invocation_context(agent))
        assert request.config.system_instruction == (
            'You are an agent. Your internal name is "helper". '
            'The description about you is "answers questions".'
        )

    @pytest.mark.asyncio
    async def test_name_only(self):
        agent = LlmAgent(name='helper', model=FakeLlm())
        request = await _run_processor(identity.request_processor, new_invocation_context(agent))
        assert request.config.system_instruction == 'You are an agent. Your internal name is "helper".'

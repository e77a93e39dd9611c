"""Agent 配置、树形结构与生命周期回调的测试"""

import pytest
from pydantic import ValidationError

from adk_flow.agents import BaseAgent, InvocationContext, LlmAgent, LoopAgent, SequentialAgent
from adk_flow.errors import AGENT_EXECUTION_ERROR, ConfigurationError
from adk_flow.flows.auto_flow import AutoFlow
from adk_flow.flows.processors.agent_transfer import get_transfer_targets
from adk_flow.flows.single_flow import SingleFlow
from adk_flow.models.registry import LlmRegistry
from adk_flow.types import Content

from .fakes import FakeLlm, RaisingLlm, new_invocation_context, text_response


async def _collect(agent: BaseAgent, ctx: InvocationContext) -> list:
    return [event async for event in agent.run_async(ctx)]


# =============================================================================
# CONSTRUCTION
# =============================================================================

class TestAgentConstruction:
    """名称校验与父子关系"""

    def test_name_must_be_identifier(self):
        with pytest.raises(ValidationError):
            LlmAgent(name='my agent')

    def test_user_is_reserved(self):
        with pytest.raises(ValidationError):
            LlmAgent(name='user')

    def test_parent_set_on_sub_agents(self):
        child = LlmAgent(name='child')
        root = SequentialAgent(name='root', sub_agents=[child])
        assert child.parent_agent is root
        assert child.root_agent is root
        assert root.root_agent is root

    def test_sub_agent_cannot_have_two_parents(self):
        child = LlmAgent(name='child')
        SequentialAgent(name='first', sub_agents=[child])
        with pytest.raises(ValueError, match='already has parent'):
            SequentialAgent(name='second', sub_agents=[child])

    def test_find_agent(self):
        leaf = LlmAgent(name='leaf')
        middle = SequentialAgent(name='middle', sub_agents=[leaf])
        root = SequentialAgent(name='root', sub_agents=[middle])
        assert root.find_agent('root') is root
        assert root.find_agent('leaf') is leaf
        assert root.find_sub_agent('root') is None
        assert root.find_agent('missing') is None

    def test_to_dict(self):
        root = SequentialAgent(name='root', description='pipeline', sub_agents=[LlmAgent(name='a')])
        assert root.to_dict() == {
            'name': 'root',
            'description': 'pipeline',
            'type': 'SequentialAgent',
            'sub_agents': ['a'],
        }


# =============================================================================
# MODEL RESOLUTION
# =============================================================================

class TestCanonicalModel:
    """模型沿祖先链继承"""

    def test_own_model(self):
        assert LlmAgent(name='a', model='gpt-4o').canonical_model == 'gpt-4o'

    def test_inherited_through_non_llm_ancestors(self):
        child = LlmAgent(name='child')
        SequentialAgent(name='pipeline', sub_agents=[child])
        LlmAgent(name='root', model='gpt-4o-mini', sub_agents=[child.parent_agent])
        assert child.canonical_model == 'gpt-4o-mini'

    def test_missing_model(self):
        with pytest.raises(ConfigurationError):
            LlmAgent(name='lonely').canonical_model

    def test_get_llm_instance(self):
        llm = FakeLlm()
        assert LlmAgent(name='a', model=llm).get_llm() is llm

    def test_get_llm_from_registry(self):
        registry = LlmRegistry()
        registry.register('fake-.*', FakeLlm)
        llm = LlmAgent(name='a', model='fake-small').get_llm(registry)
        assert isinstance(llm, FakeLlm)
        assert llm.model == 'fake-small'

    def test_get_llm_without_registry(self):
        with pytest.raises(ConfigurationError):
            LlmAgent(name='a', model='gpt-4o').get_llm()

    def test_default_model_fallback(self):
        assert LlmAgent(name='a').resolve_model('gpt-4o-mini') == 'gpt-4o-mini'
        assert LlmAgent(name='a', model='gpt-4o').resolve_model('gpt-4o-mini') == 'gpt-4o'
        with pytest.raises(ConfigurationError):
            LlmAgent(name='a').resolve_model(None)

        registry = LlmRegistry()
        llm = FakeLlm(model='fallback-model')
        registry.register_instance('fallback-model', llm)
        assert LlmAgent(name='a').get_llm(registry, 'fallback-model') is llm


# =============================================================================
# FLOW SELECTION / TRANSFER TARGETS
# =============================================================================

class TestFlowSelection:
    """不可能跳转时使用 SingleFlow"""

    def test_single_flow(self):
        agent = LlmAgent(name='a', disallow_transfer_to_parent=True, disallow_transfer_to_peers=True)
        flow = agent.flow
        assert isinstance(flow, SingleFlow)
        assert not isinstance(flow, AutoFlow)

    def test_auto_flow_by_default(self):
        assert isinstance(LlmAgent(name='a').flow, AutoFlow)

    def test_auto_flow_with_sub_agents(self):
        agent = LlmAgent(
            name='a',
            disallow_transfer_to_parent=True,
            disallow_transfer_to_peers=True,
            sub_agents=[LlmAgent(name='b')],
        )
        assert isinstance(agent.flow, AutoFlow)


class TestTransferTargets:
    """子 Agent、父 Agent 与同级 Agent"""

    def _tree(self, **child_flags):
        billing = LlmAgent(name='billing', **child_flags)
        support = LlmAgent(name='support')
        root = LlmAgent(name='root', sub_agents=[billing, support])
        return root, billing, support

    def test_root_targets_children(self):
        root, billing, support = self._tree()
        assert get_transfer_targets(root) == [billing, support]

    def test_child_targets_parent_and_peers(self):
        root, billing, support = self._tree()
        assert get_transfer_targets(billing) == [root, support]

    def test_disallow_flags(self):
        root, billing, support = self._tree(disallow_transfer_to_parent=True, disallow_transfer_to_peers=True)
        assert get_transfer_targets(billing) == []

    def test_workflow_parent_and_peers(self):
        step = LlmAgent(name='step')
        other = LlmAgent(name='other')
        pipeline = SequentialAgent(name='pipeline', sub_agents=[step, other])
        assert get_transfer_targets(step) == [pipeline, other]

    def test_workflow_parent_respects_flags(self):
        step = LlmAgent(name='step', disallow_transfer_to_parent=True)
        other = LlmAgent(name='other')
        LoopAgent(name='loop', sub_agents=[step, other])
        assert get_transfer_targets(step) == [other]


# =============================================================================
# INVOCATION CONTEXT
# =============================================================================

class TestInvocationContext:
    """上下文派生"""

    def test_child_branch(self):
        parent_agent = SequentialAgent(name='root')
        child_agent = LlmAgent(name='child')
        ctx = new_invocation_context(parent_agent)

        child = ctx.create_child_context(child_agent)
        grandchild = child.create_child_context(LlmAgent(name='leaf'))

        assert child.branch == 'child'
        assert grandchild.branch == 'child.leaf'
        assert child.invocation_id == ctx.invocation_id
        assert child.session is ctx.session
        assert child.cost_manager is ctx.cost_manager

    def test_invocation_id_format(self):
        ctx = new_invocation_context(LlmAgent(name='a'))
        assert ctx.invocation_id.startswith('e-')


# =============================================================================
# LIFECYCLE CALLBACKS
# =============================================================================

class TestAgentCallbacks:
    """before/after agent 回调"""

    @pytest.mark.asyncio
    async def test_before_callback_content_skips_agent(self):
        llm = FakeLlm()
        agent = LlmAgent(
            name='a',
            model=llm,
            before_agent_callback=lambda ctx: Content.from_text('cached answer', role='model'),
        )
        events = await _collect(agent, new_invocation_context(agent))

        assert [e.text for e in events] == ['cached answer']
        assert events[0].author == 'a'
        assert llm.requests == []

    @pytest.mark.asyncio
    async def test_before_callback_state_only(self):
        def remember(ctx):
            ctx.state['seen'] = True

        llm = FakeLlm(responses=[text_response('hello')])
        agent = LlmAgent(name='a', model=llm, before_agent_callback=remember)
        events = await _collect(agent, new_invocation_context(agent))

        assert events[0].content is None
        assert events[0].actions.state_delta == {'seen': True}
        assert events[-1].text == 'hello'

    @pytest.mark.asyncio
    async def test_after_callback_appends_event(self):
        async def footer(ctx):
            return Content.from_text('-- end --', role='model')

        agent = LlmAgent(
            name='a',
            model=FakeLlm(responses=[text_response('body')]),
            after_agent_callback=[lambda ctx: None, footer],
        )
        events = await _collect(agent, new_invocation_context(agent))
        assert [e.text for e in events] == ['body', '-- end --']

    @pytest.mark.asyncio
    async def test_model_callbacks(self):
        def before_model(ctx, llm_request):
            llm_request.append_instructions(['Extra rule.'])

        def after_model(ctx, llm_response):
            return text_response(llm_response.content.parts[0].text.upper())

        llm = FakeLlm(responses=[text_response('quiet')])
        agent = LlmAgent(
            name='a',
            model=llm,
            before_model_callback=before_model,
            after_model_callback=after_model,
        )
        events = await _collect(agent, new_invocation_context(agent))

        assert events[-1].text == 'QUIET'
        assert llm.requests[0].config.system_instruction.endswith('Extra rule.')

    @pytest.mark.asyncio
    async def test_before_model_callback_short_circuits(self):
        llm = FakeLlm()
        agent = LlmAgent(
            name='a',
            model=llm,
            before_model_callback=lambda ctx, req: text_response('from cache'),
        )
        events = await _collect(agent, new_invocation_context(agent))
        assert events[-1].text == 'from cache'
        assert llm.requests == []


# =============================================================================
# ERRORS / OUTPUT KEY
# =============================================================================

class TestLlmAgentExecution:
    """错误事件与 output_key"""

    @pytest.mark.asyncio
    async def test_llm_error_becomes_event(self):
        agent = LlmAgent(name='a', model=RaisingLlm())
        events = await _collect(agent, new_invocation_context(agent))

        assert len(events) == 1
        assert events[0].error_code == AGENT_EXECUTION_ERROR
        assert events[0].error_message == 'model unavailable'
        assert events[0].text == 'Error: model unavailable'

    @pytest.mark.asyncio
    async def test_output_key_saved(self):
        agent = LlmAgent(name='a', model=FakeLlm(responses=[text_response('42')]), output_key='answer')
        events = await _collect(agent, new_invocation_context(agent))
        assert events[-1].actions.state_delta == {'answer': '42'}

    @pytest.mark.asyncio
    async def test_output_key_skips_error_events(self):
        agent = LlmAgent(name='a', model=RaisingLlm(), output_key='answer')
        events = await _collect(agent, new_invocation_context(agent))
        assert events[-1].actions.state_delta == {}

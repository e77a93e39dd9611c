"""编排 Agent（Sequential / Parallel / Loop / Graph）的测试"""

from typing import AsyncGenerator

import pytest

from adk_flow.agents import (
    BaseAgent,
    GraphAgent,
    GraphNode,
    InvocationContext,
    LlmAgent,
    LoopAgent,
    ParallelAgent,
    RunConfig,
    SequentialAgent,
)
from adk_flow.errors import NODE_EXECUTION_ERROR, ConfigurationError, LlmCallsLimitExceededError
from adk_flow.events import Event
from adk_flow.tools import exit_loop_tool

from .fakes import FakeLlm, call_response, create_session, get_session, new_runner, run_turn, text_response


class BrokenAgent(BaseAgent):
    """运行即失败"""

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        raise RuntimeError('boom')
        yield  # 保持为 AsyncGenerator


def _replying(name: str, *texts: str, **kwargs) -> LlmAgent:
    return LlmAgent(name=name, model=FakeLlm(responses=[text_response(t) for t in texts]), **kwargs)


def lookup(key: str) -> str:
    """查询一个键"""
    return key.upper()


def _tool_caller(name: str) -> LlmAgent:
    return LlmAgent(
        name=name,
        model=FakeLlm(responses=[call_response(('lookup', {'key': 'x'})), text_response('done')]),
        tools=[lookup],
    )


# =============================================================================
# SEQUENTIAL
# =============================================================================

class TestSequentialAgent:
    """顺序执行，前一个 Agent 的输出对后一个可见"""

    @pytest.mark.asyncio
    async def test_output_key_feeds_next_instruction(self):
        drafter = _replying('drafter', 'first draft', output_key='draft')
        reviewer = _replying('reviewer', 'looks good', instruction='Review this draft: {draft}')
        runner = new_runner(SequentialAgent(name='pipeline', sub_agents=[drafter, reviewer]))
        session = await create_session(runner)

        events = await run_turn(runner, session.id, 'write something')

        assert [(e.author, e.text) for e in events] == [
            ('drafter', 'first draft'),
            ('reviewer', 'looks good'),
        ]
        assert all(e.branch is None for e in events)
        request = reviewer.model.requests[0]
        assert 'Review this draft: first draft' in request.config.system_instruction

        stored = await get_session(runner, session.id)
        assert stored.state['draft'] == 'first draft'

    @pytest.mark.asyncio
    async def test_empty_sequence(self):
        runner = new_runner(SequentialAgent(name='pipeline'))
        session = await create_session(runner)
        assert await run_turn(runner, session.id, 'hi') == []


# =============================================================================
# PARALLEL
# =============================================================================

class TestParallelAgent:
    """并行分支与错误隔离"""

    @pytest.mark.asyncio
    async def test_branches_and_failure_isolation(self, caplog):
        fanout = ParallelAgent(
            name='fanout',
            sub_agents=[_replying('a', 'from a'), _replying('b', 'from b'), BrokenAgent(name='broken')],
        )
        runner = new_runner(fanout)
        session = await create_session(runner)

        events = await run_turn(runner, session.id, 'go')

        assert {e.author for e in events} == {'a', 'b'}
        assert {e.branch for e in events} == {'fanout.a', 'fanout.b'}
        assert {e.text for e in events} == {'from a', 'from b'}
        assert 'Error in parallel branch 2' in caplog.text

    @pytest.mark.asyncio
    async def test_branch_events_stay_in_order(self):
        first = LlmAgent(
            name='first',
            model=FakeLlm(responses=[call_response(('exit_loop', {})), text_response('unused')]),
            tools=[exit_loop_tool],
        )
        runner = new_runner(ParallelAgent(name='fanout', sub_agents=[first, _replying('second', 'done')]))
        session = await create_session(runner)

        events = await run_turn(runner, session.id, 'go')

        from_first = [e for e in events if e.author == 'first']
        assert len(from_first) == 2
        assert from_first[0].get_function_calls()
        assert from_first[1].get_function_responses()

    @pytest.mark.asyncio
    async def test_siblings_do_not_see_each_other(self):
        a = _replying('a', 'secret from a')
        b = _replying('b', 'from b')
        runner = new_runner(ParallelAgent(name='fanout', sub_agents=[a, b]))
        session = await create_session(runner)

        await run_turn(runner, session.id, 'go')
        await run_turn(runner, session.id, 'again')

        texts = [p.text for c in b.model.requests[-1].contents for p in c.parts if p.text]
        assert not any('secret from a' in t for t in texts)

    @pytest.mark.asyncio
    async def test_call_limit_propagates_from_branch(self):
        runner = new_runner(ParallelAgent(name='fanout', sub_agents=[_tool_caller('worker')]))
        session = await create_session(runner)

        with pytest.raises(LlmCallsLimitExceededError):
            await run_turn(runner, session.id, 'go', run_config=RunConfig(max_llm_calls=1))


# =============================================================================
# LOOP
# =============================================================================

class TestLoopAgent:
    """最大迭代次数与 exit_loop"""

    @pytest.mark.asyncio
    async def test_max_iterations(self):
        runner = new_runner(LoopAgent(name='loop', max_iterations=3, sub_agents=[_replying('worker')]))
        session = await create_session(runner)

        events = await run_turn(runner, session.id, 'work')

        assert [e.text for e in events] == ['ok', 'ok', 'ok']

    @pytest.mark.asyncio
    async def test_exit_loop_escalates(self):
        writer = _replying('writer', 'draft 1')
        critic = LlmAgent(
            name='critic',
            model=FakeLlm(responses=[call_response(('exit_loop', {}))]),
            tools=[exit_loop_tool],
        )
        runner = new_runner(LoopAgent(name='refine', sub_agents=[writer, critic]))
        session = await create_session(runner)

        events = await run_turn(runner, session.id, 'write')

        assert [e.author for e in events] == ['writer', 'critic', 'critic']
        assert events[1].get_function_calls()[0].name == 'exit_loop'
        assert events[2].actions.escalate is True
        assert events[2].actions.skip_summarization is True
        assert len(critic.model.requests) == 1

    @pytest.mark.asyncio
    async def test_empty_loop(self):
        runner = new_runner(LoopAgent(name='loop', max_iterations=2))
        session = await create_session(runner)
        assert await run_turn(runner, session.id, 'hi') == []


# =============================================================================
# GRAPH
# =============================================================================

def _support_graph() -> GraphAgent:
    return GraphAgent(
        name='support',
        nodes=[
            GraphNode(name='classify', agent=_replying('classifier', 'refund please'), targets=['refund', 'faq']),
            GraphNode(
                name='refund',
                agent=_replying('refunder', 'refund issued'),
                condition=lambda event, ctx: 'refund' in event.text,
            ),
            GraphNode(
                name='faq',
                agent=_replying('faq_bot', 'see the faq'),
                condition=lambda event, ctx: 'refund' not in event.text,
            ),
        ],
        root_node='classify',
    )


class TestGraphAgent:
    """条件路由、步数上限与校验"""

    @pytest.mark.asyncio
    async def test_conditional_routing(self):
        graph = _support_graph()
        runner = new_runner(graph)
        session = await create_session(runner)

        events = await run_turn(runner, session.id, 'I want my money back')

        assert [e.author for e in events] == ['classifier', 'refunder', 'support']
        assert events[-1].text == 'Graph execution complete. Executed nodes: classify → refund'
        assert events[-1].turn_complete is True
        assert [r.node for r in graph.get_execution_results()] == ['classify', 'refund']

        graph.clear_execution_history()
        assert graph.get_execution_results() == []

    @pytest.mark.asyncio
    async def test_async_condition(self):
        async def never(event, ctx):
            return False

        graph = GraphAgent(
            name='graph',
            nodes=[
                GraphNode(name='start', agent=_replying('starter'), targets=['next']),
                GraphNode(name='next', agent=_replying('follower'), condition=never),
            ],
            root_node='start',
        )
        runner = new_runner(graph)
        session = await create_session(runner)

        events = await run_turn(runner, session.id, 'go')
        assert events[-1].text == 'Graph execution complete. Executed nodes: start'

    @pytest.mark.asyncio
    async def test_max_steps_bounds_cycles(self, caplog):
        graph = GraphAgent(
            name='graph',
            nodes=[GraphNode(name='retry', agent=_replying('worker'), targets=['retry'])],
            root_node='retry',
            max_steps=3,
        )
        runner = new_runner(graph)
        session = await create_session(runner)

        events = await run_turn(runner, session.id, 'go')

        assert len(events) == 4
        assert events[-1].text == 'Graph execution complete. Executed nodes: retry → retry → retry'
        assert 'Max steps (3) reached' in caplog.text

    @pytest.mark.asyncio
    async def test_node_error_stops_graph(self):
        graph = GraphAgent(
            name='graph',
            nodes=[
                GraphNode(name='explode', agent=BrokenAgent(name='broken'), targets=['after']),
                GraphNode(name='after', agent=_replying('after_agent')),
            ],
            root_node='explode',
        )
        runner = new_runner(graph)
        session = await create_session(runner)

        events = await run_turn(runner, session.id, 'go')

        assert len(events) == 1
        assert events[0].error_code == NODE_EXECUTION_ERROR
        assert events[0].text == 'Error in node "explode": boom'

    @pytest.mark.asyncio
    async def test_call_limit_propagates_from_node(self):
        graph = GraphAgent(
            name='graph',
            nodes=[
                GraphNode(name='work', agent=_tool_caller('worker'), targets=['after']),
                GraphNode(name='after', agent=_replying('after_agent')),
            ],
            root_node='work',
        )
        runner = new_runner(graph)
        session = await create_session(runner)

        with pytest.raises(LlmCallsLimitExceededError):
            await run_turn(runner, session.id, 'go', run_config=RunConfig(max_llm_calls=1))

        stored = await get_session(runner, session.id)
        assert all(e.error_code != NODE_EXECUTION_ERROR for e in stored.events)

    @pytest.mark.asyncio
    async def test_results_kept_per_invocation(self):
        graph = _support_graph()
        runner = new_runner(graph)
        session = await create_session(runner)

        first = await run_turn(runner, session.id, 'I want my money back')
        second = await run_turn(runner, session.id, 'how do I log in?')

        # 分类器第二轮回复 'ok'，走 faq 分支
        assert [r.node for r in graph.get_execution_results()] == ['classify', 'faq']
        assert [r.node for r in graph.get_execution_results(first[0].invocation_id)] == ['classify', 'refund']

        graph.clear_execution_history(second[0].invocation_id)
        assert [r.node for r in graph.get_execution_results()] == ['classify', 'refund']
        assert graph.get_execution_results('unknown') == []

    def test_duplicate_node_names(self):
        with pytest.raises(ValueError, match='Duplicate node name'):
            GraphAgent(
                name='graph',
                nodes=[
                    GraphNode(name='x', agent=_replying('one')),
                    GraphNode(name='x', agent=_replying('two')),
                ],
                root_node='x',
            )

    def test_missing_root(self):
        with pytest.raises(ValueError, match='Root node "start" not found'):
            GraphAgent(name='graph', nodes=[GraphNode(name='x', agent=_replying('one'))], root_node='start')

    def test_unknown_target(self):
        with pytest.raises(ValueError, match='targets non-existent node "nowhere"'):
            GraphAgent(
                name='graph',
                nodes=[GraphNode(name='x', agent=_replying('one'), targets=['nowhere'])],
                root_node='x',
            )

    def test_accessors(self):
        graph = _support_graph()
        assert graph.get_root_node_name() == 'classify'
        assert [n.name for n in graph.get_nodes()] == ['classify', 'refund', 'faq']
        assert graph.get_node('faq').agent.name == 'faq_bot'
        assert graph.get_node('missing') is None
        assert [a.name for a in graph.sub_agents] == ['classifier', 'refunder', 'faq_bot']

        graph.set_max_steps(10)
        assert graph.get_max_steps() == 10
        with pytest.raises(ConfigurationError):
            graph.set_max_steps(0)

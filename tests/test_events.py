"""事件与事件动作的测试"""

from adk_flow.auth import AuthConfig
from adk_flow.events import Event, EventActions, EventCompaction, merge_event_actions
from adk_flow.types import CodeExecutionResult, Content, Part


# =============================================================================
# FINAL RESPONSE
# =============================================================================

class TestIsFinalResponse:
    """最终响应判定规则"""

    def test_plain_text_is_final(self):
        """纯文本、非 partial 的事件是最终响应"""
        event = Event(author='agent', content=Content.from_text('hi', role='model'))
        assert event.is_final_response()

    def test_partial_is_not_final(self):
        event = Event(author='agent', content=Content.from_text('h', role='model'), partial=True)
        assert not event.is_final_response()

    def test_function_call_is_not_final(self):
        event = Event(
            author='agent',
            content=Content(role='model', parts=[Part.from_function_call('lookup', {})]),
        )
        assert not event.is_final_response()

    def test_function_response_is_not_final(self):
        event = Event(
            author='agent',
            content=Content(role='user', parts=[Part.from_function_response('lookup', {'ok': True})]),
        )
        assert not event.is_final_response()

    def test_trailing_code_execution_result_is_not_final(self):
        event = Event(
            author='agent',
            content=Content(role='model', parts=[
                Part(code_execution_result=CodeExecutionResult(output='1')),
            ]),
        )
        assert event.has_trailing_code_execution_result()
        assert not event.is_final_response()

    def test_skip_summarization_forces_final(self):
        """工具要求跳过总结时，函数响应也是最终响应"""
        event = Event(
            author='agent',
            content=Content(role='user', parts=[Part.from_function_response('lookup', {})]),
            actions=EventActions(skip_summarization=True),
        )
        assert event.is_final_response()

    def test_long_running_tool_ids_force_final(self):
        event = Event(
            author='agent',
            content=Content(role='model', parts=[Part.from_function_call('approve', {}, id='fc-1')]),
            long_running_tool_ids={'fc-1'},
        )
        assert event.is_final_response()

    def test_event_without_content_is_final(self):
        event = Event(author='agent', actions=EventActions(state_delta={'k': 1}))
        assert event.is_final_response()


class TestEventDefaults:
    """事件的默认字段"""

    def test_id_generated(self):
        first = Event(author='agent')
        second = Event(author='agent')
        assert first.id and second.id
        assert first.id != second.id
        assert len(first.id) == 8

    def test_explicit_id_kept(self):
        assert Event(author='agent', id='fixed').id == 'fixed'

    def test_text_skips_thoughts(self):
        event = Event(author='agent', content=Content(role='model', parts=[
            Part(text='thinking', thought=True),
            Part(text='answer'),
        ]))
        assert event.text == 'answer'

    def test_text_without_content(self):
        assert Event(author='agent').text == ''

    def test_function_accessors(self):
        event = Event(author='agent', content=Content(role='model', parts=[
            Part(text='calling'),
            Part.from_function_call('a', {'x': 1}, id='1'),
            Part.from_function_call('b', {}, id='2'),
        ]))
        assert [fc.name for fc in event.get_function_calls()] == ['a', 'b']
        assert event.get_function_responses() == []


# =============================================================================
# MERGE
# =============================================================================

class TestMergeEventActions:
    """first-call-wins 合并"""

    def test_state_delta_first_wins(self):
        merged = merge_event_actions([
            EventActions(state_delta={'a': 1, 'b': 1}),
            EventActions(state_delta={'a': 2, 'c': 2}),
        ])
        assert merged.state_delta == {'a': 1, 'b': 1, 'c': 2}

    def test_artifact_delta_first_wins(self):
        merged = merge_event_actions([
            EventActions(artifact_delta={'f.txt': 0}),
            EventActions(artifact_delta={'f.txt': 3, 'g.txt': 1}),
        ])
        assert merged.artifact_delta == {'f.txt': 0, 'g.txt': 1}

    def test_scalar_fields_first_non_none_wins(self):
        merged = merge_event_actions([
            EventActions(),
            EventActions(transfer_to_agent='billing', escalate=True),
            EventActions(transfer_to_agent='support', skip_summarization=True),
        ])
        assert merged.transfer_to_agent == 'billing'
        assert merged.escalate is True
        assert merged.skip_summarization is True

    def test_requested_auth_configs_union(self):
        first = AuthConfig(credential_key='one')
        second = AuthConfig(credential_key='two')
        merged = merge_event_actions([
            EventActions(requested_auth_configs={'fc-1': first}),
            EventActions(requested_auth_configs={'fc-2': second}),
        ])
        assert set(merged.requested_auth_configs) == {'fc-1', 'fc-2'}

    def test_associative(self):
        """合并顺序分组不影响结果"""
        a = EventActions(state_delta={'k': 'a'}, escalate=True)
        b = EventActions(state_delta={'k': 'b', 'm': 'b'}, transfer_to_agent='x')
        c = EventActions(state_delta={'m': 'c', 'n': 'c'}, transfer_to_agent='y')

        left = merge_event_actions([merge_event_actions([a, b]), c])
        right = merge_event_actions([a, merge_event_actions([b, c])])
        flat = merge_event_actions([a, b, c])
        assert left == right == flat

    def test_inputs_not_mutated(self):
        a = EventActions(state_delta={'k': 1})
        merge_event_actions([a, EventActions(state_delta={'j': 2})])
        assert a.state_delta == {'k': 1}

    def test_compaction_kept(self):
        compaction = EventCompaction(
            start_timestamp=1.0,
            end_timestamp=2.0,
            compacted_content=Content.from_text('summary', role='model'),
        )
        merged = merge_event_actions([EventActions(compaction=compaction)])
        assert merged.compaction == compaction

"""会话服务与状态的测试"""

import pytest

from adk_flow.events import Event, EventActions
from adk_flow.sessions import GetSessionConfig, InMemorySessionService, State
from adk_flow.types import Content

APP = 'app'
USER = 'u1'


async def _create(service: InMemorySessionService, **kwargs):
    return await service.create_session(app_name=APP, user_id=USER, **kwargs)


async def _get(service: InMemorySessionService, session_id: str, **kwargs):
    return await service.get_session(app_name=APP, user_id=USER, session_id=session_id, **kwargs)


# =============================================================================
# STATE
# =============================================================================

class TestState:
    """双层状态视图"""

    def test_write_visible_in_both_layers(self):
        value, delta = {'a': 1}, {}
        state = State(value, delta)
        state['b'] = 2
        assert value == {'a': 1, 'b': 2}
        assert delta == {'b': 2}
        assert state['b'] == 2
        assert state.has_delta()

    def test_delta_shadows_value(self):
        state = State({'a': 1}, {'a': 2})
        assert state['a'] == 2
        assert state.to_dict() == {'a': 2}

    def test_get_default_and_contains(self):
        state = State({'a': 1}, {})
        assert 'a' in state
        assert 'missing' not in state
        assert state.get('missing', 'x') == 'x'
        assert not state.has_delta()

    def test_update(self):
        state = State({}, {})
        state.update({'a': 1, 'b': 2})
        assert state.to_dict() == {'a': 1, 'b': 2}

    def test_missing_key_raises(self):
        with pytest.raises(KeyError):
            State({}, {})['missing']


# =============================================================================
# CREATE / GET / LIST / DELETE
# =============================================================================

class TestSessionLifecycle:
    """创建、读取、列出和删除"""

    @pytest.mark.asyncio
    async def test_create_generates_id(self, session_service):
        session = await _create(session_service)
        assert session.id
        assert session.app_name == APP
        assert session.user_id == USER
        assert session.events == []

    @pytest.mark.asyncio
    async def test_create_with_explicit_id(self, session_service):
        session = await _create(session_service, session_id='s-1')
        assert session.id == 's-1'

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, session_service):
        await _create(session_service, session_id='s-1')
        with pytest.raises(ValueError, match='already exists'):
            await _create(session_service, session_id='s-1')

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, session_service):
        assert await _get(session_service, 'nope') is None

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, session_service):
        session = await _create(session_service, state={'k': 'v'})
        fetched = await _get(session_service, session.id)
        fetched.state['k'] = 'changed'
        again = await _get(session_service, session.id)
        assert again.state['k'] == 'v'

    @pytest.mark.asyncio
    async def test_list_strips_events_and_state(self, session_service):
        first = await _create(session_service, state={'k': 'v'})
        await _create(session_service)
        await session_service.append_event(first, Event(author='user', content=Content.from_text('hi')))

        response = await session_service.list_sessions(app_name=APP, user_id=USER)
        assert len(response.sessions) == 2
        assert all(s.events == [] and s.state == {} for s in response.sessions)

    @pytest.mark.asyncio
    async def test_delete(self, session_service):
        session = await _create(session_service)
        await session_service.delete_session(app_name=APP, user_id=USER, session_id=session.id)
        assert await _get(session_service, session.id) is None

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, session_service):
        await session_service.delete_session(app_name=APP, user_id=USER, session_id='nope')


# =============================================================================
# APPEND EVENT
# =============================================================================

class TestAppendEvent:
    """事件追加与状态合并"""

    @pytest.mark.asyncio
    async def test_partial_event_ignored(self, session_service):
        session = await _create(session_service)
        event = Event(
            author='agent',
            partial=True,
            content=Content.from_text('par', role='model'),
            actions=EventActions(state_delta={'k': 1}),
        )
        returned = await session_service.append_event(session, event)

        assert returned is event
        assert session.events == []
        stored = await _get(session_service, session.id)
        assert stored.events == []
        assert 'k' not in stored.state

    @pytest.mark.asyncio
    async def test_state_delta_applied_and_persisted(self, session_service):
        session = await _create(session_service)
        await session_service.append_event(
            session, Event(author='agent', actions=EventActions(state_delta={'k': 1}))
        )
        assert session.state['k'] == 1
        stored = await _get(session_service, session.id)
        assert stored.state['k'] == 1
        assert len(stored.events) == 1

    @pytest.mark.asyncio
    async def test_none_value_deletes_key(self, session_service):
        session = await _create(session_service, state={'k': 1})
        await session_service.append_event(
            session, Event(author='agent', actions=EventActions(state_delta={'k': None}))
        )
        stored = await _get(session_service, session.id)
        assert 'k' not in stored.state

    @pytest.mark.asyncio
    async def test_temp_keys_not_persisted(self, session_service):
        session = await _create(session_service)
        await session_service.append_event(
            session, Event(author='agent', actions=EventActions(state_delta={'temp:x': 1, 'y': 2}))
        )
        stored = await _get(session_service, session.id)
        assert 'temp:x' not in stored.state
        assert stored.state['y'] == 2

    @pytest.mark.asyncio
    async def test_replaying_delta_is_idempotent(self, session_service):
        """同一个 state_delta 追加两次，状态与追加一次相同"""
        session = await _create(session_service)
        delta = {'a': 1, 'b': 'x'}
        await session_service.append_event(session, Event(author='agent', actions=EventActions(state_delta=delta)))
        once = dict((await _get(session_service, session.id)).state)
        await session_service.append_event(session, Event(author='agent', actions=EventActions(state_delta=delta)))
        twice = dict((await _get(session_service, session.id)).state)
        assert once == twice

    @pytest.mark.asyncio
    async def test_last_update_time_follows_event(self, session_service):
        session = await _create(session_service)
        await session_service.append_event(session, Event(author='agent', timestamp=12345.0))
        stored = await _get(session_service, session.id)
        assert stored.last_update_time == 12345.0


# =============================================================================
# SCOPES
# =============================================================================

class TestStateScopes:
    """app: / user: / temp: 作用域"""

    @pytest.mark.asyncio
    async def test_app_state_shared_across_users(self, session_service):
        first = await _create(session_service)
        await session_service.append_event(
            first, Event(author='agent', actions=EventActions(state_delta={'app:theme': 'dark'}))
        )
        other = await session_service.create_session(app_name=APP, user_id='u2')
        assert other.state['app:theme'] == 'dark'

    @pytest.mark.asyncio
    async def test_user_state_shared_across_sessions(self, session_service):
        first = await _create(session_service)
        await session_service.append_event(
            first, Event(author='agent', actions=EventActions(state_delta={'user:lang': 'zh'}))
        )
        second = await _create(session_service)
        assert second.state['user:lang'] == 'zh'

        other_user = await session_service.create_session(app_name=APP, user_id='u2')
        assert 'user:lang' not in other_user.state

    @pytest.mark.asyncio
    async def test_initial_state_routed_by_prefix(self, session_service):
        await _create(session_service, state={'app:a': 1, 'user:b': 2, 'temp:c': 3, 'd': 4})
        second = await _create(session_service)
        assert second.state == {'app:a': 1, 'user:b': 2}

    @pytest.mark.asyncio
    async def test_scoped_delete(self, session_service):
        session = await _create(session_service, state={'user:b': 2})
        await session_service.append_event(
            session, Event(author='agent', actions=EventActions(state_delta={'user:b': None}))
        )
        fresh = await _create(session_service)
        assert 'user:b' not in fresh.state


# =============================================================================
# GET SESSION CONFIG
# =============================================================================

class TestGetSessionConfig:
    """get_session 的事件过滤"""

    @pytest.mark.asyncio
    async def test_num_recent_events(self, session_service):
        session = await _create(session_service)
        for i in range(5):
            await session_service.append_event(session, Event(author='agent', timestamp=float(i + 1)))

        fetched = await _get(session_service, session.id, config=GetSessionConfig(num_recent_events=2))
        assert [e.timestamp for e in fetched.events] == [4.0, 5.0]

        empty = await _get(session_service, session.id, config=GetSessionConfig(num_recent_events=0))
        assert empty.events == []

    @pytest.mark.asyncio
    async def test_after_timestamp_inclusive(self, session_service):
        session = await _create(session_service)
        for i in range(5):
            await session_service.append_event(session, Event(author='agent', timestamp=float(i + 1)))

        fetched = await _get(session_service, session.id, config=GetSessionConfig(after_timestamp=3.0))
        assert [e.timestamp for e in fetched.events] == [3.0, 4.0, 5.0]

"""
Runner - 无状态执行引擎

Runner 职责（单一职责）:
- 绑定特定的 Agent 和 App
- 为每次调用创建 InvocationContext，选出要运行的 Agent
- 把非 partial 事件追加到 Session（通过 SessionService.append_event）
- 调用结束后按配置压缩历史；支持回退到某次调用之前

架构:
┌────────────────────────────────────────┐
│  Runner: 执行编排（绑定 Agent）          │
├────────────────────────────────────────┤
│  Agent: 组合编排 / LlmAgent             │
├────────────────────────────────────────┤
│  Flow: 请求处理器 → LLM → 响应处理器     │
├────────────────────────────────────────┤
│  Model: LLM 抽象 + 注册表               │
└────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import time
from typing import Any, AsyncIterator, Optional, Union

from .agents.base_agent import BaseAgent
from .agents.invocation_context import InvocationContext, new_invocation_context_id
from .agents.llm_agent import LlmAgent
from .agents.run_config import RunConfig
from .artifacts.artifact_util import get_artifact_uri
from .artifacts.base_artifact_service import BaseArtifactService
from .artifacts.in_memory_artifact_service import InMemoryArtifactService
from .compaction.base_events_summarizer import BaseEventsSummarizer
from .compaction.compaction_config import EventsCompactionConfig
from .compaction.llm_event_summarizer import LlmEventSummarizer
from .compaction.sliding_window import run_compaction_for_sliding_window
from .config import Config, get_config
from .errors import SessionNotFoundError
from .events import Event, EventActions
from .flows.functions import find_matching_function_call
from .memory.base_memory_service import BaseMemoryService
from .memory.in_memory_memory_service import InMemoryMemoryService
from .models.registry import LlmRegistry
from .sessions.base_session_service import BaseSessionService
from .sessions.in_memory_session_service import InMemorySessionService
from .sessions.session import Session
from .sessions.state import State
from .types import Blob, Content, FileData, Part

logger = logging.getLogger(__name__)


class Runner:
    """
    无状态 Runner

    核心设计理念:
    - Runner 绑定特定的 app_name 和 agent
    - Runner 本身无状态（Agent 是只读配置，不是运行时状态）
    - Session 必须预先存在（不存在则抛出 SessionNotFoundError）
    - LLM 注册表显式传入，经 InvocationContext 传给 Agent

    使用方式:
        runner = Runner(
            app_name="my_app",
            agent=agent,
            session_service=InMemorySessionService(),
        )
        session = await runner.session_service.create_session(app_name="my_app", user_id="u1")
        async for event in runner.run_async(user_id="u1", session_id=session.id, new_message="你好"):
            print(event.text)
    """

    def __init__(
        self,
        app_name: str,
        agent: BaseAgent,
        session_service: BaseSessionService,
        artifact_service: Optional[BaseArtifactService] = None,
        memory_service: Optional[BaseMemoryService] = None,
        llm_registry: Optional[LlmRegistry] = None,
        compaction_config: Optional[EventsCompactionConfig] = None,
        config: Optional[Config] = None,
    ):
        """
        Args:
            app_name: 应用名称（用于 Session 隔离）
            agent: 根 Agent
            session_service: Session 持久化服务
            artifact_service: Artifact 服务（可选）
            memory_service: 记忆服务（可选），每个持久化事件后写入
            llm_registry: 模型名称解析用的注册表，默认由配置创建
            compaction_config: 历史压缩配置，默认由配置决定
            config: 配置对象，默认使用全局配置
        """
        self.app_name = app_name
        self.agent = agent
        self.session_service = session_service
        self.artifact_service = artifact_service
        self.memory_service = memory_service
        self._config = config or get_config()
        self.llm_registry = llm_registry or self._config.to_llm_registry()
        self.compaction_config = (
            compaction_config if compaction_config is not None
            else self._config.to_compaction_config()
        )

    # ==================== 异步 API ====================

    async def run_async(
        self,
        *,
        user_id: str,
        session_id: str,
        new_message: Union[Content, str],
        run_config: Optional[RunConfig] = None,
    ) -> AsyncIterator[Event]:
        """
        异步执行

        前置条件: Session 必须已存在（通过 session_service.create_session 创建）

        Yields:
            Agent 产生的所有事件（包括 partial 事件，它们不会被持久化）

        Raises:
            SessionNotFoundError: Session 不存在
        """
        run_config = run_config or self._config.to_run_config()
        if isinstance(new_message, str):
            new_message = Content.from_text(new_message, role='user')

        start_time = time.time()
        invocation_id = new_invocation_context_id()
        logger.info(
            f"[Runner] START app={self.app_name} invocation_id={invocation_id} "
            f"user_id={user_id} session_id={session_id} agent={self.agent.name}"
        )

        event_count = 0
        try:
            session = await self.session_service.get_session(
                app_name=self.app_name,
                user_id=user_id,
                session_id=session_id,
            )
            if session is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")

            ctx = self._new_invocation_context(session, invocation_id, new_message, run_config)
            await self._append_new_message_to_session(
                session, new_message, ctx, run_config.save_input_blobs_as_artifacts
            )

            ctx.agent = self._find_agent_to_run(session, self.agent)
            if ctx.agent is not self.agent:
                logger.info(f"[Runner] Resuming with agent {ctx.agent.name}")

            async for event in ctx.agent.run_async(ctx):
                event_count += 1
                if not event.partial:
                    await self.session_service.append_event(session, event)
                    if self.memory_service is not None:
                        await self.memory_service.add_session_to_memory(session)
                yield event

            await self._run_compaction(session)

            logger.info(
                f"[Runner] SUCCESS invocation_id={invocation_id} "
                f"duration={time.time() - start_time:.2f}s events={event_count}"
            )
        except Exception as e:
            logger.error(
                f"[Runner] FAILED invocation_id={invocation_id} "
                f"error={str(e)} duration={time.time() - start_time:.2f}s",
                exc_info=True,
            )
            raise

    def _new_invocation_context(
        self,
        session: Session,
        invocation_id: str,
        new_message: Content,
        run_config: RunConfig,
    ) -> InvocationContext:
        return InvocationContext(
            session_service=self.session_service,
            agent=self.agent,
            session=session,
            invocation_id=invocation_id,
            artifact_service=self.artifact_service,
            memory_service=self.memory_service,
            llm_registry=self.llm_registry,
            user_content=new_message,
            run_config=run_config,
        )

    async def _append_new_message_to_session(
        self,
        session: Session,
        new_message: Content,
        ctx: InvocationContext,
        save_input_blobs_as_artifacts: bool = False,
    ) -> None:
        """用户消息作为 author='user' 的事件追加到会话（不会 yield 给调用方）"""
        if not new_message.parts:
            raise ValueError("No parts in the new_message.")

        if self.artifact_service is not None and save_input_blobs_as_artifacts:
            for i, part in enumerate(new_message.parts):
                if part.inline_data is None:
                    continue
                file_name = f"artifact_{ctx.invocation_id}_{i}"
                await self.artifact_service.save_artifact(
                    app_name=self.app_name,
                    user_id=session.user_id,
                    session_id=session.id,
                    filename=file_name,
                    artifact=part,
                )
                new_message.parts[i] = Part(text=f"Uploaded file: {file_name}. It is saved into artifacts")

        event = Event(
            invocation_id=ctx.invocation_id,
            author='user',
            content=new_message.model_copy(update={'role': 'user'}),
        )
        await self.session_service.append_event(session, event)

    # ==================== Agent 选择 ====================

    def _find_agent_to_run(self, session: Session, root_agent: BaseAgent) -> BaseAgent:
        """
        选出本次调用要运行的 Agent

        1. 最后一个事件是函数响应（例如长时间运行工具的结果）：交给发起该调用的 Agent
        2. 倒序查找最近回复过的 Agent：根 Agent，或者可以在整棵树内跳转的子 Agent
        3. 否则运行根 Agent
        """
        event = find_matching_function_call(session.events)
        if event is not None and event.author:
            agent = root_agent.find_agent(event.author)
            if agent is not None:
                return agent

        for event in reversed(session.events):
            if event.author == 'user':
                continue
            if event.author == root_agent.name:
                return root_agent
            agent = root_agent.find_sub_agent(event.author)
            if agent is None:
                logger.debug(f"[Runner] Event from an unknown agent: {event.author}, event id: {event.id}")
                continue
            if self._is_transferable_across_agent_tree(agent):
                return agent

        return root_agent

    def _is_transferable_across_agent_tree(self, agent_to_run: BaseAgent) -> bool:
        """从该 Agent 到根的路径上都是允许跳回父级的 LlmAgent"""
        agent: Optional[BaseAgent] = agent_to_run
        while agent is not None:
            if not isinstance(agent, LlmAgent):
                return False
            if agent.disallow_transfer_to_parent:
                return False
            agent = agent.parent_agent
        return True

    # ==================== 压缩 ====================

    async def _run_compaction(self, session: Session) -> None:
        """压缩失败只记录日志，不影响本次调用的结果"""
        if self.compaction_config is None:
            return

        summarizer = self._get_or_create_summarizer()
        if summarizer is None:
            logger.warning("[Runner] Event compaction configured but no summarizer available")
            return

        config = self.compaction_config.model_copy(update={'summarizer': summarizer})
        try:
            await run_compaction_for_sliding_window(self.app_name, session, self.session_service, config)
        except Exception as e:
            logger.error(f"[Runner] Error running compaction: {e}", exc_info=True)

    def _get_or_create_summarizer(self) -> Optional[BaseEventsSummarizer]:
        if self.compaction_config is not None and self.compaction_config.summarizer is not None:
            return self.compaction_config.summarizer
        if isinstance(self.agent, LlmAgent):
            try:
                llm = self.agent.get_llm(self.llm_registry, self._config.llm.model or None)
                return LlmEventSummarizer(llm)
            except Exception as e:
                logger.warning(f"[Runner] Could not get model for default summarizer: {e}")
        return None

    # ==================== 回退 ====================

    async def rewind_async(
        self,
        *,
        user_id: str,
        session_id: str,
        rewind_before_invocation_id: str,
    ) -> None:
        """
        回退到某次调用之前

        不删除历史，而是追加一个带 rewind_before_invocation_id 的事件：
        - state_delta 把会话级状态恢复到该调用之前的值（当时不存在的键置为 None）
        - artifact_delta 把会话级 artifact 恢复到当时的版本（引用旧版本，当时不存在则写入空占位）
        """
        session = await self.session_service.get_session(
            app_name=self.app_name,
            user_id=user_id,
            session_id=session_id,
        )
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")

        rewind_event_index = next(
            (
                i for i, event in enumerate(session.events)
                if event.invocation_id == rewind_before_invocation_id
            ),
            -1,
        )
        if rewind_event_index == -1:
            raise ValueError(f"Invocation ID not found: {rewind_before_invocation_id}")

        state_delta = self._compute_state_delta_for_rewind(session, rewind_event_index)
        artifact_delta = await self._compute_artifact_delta_for_rewind(session, rewind_event_index)

        rewind_event = Event(
            invocation_id=new_invocation_context_id(),
            author='user',
            actions=EventActions(
                rewind_before_invocation_id=rewind_before_invocation_id,
                state_delta=state_delta,
                artifact_delta=artifact_delta,
            ),
        )
        logger.info(
            f"[Runner] Rewinding session {session_id} before invocation {rewind_before_invocation_id} "
            f"state_keys={len(state_delta)} artifacts={len(artifact_delta)}"
        )
        await self.session_service.append_event(session, rewind_event)

    def _compute_state_delta_for_rewind(self, session: Session, rewind_event_index: int) -> dict[str, Any]:
        state_at_rewind_point: dict[str, Any] = {}
        for event in session.events[:rewind_event_index]:
            for key, value in event.actions.state_delta.items():
                if _is_non_session_key(key):
                    continue
                if value is None:
                    state_at_rewind_point.pop(key, None)
                else:
                    state_at_rewind_point[key] = value

        rewind_state_delta: dict[str, Any] = {}
        for key, value_at_rewind in state_at_rewind_point.items():
            if key not in session.state or session.state[key] != value_at_rewind:
                rewind_state_delta[key] = value_at_rewind

        for key in session.state:
            if _is_non_session_key(key):
                continue
            if key not in state_at_rewind_point:
                rewind_state_delta[key] = None
        return rewind_state_delta

    async def _compute_artifact_delta_for_rewind(self, session: Session, rewind_event_index: int) -> dict[str, int]:
        if self.artifact_service is None:
            return {}

        versions_at_rewind_point: dict[str, int] = {}
        for event in session.events[:rewind_event_index]:
            versions_at_rewind_point.update(event.actions.artifact_delta)

        current_versions: dict[str, int] = {}
        for event in session.events:
            current_versions.update(event.actions.artifact_delta)

        rewind_artifact_delta: dict[str, int] = {}
        for filename, current_version in current_versions.items():
            if filename.startswith(State.USER_PREFIX):
                continue
            version_at_rewind = versions_at_rewind_point.get(filename)
            if version_at_rewind == current_version:
                continue

            if version_at_rewind is None:
                artifact = Part(inline_data=Blob(mime_type='application/octet-stream', data=b''))
            else:
                artifact = Part(file_data=FileData(file_uri=get_artifact_uri(
                    app_name=self.app_name,
                    user_id=session.user_id,
                    session_id=session.id,
                    filename=filename,
                    version=version_at_rewind,
                )))
            rewind_artifact_delta[filename] = await self.artifact_service.save_artifact(
                app_name=self.app_name,
                user_id=session.user_id,
                session_id=session.id,
                filename=filename,
                artifact=artifact,
            )
        return rewind_artifact_delta

    # ==================== 同步 API ====================

    def run(
        self,
        *,
        user_id: str,
        session_id: str,
        new_message: Union[Content, str],
        run_config: Optional[RunConfig] = None,
    ) -> list[Event]:
        """
        同步执行

        在工作线程的新事件循环中运行 run_async，返回全部事件。
        可以在已有事件循环的线程中调用。
        """
        async def _collect() -> list[Event]:
            return [
                event async for event in self.run_async(
                    user_id=user_id,
                    session_id=session_id,
                    new_message=new_message,
                    run_config=run_config,
                )
            ]

        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
            return executor.submit(asyncio.run, _collect()).result()


class InMemoryRunner(Runner):
    """使用内存 Session / Artifact / Memory 服务的 Runner，用于开发和测试"""

    def __init__(
        self,
        agent: BaseAgent,
        app_name: str = 'InMemoryRunner',
        llm_registry: Optional[LlmRegistry] = None,
        compaction_config: Optional[EventsCompactionConfig] = None,
        config: Optional[Config] = None,
    ):
        super().__init__(
            app_name=app_name,
            agent=agent,
            session_service=InMemorySessionService(),
            artifact_service=InMemoryArtifactService(),
            memory_service=InMemoryMemoryService(),
            llm_registry=llm_registry,
            compaction_config=compaction_config,
            config=config,
        )


def _is_non_session_key(key: str) -> bool:
    return key.startswith((State.APP_PREFIX, State.USER_PREFIX, State.TEMP_PREFIX))

"""
pytest 共享 fixtures

- fake_llm: 按顺序回放响应的假 LLM（见 tests/fakes.py）
- session_service / artifact_service / memory_service: 内存服务
- 日志级别设置为 DEBUG，方便断言日志内容
"""

import logging

import pytest

from adk_flow.artifacts import InMemoryArtifactService
from adk_flow.memory import InMemoryMemoryService
from adk_flow.sessions import InMemorySessionService

from .fakes import FakeLlm


# ============================================================================
# Logging Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def configure_test_logging(caplog):
    """所有测试都捕获 adk_flow 的 DEBUG 日志"""
    caplog.set_level(logging.DEBUG, logger='adk_flow')
    return caplog


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def fake_llm() -> FakeLlm:
    return FakeLlm()


@pytest.fixture
def session_service() -> InMemorySessionService:
    return InMemorySessionService()


@pytest.fixture
def artifact_service() -> InMemoryArtifactService:
    return InMemoryArtifactService()


@pytest.fixture
def memory_service() -> InMemoryMemoryService:
    return InMemoryMemoryService()

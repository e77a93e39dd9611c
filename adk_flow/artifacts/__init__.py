"""Artifact 模块 - 会话关联的二进制文件存储"""

from .artifact_util import get_artifact_uri, parse_artifact_uri
from .base_artifact_service import BaseArtifactService
from .in_memory_artifact_service import InMemoryArtifactService

__all__ = [
    'BaseArtifactService',
    'InMemoryArtifactService',
    'get_artifact_uri',
    'parse_artifact_uri',
]

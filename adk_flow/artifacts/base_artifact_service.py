"""ArtifactService 抽象基类"""

from __future__ import annotations

import abc
from typing import Optional

from ..types import Part


class BaseArtifactService(abc.ABC):
    """
    Artifact（二进制文件）存储服务

    - 每次保存生成一个新版本，版本号从 0 开始递增
    - 以 user: 开头的文件名属于用户级，在该用户的所有会话间共享
    """

    @abc.abstractmethod
    async def save_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        artifact: Part,
    ) -> int:
        """保存 artifact，返回新版本号"""

    @abc.abstractmethod
    async def load_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        version: Optional[int] = None,
    ) -> Optional[Part]:
        """读取 artifact，version 为 None 时读取最新版本"""

    @abc.abstractmethod
    async def list_artifact_keys(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> list[str]:
        """列出会话可见的所有文件名（含用户级）"""

    @abc.abstractmethod
    async def delete_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
    ) -> None:
        """删除 artifact 的所有版本"""

    @abc.abstractmethod
    async def list_versions(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
    ) -> list[int]:
        """列出 artifact 的所有版本号"""

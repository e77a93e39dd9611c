"""InMemoryArtifactService - 内存存储实现（用于开发和测试）"""

from __future__ import annotations

import logging
from typing import Optional

from typing_extensions import override

from ..types import Part
from .artifact_util import is_artifact_ref, parse_artifact_uri
from .base_artifact_service import BaseArtifactService

logger = logging.getLogger(__name__)

_USER_NAMESPACE = 'user:'


class InMemoryArtifactService(BaseArtifactService):
    """
    内存存储的 ArtifactService

    数据结构: {path: [Part, ...]}，列表下标即版本号

    读取时会解析 artifact:// 引用（回退操作保存的就是引用），
    空的 inline_data 占位表示该版本下文件不存在。
    """

    def __init__(self):
        self._artifacts: dict[str, list[Part]] = {}

    @staticmethod
    def _file_has_user_namespace(filename: str) -> bool:
        return filename.startswith(_USER_NAMESPACE)

    def _artifact_path(self, app_name: str, user_id: str, session_id: Optional[str], filename: str) -> str:
        if self._file_has_user_namespace(filename) or not session_id:
            return f"{app_name}/{user_id}/user/{filename}"
        return f"{app_name}/{user_id}/{session_id}/{filename}"

    @override
    async def save_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        artifact: Part,
    ) -> int:
        path = self._artifact_path(app_name, user_id, session_id, filename)
        versions = self._artifacts.setdefault(path, [])
        versions.append(artifact.model_copy(deep=True))
        logger.debug(f"[InMemoryArtifactService] Saved {path} version={len(versions) - 1}")
        return len(versions) - 1

    @override
    async def load_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        version: Optional[int] = None,
    ) -> Optional[Part]:
        path = self._artifact_path(app_name, user_id, session_id, filename)
        versions = self._artifacts.get(path)
        if not versions:
            return None
        try:
            artifact = versions[-1] if version is None else versions[version]
        except IndexError:
            return None

        if artifact.file_data and is_artifact_ref(artifact.file_data.file_uri):
            ref = parse_artifact_uri(artifact.file_data.file_uri)
            if ref is None:
                raise ValueError(f"Invalid artifact reference URI: {artifact.file_data.file_uri}")
            return await self.load_artifact(
                app_name=ref.app_name,
                user_id=ref.user_id,
                session_id=ref.session_id or session_id,
                filename=ref.filename,
                version=ref.version,
            )

        if (
            artifact.inline_data is not None
            and not artifact.inline_data.data
            and artifact.text is None
            and artifact.file_data is None
        ):
            return None
        return artifact.model_copy(deep=True)

    @override
    async def list_artifact_keys(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> list[str]:
        session_prefix = f"{app_name}/{user_id}/{session_id}/"
        user_prefix = f"{app_name}/{user_id}/user/"
        keys = []
        for path in self._artifacts:
            if path.startswith(session_prefix):
                keys.append(path[len(session_prefix):])
            elif path.startswith(user_prefix):
                keys.append(path[len(user_prefix):])
        return sorted(keys)

    @override
    async def delete_artifact(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
    ) -> None:
        self._artifacts.pop(self._artifact_path(app_name, user_id, session_id, filename), None)

    @override
    async def list_versions(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
    ) -> list[int]:
        versions = self._artifacts.get(self._artifact_path(app_name, user_id, session_id, filename), [])
        return list(range(len(versions)))

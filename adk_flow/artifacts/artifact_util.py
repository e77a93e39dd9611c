"""artifact:// 引用的构造和解析"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel

_ARTIFACT_URI = re.compile(
    r'^artifact://apps/([^/]+)/users/([^/]+)/sessions/([^/]+)/artifacts/(.+)/versions/(\d+)$'
)
_USER_ARTIFACT_URI = re.compile(
    r'^artifact://apps/([^/]+)/users/([^/]+)/artifacts/(.+)/versions/(\d+)$'
)


class ParsedArtifactUri(BaseModel):
    app_name: str
    user_id: str
    session_id: Optional[str] = None
    filename: str
    version: int


def get_artifact_uri(
    *,
    app_name: str,
    user_id: str,
    filename: str,
    version: int,
    session_id: Optional[str] = None,
) -> str:
    """构造指向某个 artifact 版本的引用，会话级和用户级使用不同的路径"""
    if session_id:
        return (
            f"artifact://apps/{app_name}/users/{user_id}/sessions/{session_id}"
            f"/artifacts/{filename}/versions/{version}"
        )
    return f"artifact://apps/{app_name}/users/{user_id}/artifacts/{filename}/versions/{version}"


def parse_artifact_uri(uri: str) -> Optional[ParsedArtifactUri]:
    if not uri:
        return None
    match = _ARTIFACT_URI.match(uri)
    if match:
        return ParsedArtifactUri(
            app_name=match.group(1),
            user_id=match.group(2),
            session_id=match.group(3),
            filename=match.group(4),
            version=int(match.group(5)),
        )
    match = _USER_ARTIFACT_URI.match(uri)
    if match:
        return ParsedArtifactUri(
            app_name=match.group(1),
            user_id=match.group(2),
            filename=match.group(3),
            version=int(match.group(4)),
        )
    return None


def is_artifact_ref(uri: Optional[str]) -> bool:
    return bool(uri) and uri.startswith('artifact://')

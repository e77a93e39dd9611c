"""认证配置 - 工具请求用户凭证时使用的数据结构"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuthCredential(BaseModel):
    """用户提供的凭证"""

    auth_type: str = 'api_key'
    api_key: Optional[str] = None
    token: Optional[str] = None
    extra: dict[str, Any] = Field(default_factory=dict)


class AuthConfig(BaseModel):
    """
    工具所需的认证配置

    - auth_scheme: 认证方式（api_key / oauth2 / openIdConnect ...）
    - raw_auth_credential: 工具自带的原始凭证（如 client id）
    - exchanged_auth_credential: 用户完成认证后回传的凭证
    - credential_key: 凭证在会话状态中的存储键
    """

    auth_scheme: str = 'api_key'
    raw_auth_credential: Optional[AuthCredential] = None
    exchanged_auth_credential: Optional[AuthCredential] = None
    credential_key: Optional[str] = None

    def get_credential_key(self) -> str:
        """返回稳定的存储键，未显式设置时根据 scheme 和原始凭证生成"""
        if self.credential_key:
            return self.credential_key
        raw = self.raw_auth_credential.model_dump() if self.raw_auth_credential else {}
        digest = hashlib.sha256(
            json.dumps(raw, sort_keys=True).encode('utf-8')
        ).hexdigest()[:16]
        return f"adk_{self.auth_scheme}_{digest}"

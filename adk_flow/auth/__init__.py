"""auth 模块 - 工具认证"""

from .auth_config import AuthConfig, AuthCredential

__all__ = [
    'AuthConfig',
    'AuthCredential',
]

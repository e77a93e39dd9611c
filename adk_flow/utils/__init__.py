"""通用工具函数"""

from .instructions_utils import inject_session_state

__all__ = ['inject_session_state']

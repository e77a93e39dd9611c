"""请求/响应处理器 - 每个模块导出 request_processor 和/或 response_processor 实例"""

from . import (
    agent_transfer,
    auth,
    basic,
    code_execution,
    contents,
    identity,
    instructions,
    nl_planning,
    output_schema,
    shared_memory,
)

__all__ = [
    'agent_transfer',
    'auth',
    'basic',
    'code_execution',
    'contents',
    'identity',
    'instructions',
    'nl_planning',
    'output_schema',
    'shared_memory',
]

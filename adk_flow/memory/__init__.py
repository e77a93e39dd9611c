"""
Memory 模块 - 为 Agent 提供跨会话记忆

- BaseMemoryService: 服务接口
- InMemoryMemoryService: 关键词匹配的内存实现（开发/测试）
- load_memory_tool: 模型主动调用的记忆检索工具
"""

from .base_memory_service import BaseMemoryService, SearchMemoryResponse
from .in_memory_memory_service import InMemoryMemoryService
from .load_memory_tool import LoadMemoryTool, load_memory_tool
from .memory_entry import MemoryEntry

__all__ = [
    'MemoryEntry',
    'SearchMemoryResponse',
    'BaseMemoryService',
    'InMemoryMemoryService',
    'LoadMemoryTool',
    'load_memory_tool',
]

"""
Memory 工具 - 让模型主动搜索记忆

与 shared_memory 请求处理器（每次请求前自动注入）互补：
load_memory 作为普通工具，由模型决定何时检索。
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from typing_extensions import override

from ..tools.base_tool import BaseTool
from ..tools.tool_context import ToolContext
from ..types import FunctionDeclaration

logger = logging.getLogger(__name__)


class LoadMemoryTool(BaseTool):
    """按查询加载当前用户的记忆"""

    name: str = 'load_memory'
    description: str = 'Loads the memory for the current user based on a query.'

    @override
    def get_declaration(self) -> Optional[FunctionDeclaration]:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters={
                'type': 'object',
                'properties': {
                    'query': {
                        'type': 'string',
                        'description': 'The query to load memories for',
                    },
                },
                'required': ['query'],
            },
        )

    @override
    async def run_async(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        query = args['query']
        logger.debug(f"[LoadMemoryTool] Searching memory: {query}")
        result = await tool_context.search_memory(query)
        return {
            'memories': [m.model_dump(mode='json') for m in result.memories],
            'count': len(result.memories),
        }


load_memory_tool = LoadMemoryTool()

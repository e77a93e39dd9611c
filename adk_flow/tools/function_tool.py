"""FunctionTool - 把普通 Python 函数包装为工具"""

from __future__ import annotations

import asyncio
import inspect
import re
import typing
from typing import Any, Callable, Optional

from typing_extensions import override

from ..types import FunctionDeclaration
from .base_tool import BaseTool
from .tool_context import ToolContext

_TOOL_CONTEXT_PARAM = 'tool_context'

_JSON_TYPES: dict[Any, str] = {
    str: 'string',
    int: 'integer',
    float: 'number',
    bool: 'boolean',
    list: 'array',
    tuple: 'array',
    dict: 'object',
}


def _annotation_to_schema(annotation: Any) -> dict[str, Any]:
    """把类型注解转换为 JSON Schema 片段"""
    if annotation is inspect.Parameter.empty or annotation is Any:
        return {}
    origin = typing.get_origin(annotation)
    if origin is typing.Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return _annotation_to_schema(args[0])
        return {}
    if origin in (list, tuple, set):
        schema: dict[str, Any] = {'type': 'array'}
        item_args = typing.get_args(annotation)
        if item_args:
            items = _annotation_to_schema(item_args[0])
            if items:
                schema['items'] = items
        return schema
    if origin is dict:
        return {'type': 'object'}
    if origin is typing.Literal:
        values = list(typing.get_args(annotation))
        schema = {'enum': values}
        if values and type(values[0]) in _JSON_TYPES:
            schema['type'] = _JSON_TYPES[type(values[0])]
        return schema
    if annotation in _JSON_TYPES:
        return {'type': _JSON_TYPES[annotation]}
    if hasattr(annotation, 'model_json_schema'):
        return annotation.model_json_schema()
    return {}


def _parse_docstring_params(docstring: str) -> dict[str, str]:
    """
    解析 docstring 中的参数描述

    支持 Google 风格:
      Args:
        city: 城市名称
        date: 查询日期

    和 Sphinx 风格:
      :param city: 城市名称
    """
    descriptions: dict[str, str] = {}
    if not docstring:
        return descriptions

    args_match = re.search(r'Args?:\s*\n((?:\s+\w+.*\n?)+)', docstring, re.IGNORECASE)
    if args_match:
        args_section = args_match.group(1)
        for match in re.finditer(
            r'^\s+(\w+)(?:\s*\([^)]*\))?:\s*(.+?)(?=\n\s+\w+(?:\s*\([^)]*\))?:|\n\n|\Z)',
            args_section,
            re.MULTILINE | re.DOTALL,
        ):
            descriptions[match.group(1)] = ' '.join(match.group(2).split())

    for match in re.finditer(r':param\s+(\w+):\s*(.+?)$', docstring, re.MULTILINE):
        descriptions[match.group(1)] = match.group(2).strip()

    return descriptions


def _summary_from_docstring(docstring: str) -> str:
    """docstring 中 Args/Returns 之前的部分"""
    summary = re.split(r'\n\s*(?:Args?|Returns?|Raises?):', docstring, maxsplit=1)[0]
    summary = re.split(r'\n\s*:param', summary, maxsplit=1)[0]
    return summary.strip()


class FunctionTool(BaseTool):
    """
    函数包装工具

    将普通 Python 函数（同步或异步）包装为 Tool，自动从签名和 docstring
    提取参数的 JSON Schema。函数声明了 tool_context 参数时会自动注入。

    同步函数在线程中执行，避免阻塞事件循环。
    """

    func: Callable[..., Any]
    parameters: Optional[dict[str, Any]] = None

    def __init__(self, func: Optional[Callable[..., Any]] = None, **data: Any):
        if func is not None:
            data['func'] = func
        target = data.get('func')
        if target is not None:
            doc = inspect.getdoc(target) or ''
            data.setdefault('name', getattr(target, '__name__', type(target).__name__))
            data.setdefault(
                'description',
                _summary_from_docstring(doc) or f"Function {data['name']}",
            )
        super().__init__(**data)

    def model_post_init(self, __context: Any) -> None:
        if self.parameters is None:
            self.parameters = self._extract_parameters()

    def _signature_params(self) -> list[inspect.Parameter]:
        return [
            p
            for p in inspect.signature(self.func).parameters.values()
            if p.name != _TOOL_CONTEXT_PARAM
            and p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        ]

    def _extract_parameters(self) -> dict[str, Any]:
        """从函数签名和 docstring 提取 JSON Schema"""
        descriptions = _parse_docstring_params(inspect.getdoc(self.func) or '')
        try:
            hints = typing.get_type_hints(self.func)
        except (NameError, TypeError):
            hints = {}

        properties: dict[str, Any] = {}
        required: list[str] = []
        for param in self._signature_params():
            schema = dict(_annotation_to_schema(hints.get(param.name, param.annotation)))
            if param.name in descriptions:
                schema['description'] = descriptions[param.name]
            if param.default is inspect.Parameter.empty:
                required.append(param.name)
            elif param.default is not None:
                schema['default'] = param.default
            properties[param.name] = schema

        result: dict[str, Any] = {'type': 'object', 'properties': properties}
        if required:
            result['required'] = required
        return result

    @override
    def get_declaration(self) -> Optional[FunctionDeclaration]:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    @override
    async def run_async(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        """异步执行工具函数，只传入函数签名里存在的参数"""
        signature = inspect.signature(self.func)
        accepts_kwargs = any(
            p.kind == inspect.Parameter.VAR_KEYWORD for p in signature.parameters.values()
        )
        kwargs = {
            k: v for k, v in args.items()
            if accepts_kwargs or (k in signature.parameters and k != _TOOL_CONTEXT_PARAM)
        }
        if _TOOL_CONTEXT_PARAM in signature.parameters:
            kwargs[_TOOL_CONTEXT_PARAM] = tool_context

        if inspect.iscoroutinefunction(self.func):
            return await self.func(**kwargs)
        result = await asyncio.to_thread(self.func, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result


class LongRunningFunctionTool(FunctionTool):
    """
    长时间运行的函数工具

    首次调用可以返回 None（例如只提交了一个审批请求），
    结果稍后由客户端以函数响应的形式补充。
    """

    is_long_running: bool = True

    @override
    def get_declaration(self) -> Optional[FunctionDeclaration]:
        declaration = super().get_declaration()
        if declaration is not None:
            declaration.description += (
                "\n\nNOTE: This is a long-running operation. Do not call this tool "
                "again if it has already returned some intermediate or pending status."
            )
        return declaration


def tool(
    name: Optional[str] = None,
    description: Optional[str] = None,
    *,
    is_long_running: bool = False,
    **options: Any,
) -> Callable[[Callable[..., Any]], FunctionTool]:
    """
    装饰器 - 将普通函数转换为 FunctionTool

    用法:
      @tool(description="搜索网页")
      def search(query: str) -> str:
        return f"搜索结果: {query}"
    """
    def decorator(func: Callable[..., Any]) -> FunctionTool:
        kwargs: dict[str, Any] = dict(options)
        if name:
            kwargs['name'] = name
        if description:
            kwargs['description'] = description
        cls = LongRunningFunctionTool if is_long_running else FunctionTool
        return cls(func, **kwargs)

    return decorator



"""指令模板 - 用会话状态和 artifact 填充 {var} 占位符"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from ..errors import ContextVariableNotFoundError
from ..sessions.state import State

if TYPE_CHECKING:
    from ..agents.readonly_context import ReadonlyContext

_PLACEHOLDER = re.compile(r'{[^{}]*}')
_IDENTIFIER = re.compile(r'^[a-zA-Z_$][a-zA-Z0-9_$]*$')
_ARTIFACT_PREFIX = 'artifact.'
_MISSING = object()


def _is_valid_state_name(name: str) -> bool:
    """合法的状态名：标识符，或 app:/user:/temp: 前缀加标识符"""
    parts = name.split(':')
    if len(parts) == 1:
        return bool(_IDENTIFIER.match(name))
    if len(parts) == 2 and parts[0] + ':' in (State.APP_PREFIX, State.USER_PREFIX, State.TEMP_PREFIX):
        return bool(_IDENTIFIER.match(parts[1]))
    return False


def _split_path(path: str) -> list[str]:
    """把 a.b[0]['c.d'] 拆分为 ['a', 'b', '0', 'c.d']"""
    parts: list[str] = []
    current = ''
    in_brackets = False
    quote = ''
    for char in path:
        if char == '[' and not quote:
            if current:
                parts.append(current)
                current = ''
            in_brackets = True
        elif char == ']' and in_brackets and not quote:
            if current:
                parts.append(current)
                current = ''
            in_brackets = False
        elif char in ('"', "'") and in_brackets:
            if quote == char:
                quote = ''
            elif not quote:
                quote = char
            else:
                current += char
        elif char == '.' and not in_brackets and not quote:
            if current:
                parts.append(current)
                current = ''
        else:
            current += char
    if current:
        parts.append(current)
    return parts


def _get_nested_value(obj: Any, path: str) -> Any:
    result = obj
    for part in _split_path(path):
        if result is None:
            return _MISSING
        if isinstance(result, (list, tuple)):
            try:
                result = result[int(part)]
            except (ValueError, IndexError):
                return _MISSING
        elif isinstance(result, dict):
            if part not in result:
                return _MISSING
            result = result[part]
        else:
            result = getattr(result, part, _MISSING)
            if result is _MISSING:
                return _MISSING
    return result


def _format_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    return str(value)


async def inject_session_state(template: str, readonly_context: 'ReadonlyContext') -> str:
    """
    用会话状态填充指令模板

    语法:
    - {var}: 读取 session.state[var]，不存在时抛出 ContextVariableNotFoundError
    - {var?}: 可选变量，不存在时替换为空字符串
    - {a.b[0].c}: 嵌套路径访问
    - {app:key} / {user:key} / {temp:key}: 带作用域前缀的状态
    - {artifact.name}: 读取 artifact 的文本内容

    不是合法状态名的占位符（例如 JSON 示例中的花括号）原样保留。
    """
    invocation_context = readonly_context._invocation_context

    async def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(0).strip('{}').strip()
        optional = False
        if var_name.endswith('?'):
            optional = True
            var_name = var_name[:-1]

        if var_name.startswith(_ARTIFACT_PREFIX):
            filename = var_name[len(_ARTIFACT_PREFIX):]
            if invocation_context.artifact_service is None:
                raise ValueError("Artifact service is not initialized.")
            artifact = await invocation_context.artifact_service.load_artifact(
                app_name=invocation_context.app_name,
                user_id=invocation_context.user_id,
                session_id=invocation_context.session.id,
                filename=filename,
            )
            if artifact is None:
                if optional:
                    return ''
                raise ContextVariableNotFoundError(f"Artifact {filename} not found.")
            if artifact.text is not None:
                return artifact.text
            if artifact.inline_data is not None:
                return artifact.inline_data.data.decode('utf-8', errors='replace')
            return str(artifact)

        nested = '.' in var_name or '[' in var_name
        root = re.split(r'[.\[]', var_name, maxsplit=1)[0] if nested else var_name
        if not _is_valid_state_name(root):
            return match.group(0)

        state = invocation_context.session.state
        if nested:
            value = _get_nested_value(state, var_name)
        else:
            value = state.get(var_name, _MISSING)

        if value is _MISSING:
            if optional:
                return ''
            raise ContextVariableNotFoundError(f"Context variable not found: `{var_name}`.")
        return _format_value(value)

    result: list[str] = []
    last_end = 0
    for match in _PLACEHOLDER.finditer(template):
        result.append(template[last_end:match.start()])
        result.append(await replace_match(match))
        last_end = match.end()
    result.append(template[last_end:])
    return ''.join(result)

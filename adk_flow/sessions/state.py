"""State - 双层键值存储（已提交值 + 未提交增量）"""

from __future__ import annotations

from typing import Any


class State:
    """
    会话状态视图

    - value: 已提交的状态（会话当前状态）
    - delta: 本次调用中尚未提交的写入，随事件的 state_delta 一起持久化

    写入同时更新两层，读取优先读取 delta，从而在事件追加前即可读到自己的写入。

    键前缀决定作用域:
    - 无前缀: 会话级
    - app: 同一应用的所有会话共享
    - user: 同一用户的所有会话共享
    - temp: 仅在本次调用中有效，不会持久化
    """

    APP_PREFIX = "app:"
    USER_PREFIX = "user:"
    TEMP_PREFIX = "temp:"

    def __init__(self, value: dict[str, Any], delta: dict[str, Any]):
        self._value = value
        self._delta = delta

    def __getitem__(self, key: str) -> Any:
        if key in self._delta:
            return self._delta[key]
        return self._value[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._value[key] = value
        self._delta[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._value or key in self._delta

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self:
            return default
        return self[key]

    def set(self, key: str, value: Any) -> None:
        self[key] = value

    def has_delta(self) -> bool:
        return bool(self._delta)

    def update(self, delta: dict[str, Any]) -> None:
        self._value.update(delta)
        self._delta.update(delta)

    def to_dict(self) -> dict[str, Any]:
        result = {}
        result.update(self._value)
        result.update(self._delta)
        return result

"""Session - 一次完整对话的事件和状态"""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..events import Event


class Session(BaseModel):
    """
    会话 - 维护一次完整对话的所有事件和状态

    核心设计理念:
    - Session 由 (app_name, user_id, id) 唯一标识
    - state 是 app/user/session 三个作用域合并后的视图
    - 只能通过 SessionService.append_event 修改
    """

    model_config = ConfigDict(extra='forbid', arbitrary_types_allowed=True)

    id: str
    app_name: str
    user_id: str
    state: dict[str, Any] = Field(default_factory=dict)
    events: list[Event] = Field(default_factory=list)
    last_update_time: float = Field(default_factory=time.time)

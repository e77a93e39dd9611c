"""Planner 模块 - 请求前注入规划指令，响应后整理推理内容"""

from .base_planner import BasePlanner
from .built_in_planner import BuiltInPlanner
from .plan_re_act_planner import PlanReActPlanner

__all__ = [
    'BasePlanner',
    'BuiltInPlanner',
    'PlanReActPlanner',
]

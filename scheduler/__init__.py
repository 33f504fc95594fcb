"""
Scheduler module - Dependency-aware engine for asynchronous tasks.
调度器模块 —— 感知依赖关系的异步任务执行引擎。

Components:
  - registry.py:      TaskRegistry (task table, fallback table, pending set)
  - state_machine.py: Task state transition rules
  - engine.py:        TaskScheduler (wave-by-wave run loop + fallback substitution)

模块组成：
  - registry.py:      TaskRegistry（任务表、替代表、待处理集合）
  - state_machine.py: 任务状态转移规则
  - engine.py:        TaskScheduler（按波次运行的主循环 + 失败替代）
"""

from scheduler.registry import TaskRegistry, UndefinedTaskError        # 任务注册表
from scheduler.state_machine import InvalidTransitionError, TaskStateMachine  # 任务状态机
from scheduler.engine import SchedulerBusyError, TaskScheduler         # 调度引擎

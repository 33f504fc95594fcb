"""
Pydantic data models for the task scheduler.
Defines the task lifecycle states, task definitions and run reports.
任务调度器的 Pydantic 数据模型。
定义任务生命周期状态、任务定义以及运行报告。
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field


class TaskState(str, Enum):
    """
    Task lifecycle states, managed by TaskStateMachine.
    任务生命周期状态，由 TaskStateMachine 管理合法转移。

    Transition graph:
    转移图：
        PENDING -> COMPLETED
                -> FAILED -> COMPLETED (re-executed as a fallback) / FAILED
    Only TaskRegistry.define() moves a task back to PENDING.
    只有 TaskRegistry.define() 能把任务重置为 PENDING。
    """
    PENDING = "pending"       # 等待依赖完成或等待调度
    COMPLETED = "completed"   # 执行成功
    FAILED = "failed"         # 执行失败（可能已由 fallback 接管）


class TaskDefinition(BaseModel):
    """
    A registered unit of asynchronous work.
    一个已注册的异步工作单元。
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(description="Unique task identifier")                   # 任务唯一名称
    executable: Callable[[], Any] = Field(description="Zero-argument callable; may return an awaitable")
    dependencies: list[str] = Field(default_factory=list, description="Names of prerequisite tasks")  # 前置任务名称（按声明顺序）


class RunReport(BaseModel):
    """
    Summary of one scheduler run.
    一次调度运行的汇总报告。

    `results` is the same mapping returned by TaskScheduler.run().
    Callers use `stalled` / `stalled_tasks` to tell a full success
    apart from a run that halted on a cycle or an unsatisfiable dependency.
    调用方通过 `stalled` / `stalled_tasks` 区分「全部成功」与「因循环或无法满足的依赖而中止」。
    """
    results: dict[str, Any] = Field(default_factory=dict)
    waves: list[list[str]] = Field(default_factory=list, description="Task names dispatched per wave")  # 每一轮并发执行的任务名
    stalled: bool = False
    stalled_tasks: list[str] = Field(default_factory=list)
    failed_tasks: list[str] = Field(default_factory=list)
    recovered_tasks: dict[str, str] = Field(
        default_factory=dict,
        description="Failed task name -> fallback task that completed in its place",  # 失败任务 -> 成功接管的 fallback 任务
    )
    elapsed: float = 0.0  # 秒

    @property
    def succeeded(self) -> bool:
        """True when every task resolved and each failure was recovered by a fallback."""
        return not self.stalled and all(name in self.recovered_tasks for name in self.failed_tasks)

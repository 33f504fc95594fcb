"""
TaskRegistry - Task definitions, fallback table and run bookkeeping.
TaskRegistry —— 任务定义、失败替代表以及运行期簿记。

The TaskRegistry holds:
  - tasks:     dict of TaskDefinition, keyed by name
  - states:    name -> TaskState, mutated only through TaskStateMachine
  - fallbacks: name -> substitute task name (one per task, last one wins)
  - pending:   names not yet resolved, in registration order

TaskRegistry 包含：
  - tasks:     以名称为 key 的 TaskDefinition 字典
  - states:    名称 -> TaskState，仅通过 TaskStateMachine 修改
  - fallbacks: 名称 -> 替代任务名（每个任务一个，后注册者覆盖）
  - pending:   尚未解决的任务名，保持注册顺序

Registration is pure data entry: duplicate names, self-dependencies and
dependencies on names that were never defined are all accepted here and
only show up at run time as a stall.
注册只是数据录入：重复名称、自依赖、依赖未定义任务在此都不会报错，
只会在运行时表现为「停滞」。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from schema import TaskDefinition, TaskState

logger = logging.getLogger(__name__)


class UndefinedTaskError(KeyError):
    """
    Raised when execution is requested for a name that was never defined.
    当请求执行一个从未定义的任务名时抛出。
    """

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Task '{self.name}' is not defined."


class TaskRegistry:
    """
    Owns the task table, fallback table, state map and pending set of one scheduler.
    持有单个调度器的任务表、替代表、状态表和待处理集合。
    """

    def __init__(self) -> None:
        self.tasks: dict[str, TaskDefinition] = {}
        self.states: dict[str, TaskState] = {}
        self.fallbacks: dict[str, str] = {}
        # dict keys as an insertion-ordered set
        self.pending: dict[str, None] = {}

    # ------------------------------------------------------------------
    # Registration
    # 注册
    # ------------------------------------------------------------------

    def define(
        self,
        name: str,
        executable: Callable[[], Any],
        dependencies: Iterable[str] = (),
    ) -> TaskDefinition:
        """
        Store (or overwrite) a task and reset it to PENDING.
        存储（或覆盖）任务并将其重置为 PENDING。

        The dependency sequence is copied, so later changes to the caller's
        list do not affect the stored task.
        依赖序列会被复制，调用方之后修改自己的列表不会影响已存储的任务。
        """
        if not callable(executable):
            raise TypeError(f"Task '{name}': executable must be callable, got {type(executable).__name__}")

        if name in self.tasks:
            logger.debug("[Registry] Redefining task %s", name)

        task = TaskDefinition(name=name, executable=executable, dependencies=list(dependencies))
        self.tasks[name] = task
        self.states[name] = TaskState.PENDING
        self.pending[name] = None
        return task

    def register_fallback(self, original: str, substitute: str) -> None:
        """
        Map `original` to the task that runs in its place if it fails.
        为 `original` 指定失败时执行的替代任务（覆盖旧映射）。
        """
        previous = self.fallbacks.get(original)
        if previous is not None and previous != substitute:
            logger.debug("[Registry] Fallback for %s replaced: %s -> %s", original, previous, substitute)
        self.fallbacks[original] = substitute

    # ------------------------------------------------------------------
    # Queries
    # 查询
    # ------------------------------------------------------------------

    def has(self, name: str) -> bool:
        return name in self.tasks

    def get(self, name: str) -> TaskDefinition:
        task = self.tasks.get(name)
        if task is None:
            raise UndefinedTaskError(name)
        return task

    def dependencies_of(self, name: str) -> list[str]:
        return list(self.get(name).dependencies)

    def fallback_for(self, name: str) -> str | None:
        return self.fallbacks.get(name)

    def ready_tasks(self) -> list[str]:
        """
        Return pending names whose every dependency is COMPLETED.
        返回所有依赖均已 COMPLETED 的待处理任务名。

        A dependency on a name that was never defined has no state, so it is
        never COMPLETED and the dependent task never becomes ready.
        依赖一个未定义的名称时，该名称没有状态，永远不会是 COMPLETED。
        """
        ready = []
        for name in self.pending:
            deps = self.get(name).dependencies
            if all(self.states.get(d) == TaskState.COMPLETED for d in deps):
                ready.append(name)
        return ready

    def resolve(self, name: str) -> None:
        """Remove `name` from the pending set."""
        self.pending.pop(name, None)

    def names_in_state(self, state: TaskState) -> list[str]:
        return [name for name, s in self.states.items() if s == state]

    def snapshot(self) -> dict[str, TaskState]:
        """Independent copy of the state map."""
        return dict(self.states)

    def summary(self) -> str:
        """
        One-line status counts, used in log messages.
        单行状态统计，用于日志输出。
        """
        counts: dict[str, int] = {}
        for state in self.states.values():
            counts[state.value] = counts.get(state.value, 0) + 1
        parts = [f"{k}={v}" for k, v in sorted(counts.items())]
        return f"Tasks({len(self.tasks)}): {', '.join(parts)}; pending set={len(self.pending)}"

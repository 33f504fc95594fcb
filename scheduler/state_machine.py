"""
Task State Machine - Validates and enforces task state transitions.
任务状态机 —— 校验并强制执行任务状态的合法转移。

The transition table is the single source of truth for what state changes
a run may apply. A run never sends a task back to PENDING; only
TaskRegistry.define() does that, by re-registering the task.
转移表是运行期间合法状态变化的唯一权威来源。
运行过程中任务永远不会回到 PENDING；只有 TaskRegistry.define() 重新注册任务时才会重置。

Transition graph:
转移图：
    PENDING ──> COMPLETED                       (happy path / 正常路径)
            ──> FAILED ──> COMPLETED / FAILED   (re-executed as another task's fallback)
    COMPLETED ──> COMPLETED / FAILED            (re-executed as another task's fallback)
"""

from __future__ import annotations

import logging
from typing import Callable

from schema import TaskState

logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """
    Raised when an illegal state transition is attempted.
    当尝试非法状态转移时抛出此异常。
    """
    pass


# A task that already ran can run again when another task names it as its
# fallback, so COMPLETED and FAILED are not terminal within a run.
# 已执行过的任务可能作为其他任务的 fallback 再次执行，因此 COMPLETED / FAILED 在运行中并非终态。
VALID_TRANSITIONS: dict[TaskState, set[TaskState]] = {
    TaskState.PENDING:   {TaskState.COMPLETED, TaskState.FAILED},
    TaskState.COMPLETED: {TaskState.COMPLETED, TaskState.FAILED},
    TaskState.FAILED:    {TaskState.COMPLETED, TaskState.FAILED},
}


class TaskStateMachine:
    """
    Validates and applies task state transitions on a state map.
    在状态表上校验并应用任务状态转移。

    Provides a single `transition()` method that:
      1. Checks the VALID_TRANSITIONS table
      2. Writes the new state into the shared state map
      3. Fires an optional callback for UI/logging

    提供唯一的 `transition()` 方法：
      1. 查询 VALID_TRANSITIONS 表校验合法性
      2. 将新状态写入共享状态表
      3. 触发可选回调函数（用于 UI 更新或日志）
    """

    def __init__(
        self,
        states: dict[str, TaskState],
        on_transition: Callable[[str, TaskState, TaskState], None] | None = None,
    ):
        """
        Args:
            states:        The registry's name -> state map, mutated in place.
            on_transition: Optional callback(name, old_state, new_state).
            states:        注册表中的 名称 -> 状态 映射，原地修改。
            on_transition: 可选回调 callback(任务名, 旧状态, 新状态)。
        """
        self._states = states
        self._on_transition = on_transition

    def can_transition(self, name: str, new_state: TaskState) -> bool:
        current = self._states.get(name)
        if current is None:
            return False
        return new_state in VALID_TRANSITIONS[current]

    def transition(self, name: str, new_state: TaskState) -> None:
        """
        Apply a state transition. Raises InvalidTransitionError if illegal.
        应用状态转移。若转移非法则抛出 InvalidTransitionError。
        """
        if not self.can_transition(name, new_state):
            current = self._states.get(name)
            valid = VALID_TRANSITIONS.get(current, set()) if current is not None else set()
            raise InvalidTransitionError(
                f"Task '{name}': cannot transition from "
                f"{current.value if current is not None else 'undefined'} to {new_state.value}. "
                f"Valid targets: {sorted(s.value for s in valid)}"
            )

        old_state = self._states[name]
        self._states[name] = new_state

        logger.debug("[SM] %s: %s -> %s", name, old_state.value, new_state.value)

        if self._on_transition:
            try:
                self._on_transition(name, old_state, new_state)
            except Exception:
                logger.exception("[SM] on_transition callback failed for %s", name)

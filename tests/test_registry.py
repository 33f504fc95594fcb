"""
TaskRegistry 与 TaskStateMachine 单元测试：
  1. 注册语义（覆盖、依赖复制、不做校验）
  2. 就绪集合计算
  3. 状态机合法转移
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from scheduler.registry import TaskRegistry, UndefinedTaskError
from scheduler.state_machine import InvalidTransitionError, TaskStateMachine, VALID_TRANSITIONS
from schema import RunReport, TaskState


async def _noop():
    return None


class TestRegistration:

    def test_define_sets_pending(self):
        registry = TaskRegistry()
        task = registry.define("a", _noop, ["b"])

        assert task.name == "a"
        assert task.dependencies == ["b"]
        assert registry.states["a"] == TaskState.PENDING
        assert list(registry.pending) == ["a"]

    def test_redefine_overwrites(self):
        registry = TaskRegistry()
        registry.define("a", _noop, ["x"])
        registry.states["a"] = TaskState.COMPLETED
        registry.resolve("a")

        replacement = MagicMock()
        registry.define("a", replacement)

        assert registry.get("a").executable is replacement
        assert registry.dependencies_of("a") == []
        assert registry.states["a"] == TaskState.PENDING
        assert "a" in registry.pending

    def test_unknown_and_self_dependencies_accepted(self):
        registry = TaskRegistry()
        registry.define("a", _noop, ["a", "nowhere"])
        assert registry.dependencies_of("a") == ["a", "nowhere"]

    def test_dependencies_of_returns_copy(self):
        registry = TaskRegistry()
        registry.define("a", _noop, ["b"])
        registry.dependencies_of("a").append("c")
        assert registry.dependencies_of("a") == ["b"]

    def test_fallback_overwrite(self):
        registry = TaskRegistry()
        registry.register_fallback("a", "b")
        registry.register_fallback("a", "c")
        assert registry.fallback_for("a") == "c"
        assert registry.fallback_for("b") is None

    def test_get_undefined(self):
        registry = TaskRegistry()
        with pytest.raises(UndefinedTaskError) as exc_info:
            registry.get("ghost")
        assert "ghost" in str(exc_info.value)
        assert exc_info.value.name == "ghost"
        assert isinstance(exc_info.value, KeyError)


class TestReadySet:

    def test_ready_tasks_follow_states(self):
        registry = TaskRegistry()
        registry.define("root", _noop)
        registry.define("child", _noop, ["root"])
        registry.define("orphan", _noop, ["missing"])

        assert registry.ready_tasks() == ["root"]

        registry.states["root"] = TaskState.COMPLETED
        registry.resolve("root")
        assert registry.ready_tasks() == ["child"]

    def test_failed_dependency_never_ready(self):
        registry = TaskRegistry()
        registry.define("root", _noop)
        registry.define("child", _noop, ["root"])
        registry.states["root"] = TaskState.FAILED
        registry.resolve("root")

        assert registry.ready_tasks() == []

    def test_summary_counts_states(self):
        registry = TaskRegistry()
        registry.define("a", _noop)
        registry.define("b", _noop)
        registry.states["a"] = TaskState.COMPLETED

        summary = registry.summary()
        assert "Tasks(2)" in summary
        assert "completed=1" in summary
        assert "pending=1" in summary

    def test_names_in_state(self):
        registry = TaskRegistry()
        registry.define("a", _noop)
        registry.define("b", _noop)
        registry.states["b"] = TaskState.FAILED
        assert registry.names_in_state(TaskState.FAILED) == ["b"]


class TestStateMachine:

    def test_run_never_returns_to_pending(self):
        for targets in VALID_TRANSITIONS.values():
            assert TaskState.PENDING not in targets

        states = {"a": TaskState.COMPLETED}
        sm = TaskStateMachine(states)
        with pytest.raises(InvalidTransitionError):
            sm.transition("a", TaskState.PENDING)
        assert states["a"] == TaskState.COMPLETED

    def test_transition_updates_map_and_fires_callback(self):
        states = {"a": TaskState.PENDING}
        callback = MagicMock()
        sm = TaskStateMachine(states, on_transition=callback)

        sm.transition("a", TaskState.FAILED)
        sm.transition("a", TaskState.COMPLETED)

        assert states["a"] == TaskState.COMPLETED
        callback.assert_any_call("a", TaskState.PENDING, TaskState.FAILED)
        callback.assert_any_call("a", TaskState.FAILED, TaskState.COMPLETED)

    def test_unknown_task_rejected(self):
        sm = TaskStateMachine({})
        assert not sm.can_transition("ghost", TaskState.COMPLETED)
        with pytest.raises(InvalidTransitionError):
            sm.transition("ghost", TaskState.COMPLETED)

    def test_callback_error_is_contained(self):
        states = {"a": TaskState.PENDING}
        sm = TaskStateMachine(states, on_transition=MagicMock(side_effect=RuntimeError("ui")))
        sm.transition("a", TaskState.COMPLETED)
        assert states["a"] == TaskState.COMPLETED


class TestRunReport:

    def test_succeeded_requires_recovered_failures(self):
        assert RunReport().succeeded
        assert not RunReport(stalled=True).succeeded
        assert not RunReport(failed_tasks=["a"]).succeeded
        assert RunReport(failed_tasks=["a"], recovered_tasks={"a": "f"}).succeeded

"""
Task Scheduler - Runs registered tasks wave by wave.
任务调度器 —— 按「波次」执行已注册的任务。

Each iteration of the run loop is one wave:
  1. Find all pending tasks whose dependencies are COMPLETED (ready set)
  2. If nothing is ready but tasks are still pending -> stall, stop the loop
  3. Execute the ready set in parallel via asyncio.gather
  4. Each task leaves the pending set as soon as its own path resolves
     (success, unrecovered failure, or fallback outcome)
  5. Repeat until the pending set is empty

运行循环的每次迭代就是一个波次：
  1. 找出所有依赖均已 COMPLETED 的待处理任务（就绪集合）
  2. 若没有就绪任务但仍有待处理任务 -> 停滞，结束循环
  3. 通过 asyncio.gather 并行执行就绪集合
  4. 每个任务在自身执行路径结束后立即移出待处理集合
     （成功、不可恢复的失败、或 fallback 的结果）
  5. 重复，直到待处理集合为空

A stall (dependency cycle, or a dependency that can never complete) is a
controlled halt: run() returns the partial results instead of raising.
停滞（依赖循环，或永远无法完成的依赖）是受控中止：run() 返回部分结果而不抛异常。

One scheduler instance supports one run at a time; overlapping runs raise
SchedulerBusyError.
一个调度器实例同一时间只支持一次运行；重叠运行会抛出 SchedulerBusyError。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Iterable

import config
from scheduler.registry import TaskRegistry, UndefinedTaskError
from scheduler.state_machine import TaskStateMachine
from schema import RunReport, TaskDefinition, TaskState

logger = logging.getLogger(__name__)


class SchedulerBusyError(RuntimeError):
    """
    Raised when run() is called while the same scheduler is already running.
    当同一调度器正在运行时再次调用 run() 抛出。
    """
    pass


class TaskScheduler:
    """
    Dependency-aware scheduler for asynchronous tasks with single-step fallbacks.
    支持依赖关系与失败替代任务的异步任务调度器。

    Usage:
        scheduler = TaskScheduler()
        scheduler.define("validate", validate)
        scheduler.define("process", process, ["validate"])
        scheduler.register_fallback("process", "process_manually")
        results = await scheduler.run()
        states = scheduler.current_state()
    """

    def __init__(
        self,
        max_parallel: int | None = None,
        max_fallback_depth: int | None = None,
        on_event: Callable[[str, Any], None] | None = None,
    ):
        self._registry = TaskRegistry()
        self._max_parallel = max_parallel if max_parallel is not None else config.MAX_PARALLEL_TASKS
        self._max_fallback_depth = (
            max_fallback_depth if max_fallback_depth is not None else config.MAX_FALLBACK_DEPTH
        )
        self._emit_cb = on_event
        self._sm = TaskStateMachine(self._registry.states, on_transition=self._on_task_transition)
        self._running = False
        self._semaphore: asyncio.Semaphore | None = None
        self.last_report: RunReport | None = None

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
        Register (or overwrite) a task. Its state becomes PENDING.
        注册（或覆盖）一个任务，其状态变为 PENDING。
        """
        return self._registry.define(name, executable, dependencies)

    def register_fallback(self, original: str, substitute: str) -> None:
        """
        Run `substitute` in place of `original` when `original` fails.
        当 `original` 失败时，改为执行 `substitute`。
        """
        self._registry.register_fallback(original, substitute)

    def current_state(self) -> dict[str, TaskState]:
        """
        Return a fresh copy of the name -> state map.
        返回 名称 -> 状态 映射的全新副本，修改它不会影响调度器内部状态。
        """
        return self._registry.snapshot()

    # ------------------------------------------------------------------
    # Main run loop
    # 主运行循环
    # ------------------------------------------------------------------

    async def run(self) -> dict[str, Any]:
        """
        Execute every pending task, wave by wave, and return the results map.
        按波次执行所有待处理任务，并返回结果映射。

        The returned mapping only holds values of executions that ended
        COMPLETED. A recovered failure's value sits under the fallback's name.
        返回的映射只包含以 COMPLETED 结束的执行结果；被恢复的失败，其结果记录在 fallback 任务名下。
        """
        if self._running:
            raise SchedulerBusyError("Scheduler is already running; concurrent runs are not supported.")
        self._running = True
        self._semaphore = asyncio.Semaphore(self._max_parallel) if self._max_parallel > 0 else None

        registry = self._registry
        results: dict[str, Any] = {}
        report = RunReport()
        started = time.monotonic()
        try:
            while registry.pending:
                ready = registry.ready_tasks()
                if not ready:
                    # 没有就绪任务但仍有待处理任务 -> 循环依赖或依赖无法满足
                    report.stalled = True
                    report.stalled_tasks = list(registry.pending)
                    logger.warning(
                        "[Scheduler] Cycle detected or unresolved dependency; halting. Stuck: %s",
                        ", ".join(report.stalled_tasks),
                    )
                    self._emit("stall", {"pending": list(report.stalled_tasks)})
                    break

                report.waves.append(ready)
                wave = len(report.waves)
                self._emit("wave", {"wave": wave, "tasks": list(ready)})
                logger.info("[Scheduler] Wave %d: %s", wave, ", ".join(ready))

                # --- Fan-out / fan-in barrier ---
                # --- 扇出 / 扇入屏障：本轮所有任务结束后才进入下一轮 ---
                await self._dispatch_wave(ready, results, report)

                logger.info("[Scheduler] Wave %d done. %s", wave, registry.summary())
        finally:
            self._running = False
            self._semaphore = None

        report.results = results
        # only failures from this run that were not later overturned by a re-execution
        report.failed_tasks = [n for n in report.failed_tasks if registry.states.get(n) == TaskState.FAILED]
        report.elapsed = time.monotonic() - started
        self.last_report = report
        self._emit("run_finished", {"report": report})
        return results

    async def _dispatch_wave(self, ready: list[str], results: dict[str, Any], report: RunReport) -> None:
        """
        Run one wave and wait for all of it.
        执行一个波次并等待其全部结束。

        If any member raises, the rest of the wave is cancelled and awaited
        before the error propagates, so nothing keeps running after run() exits.
        若任一成员抛出异常，先取消并等待本轮其余任务，再向上抛出。
        """
        tasks = [asyncio.ensure_future(self._run_and_resolve(name, results, report)) for name in ready]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run_and_resolve(self, name: str, results: dict[str, Any], report: RunReport) -> None:
        chain: list[str] = []
        outcome = await self._execute_task(name, results, chain)
        # every name on the chain failed, except the one that completed
        failed = chain[:-1] if outcome is not None else chain
        for failed_name in failed:
            if failed_name not in report.failed_tasks:
                report.failed_tasks.append(failed_name)
            if outcome is not None:
                report.recovered_tasks[failed_name] = outcome
        self._registry.resolve(name)

    # ------------------------------------------------------------------
    # Task execution
    # 任务执行
    # ------------------------------------------------------------------

    async def _execute_task(
        self,
        name: str,
        results: dict[str, Any],
        chain: list[str] | None = None,
    ) -> str | None:
        """
        Run one task and, on failure, its fallback chain.
        执行单个任务；失败时沿 fallback 链执行替代任务。

        Returns the name of the task whose execution completed (the task
        itself, or the fallback that recovered it), or None when the path
        ended in an unrecovered failure.
        返回最终成功完成的任务名（任务本身或接管它的 fallback），
        若该路径以不可恢复的失败结束则返回 None。

        Raises UndefinedTaskError when `name` was never defined; this aborts
        the whole run.
        若 `name` 从未定义则抛出 UndefinedTaskError，整个运行随之中止。
        """
        chain = chain if chain is not None else []
        task = self._registry.get(name)
        chain.append(name)

        try:
            value = await self._invoke(task)
        except Exception as exc:
            # a FAILED task never keeps a value from an earlier execution in this run
            results.pop(name, None)
            self._sm.transition(name, TaskState.FAILED)
            logger.error("[Scheduler] Task '%s' failed: %s", name, exc)
            self._emit("task_failed", {"task": name, "error": exc})
            return await self._run_fallback(name, results, chain)

        results[name] = value
        self._sm.transition(name, TaskState.COMPLETED)
        self._emit("task_completed", {"task": name, "result": value})
        return name

    async def _run_fallback(self, name: str, results: dict[str, Any], chain: list[str]) -> str | None:
        substitute = self._registry.fallback_for(name)
        if substitute is None:
            return None
        if not self._registry.has(substitute):
            logger.warning("[Scheduler] Fallback '%s' for '%s' is not defined; failure is final", substitute, name)
            return None
        if substitute in chain:
            logger.warning(
                "[Scheduler] Fallback cycle %s -> %s; failure is final",
                " -> ".join(chain), substitute,
            )
            return None
        if len(chain) > self._max_fallback_depth:
            logger.warning(
                "[Scheduler] Fallback chain from '%s' exceeds depth %d; failure is final",
                chain[0], self._max_fallback_depth,
            )
            return None

        logger.warning("[Scheduler] Running fallback task '%s' for '%s'", substitute, name)
        self._emit("fallback", {"task": name, "fallback": substitute})
        return await self._execute_task(substitute, results, chain)

    async def _invoke(self, task: TaskDefinition) -> Any:
        """
        Call the executable, awaiting its result when it returns an awaitable.
        调用任务函数；若返回可等待对象则等待其结果。
        """
        if self._semaphore is None:
            return await self._call(task)
        async with self._semaphore:
            return await self._call(task)

    @staticmethod
    async def _call(task: TaskDefinition) -> Any:
        value = task.executable()
        if inspect.isawaitable(value):
            value = await value
        return value

    # ------------------------------------------------------------------
    # Event helpers
    # 事件辅助方法
    # ------------------------------------------------------------------

    def _emit(self, event_type: str, data: Any) -> None:
        if self._emit_cb is None:
            return
        try:
            self._emit_cb(event_type, data)
        except Exception:
            logger.exception("[Scheduler] on_event callback failed for %s", event_type)

    def _on_task_transition(self, name: str, old: TaskState, new: TaskState) -> None:
        """
        Callback from state machine, forwarded as an event.
        状态机的转移回调，转发为事件供 UI 展示。
        """
        self._emit("task_transition", {"task": name, "from": old.value, "to": new.value})


__all__ = ["SchedulerBusyError", "TaskScheduler", "UndefinedTaskError"]

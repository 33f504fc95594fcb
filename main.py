"""
Task Scheduler Demo - CLI entry point.
任务调度器演示 —— 命令行入口。

Runs the example flows with a rich console UI that shows each wave, every
state transition, fallbacks and the final state table.
通过 Rich 控制台 UI 运行示例流程，实时展示每个波次、每次状态转移、fallback 以及最终状态表。

Usage:
    python main.py              # run all examples
    python main.py parallel     # bottle validation with parallel reads
    python main.py fallback     # image load with manual-mode fallback
    python main.py -v           # debug logging
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from scheduler import TaskScheduler
from schema import RunReport, TaskState

console = Console()

# State -> Rich style mapping
# 任务状态 -> Rich 样式映射
_STATE_STYLES = {
    "pending": "dim",
    "completed": "green",
    "failed": "red",
}


# ======================================================================
# Event callback
# 事件回调
# ======================================================================

def on_event(event_type: str, data: Any) -> None:
    """
    Render scheduler events on the console.
    在控制台渲染调度器事件。
    """
    if event_type == "wave":
        console.print(f"\n[bold cyan]Wave {data['wave']}[/bold cyan]: {', '.join(data['tasks'])}")

    elif event_type == "task_transition":
        style = _STATE_STYLES.get(data["to"], "white")
        console.print(f"  [cyan]{data['task']}[/cyan] {data['from']} -> [{style}]{data['to']}[/{style}]")

    elif event_type == "fallback":
        console.print(f"  [yellow]fallback[/yellow] {data['task']} -> {data['fallback']}")

    elif event_type == "stall":
        console.print(f"  [bold red]Stalled[/bold red]: {', '.join(data['pending'])} still pending")


def _build_state_table(states: dict[str, TaskState]) -> Table:
    table = Table(title="Task State")
    table.add_column("Task", style="cyan")
    table.add_column("State")
    for name, state in states.items():
        style = _STATE_STYLES.get(state.value, "white")
        table.add_row(name, f"[{style}]{state.value}[/{style}]")
    return table


def _show_outcome(title: str, results: dict[str, Any], scheduler: TaskScheduler) -> None:
    console.print(_build_state_table(scheduler.current_state()))
    report: RunReport | None = scheduler.last_report
    border = "green" if report is not None and report.succeeded else "yellow"
    lines = [f"{name}: {value!r}" for name, value in results.items()] or ["(no results)"]
    if report is not None:
        lines.append(f"\nwaves={len(report.waves)} stalled={report.stalled} elapsed={report.elapsed:.2f}s")
    console.print(Panel("\n".join(lines), title=f"[bold]{title}[/bold]", border_style=border))


# ======================================================================
# Examples
# 示例
# ======================================================================

async def run_parallel_example() -> dict[str, Any]:
    """
    Normal flow: both reads become ready together once validation finishes.
    retry_qr is the fallback for read_qr; it has no dependencies, so it also
    runs on its own in the first wave.
    正常流程：瓶子校验完成后，标签读取与二维码读取在同一波次并行执行。
    retry_qr 是 read_qr 的 fallback，没有依赖，因此也会在第一波中独立执行。
    """
    scheduler = TaskScheduler(on_event=on_event)

    async def validate_bottle() -> bool:
        return True

    async def read_label() -> str:
        await asyncio.sleep(1.0)  # 模拟延迟
        return "Label"

    async def read_qr() -> str:
        await asyncio.sleep(0.8)
        return "QRCode"

    async def retry_qr() -> str:
        return "QR Manual"

    async def merge() -> str:
        return "Final result"

    scheduler.define("validate_bottle", validate_bottle)
    scheduler.define("read_label", read_label, ["validate_bottle"])
    scheduler.define("read_qr", read_qr, ["validate_bottle"])
    scheduler.register_fallback("read_qr", "retry_qr")
    scheduler.define("retry_qr", retry_qr)
    scheduler.define("merge", merge, ["read_label", "read_qr"])

    results = await scheduler.run()
    _show_outcome("Parallel flow", results, scheduler)
    return results


async def run_fallback_example() -> dict[str, Any]:
    """
    Failure flow: load_image fails and manual_mode runs in its place.
    process depends on load_image itself, so it never becomes ready.
    失败流程：load_image 失败后执行 manual_mode；process 依赖 load_image 本身，因此永远不会就绪。
    """
    scheduler = TaskScheduler(on_event=on_event)

    async def load_image() -> str:
        raise RuntimeError("Could not load the image")

    async def manual_mode() -> str:
        return "ManualOK"

    async def process() -> str:
        return "Processed"

    scheduler.define("load_image", load_image)
    scheduler.define("manual_mode", manual_mode)
    scheduler.register_fallback("load_image", "manual_mode")
    scheduler.define("process", process, ["load_image"])

    results = await scheduler.run()
    _show_outcome("Fallback flow", results, scheduler)
    return results


EXAMPLES = {
    "parallel": run_parallel_example,
    "fallback": run_fallback_example,
}


# ======================================================================
# Main
# 主函数
# ======================================================================

def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging with rich handler.
    使用 Rich 处理器配置日志系统；verbose=True 时启用 DEBUG 级别。
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
    )


async def run_examples(names: list[str]) -> None:
    for name in names:
        console.rule(f"[bold blue]{name}[/bold blue]")
        await EXAMPLES[name]()


def main() -> None:
    """
    程序入口：解析命令行参数，决定运行哪些示例。
    - 无位置参数：运行全部示例
    - -v / --verbose：启用调试日志
    """
    verbose = "--verbose" in sys.argv or "-v" in sys.argv
    setup_logging(verbose)

    args = [a for a in sys.argv[1:] if not a.startswith("-")]
    names = list(EXAMPLES) if not args or args == ["all"] else args
    unknown = [n for n in names if n not in EXAMPLES]
    if unknown:
        console.print(f"[red]Unknown example(s): {', '.join(unknown)}[/red]. Choose from: {', '.join(EXAMPLES)}, all")
        sys.exit(2)

    asyncio.run(run_examples(names))


if __name__ == "__main__":
    main()

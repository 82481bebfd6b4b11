"""Rich console output: one line per sample, one summary panel per run."""

from __future__ import annotations

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import BenchmarkResult, Sample


def format_sample_line(sample: Sample) -> str:
    """Rich-markup line for a recorded sample."""
    err_style = "red" if sample.tasks.failed else "green"
    return (
        f"[cyan]Level {sample.level}[/cyan]: "
        f"{sample.tasks.successful}/{sample.tasks.attempted} ok, "
        f"p50={sample.latency_ms.p50:.1f}ms p95={sample.latency_ms.p95:.1f}ms, "
        f"[{err_style}]err={sample.tasks.error_rate * 100:.1f}%[/{err_style}], "
        f"cpu={sample.host.cpu_usage * 100:.0f}% mem={sample.host.memory_usage * 100:.0f}%"
    )


def build_levels_table(result: BenchmarkResult) -> Table:
    table = Table(title="Per-level samples", show_lines=False)
    table.add_column("Level", justify="right", style="cyan")
    table.add_column("Attempted", justify="right")
    table.add_column("Error %", justify="right")
    table.add_column("P50 (ms)", justify="right")
    table.add_column("P95 (ms)", justify="right")
    table.add_column("P99 (ms)", justify="right")
    table.add_column("CPU %", justify="right")
    table.add_column("Mem %", justify="right")
    for s in result.samples:
        table.add_row(
            str(s.level),
            str(s.tasks.attempted),
            f"{s.tasks.error_rate * 100:.2f}",
            f"{s.latency_ms.p50:.1f}",
            f"{s.latency_ms.p95:.1f}",
            f"{s.latency_ms.p99:.1f}",
            f"{s.host.cpu_usage * 100:.0f}",
            f"{s.host.memory_usage * 100:.0f}",
        )
    return table


def build_summary_table(result: BenchmarkResult) -> Panel:
    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="cyan")
    grid.add_column(style="green")
    grid.add_row("Maximum sustainable concurrency", str(result.msc))
    grid.add_row("Stop reason", result.stop_reason)
    grid.add_row("Levels executed", ", ".join(str(lv) for lv in result.levels_executed) or "-")
    if result.baseline is not None:
        grid.add_row("Baseline p95 (ms)", f"{result.baseline.p95:.1f}")
    grid.add_row("Total tasks", str(result.overall.attempted))
    grid.add_row("Overall p95 (ms)", f"{result.overall.p95:.1f}")
    if result.memory is not None:
        leak = "[red]possible leak[/red]" if result.memory.leak_detected else "ok"
        grid.add_row(
            "Harness memory (MB)",
            f"{result.memory.current_mb:.1f} (peak {result.memory.peak_mb:.1f}, {result.memory.growth_percent:+.1f}%) {leak}",
        )

    title = Text()
    title.append("mscbench ", style="bold magenta")
    title.append(f"| {result.started_at} -> {result.finished_at}", style="dim")
    border = "red" if result.verdict.detected else "blue"
    return Panel(Group(grid, build_levels_table(result)), title=title, border_style=border)

"""CLI entry point for mscbench.

Uses uvloop for the event loop when it is installed.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import sys
from pathlib import Path
from typing import Any, Coroutine

_HAS_UVLOOP = False
try:
    import uvloop
    _HAS_UVLOOP = True
except ImportError:
    pass

from . import __version__
from .config import default_config_dict, config_from_dict, load_config, parse_ramp, validate_config, write_default_config
from .exceptions import MscConfigError, MscError
from .logging_config import LOG_FORMAT_ENV, LOG_FORMATS, LOG_LEVEL_ENV, configure_logging, get_logger
from .models import BenchmarkConfig, WorkloadMode
from .ramp_runner import run_benchmark
from .workload import load_workload_document

logger = get_logger("cli")


def _run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    if _HAS_UVLOOP:
        return uvloop.run(coro)
    return asyncio.run(coro)


def _apply_overrides(base: BenchmarkConfig, args: argparse.Namespace) -> BenchmarkConfig:
    """Return a copy of ``base`` with every CLI override applied, re-validated."""
    workload = dataclasses.replace(base.workload)
    thresholds = dataclasses.replace(base.thresholds)
    output = dataclasses.replace(base.output)
    ramp = base.ramp

    if args.urls:
        workload.urls = list(args.urls)
    if args.mode is not None:
        workload.mode = WorkloadMode(args.mode)
    if args.reps is not None:
        workload.repetitions = args.reps
    if args.ramp is not None:
        ramp = parse_ramp(args.ramp)
    if args.latency_threshold is not None:
        thresholds.latency_multiplier = args.latency_threshold
    if args.cpu_threshold is not None:
        thresholds.cpu_utilization = args.cpu_threshold
    if args.mem_threshold is not None:
        thresholds.memory_utilization = args.mem_threshold
    if args.min_level_seconds is not None:
        output.min_level_seconds = args.min_level_seconds
    if args.max_runtime is not None:
        output.max_runtime_minutes = args.max_runtime
    if args.out_dir is not None:
        output.dir = args.out_dir

    if args.workload:
        doc = load_workload_document(args.workload)
        workload.urls = list(doc.urls)
        plan = doc.ramp_plan()
        if plan is not None:
            ramp = plan

    merged = dataclasses.replace(base, workload=workload, ramp=ramp, thresholds=thresholds, output=output)
    validate_config(merged)
    if not merged.workload.urls:
        raise MscConfigError("At least one URL is required (--url or workload.urls)")
    return merged


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mscbench",
        description="Ramp concurrency against a set of URLs until performance degrades, "
        "and report the Maximum Sustainable Concurrency.",
    )
    parser.add_argument("-f", "--config", default=None, help="Path to YAML config (defaults used when omitted)")
    parser.add_argument("--init", metavar="PATH", default=None, help="Write a default config file to PATH and exit")
    parser.add_argument("-u", "--url", action="append", dest="urls", metavar="URL", help="Target URL (repeatable)")
    parser.add_argument("--ramp", default=None, help="Ramp: exp:1,2,4 | linear:MAX | custom:1,3,5")
    parser.add_argument("--mode", choices=[m.value for m in WorkloadMode], default=None, help="Workload mode")
    parser.add_argument("--reps", type=int, default=None, help="Batches per concurrency level")
    parser.add_argument("--latency-threshold", type=float, default=None, metavar="X", dest="latency_threshold",
                        help="Degrade when p95 exceeds X times the baseline p95")
    parser.add_argument("--cpu-threshold", type=float, default=None, dest="cpu_threshold",
                        help="Degrade when host CPU exceeds this fraction")
    parser.add_argument("--mem-threshold", type=float, default=None, dest="mem_threshold",
                        help="Degrade when host memory exceeds this fraction")
    parser.add_argument("--min-level-seconds", type=float, default=None, dest="min_level_seconds",
                        help="Minimum seconds spent per level (padded by cooldown)")
    parser.add_argument("--max-runtime", type=float, default=None, metavar="MIN", dest="max_runtime",
                        help="Stop starting new levels after MIN minutes")
    parser.add_argument("-o", "--out-dir", default=None, dest="out_dir", help="Directory for JSONL/JSON output")
    parser.add_argument("--workload", metavar="PATH", default=None,
                        help="Custom workload document (urls/concurrency/parameters) from an external plugin")
    parser.add_argument("--no-live", action="store_true", help="Disable console output (headless mode)")
    parser.add_argument("--log-level", default=None, dest="log_level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help=f"Log level (default: ${LOG_LEVEL_ENV} or INFO)")
    parser.add_argument("--log-format", default=None, dest="log_format", choices=list(LOG_FORMATS),
                        help=f"Log format on stderr (default: ${LOG_FORMAT_ENV} or text)")
    parser.add_argument("-v", "--version", action="version", version=f"mscbench {__version__}")
    return parser


def main() -> int:
    args = build_parser().parse_args()
    if args.log_level or args.log_format:
        configure_logging(args.log_level, args.log_format)

    def handle_error(e: BaseException) -> int:
        if isinstance(e, MscError):
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        logger.exception("Unexpected error")
        print("Error: An unexpected error occurred. Check logs for details.", file=sys.stderr)
        return 1

    if args.init:
        path = write_default_config(args.init)
        print(f"Created default configuration: {path}")
        return 0

    try:
        base = load_config(args.config) if args.config else config_from_dict(default_config_dict())
        config = _apply_overrides(base, args)
    except MscError as e:
        return handle_error(e)

    try:
        result = _run_async(run_benchmark(config, live=not args.no_live, report_dir=config.output.dir))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    except Exception as e:
        return handle_error(e)
    logger.debug("Run complete: msc=%d", result.msc)
    return 0


if __name__ == "__main__":
    sys.exit(main())

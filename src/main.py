# src/main.py — v1
"""CLI entry point — run, plan, show commands.

Usage:
    stratrun run <definition.json> [--preset NAME ...] [--retry-failed]
    stratrun plan <definition.json> [--export PATH]
    stratrun show <run_id>

Configuration (store backend, provider, limits) comes from the
environment / .env, see config.settings.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from stratrun.version import __version__

if TYPE_CHECKING:
    from stratrun.api.models import RunDetail
    from stratrun.config.settings import Settings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings(args.verbose)
    except Exception as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="stratrun",
        description=f"stratrun v{__version__} — Multi-step image generation strategies",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Load a strategy definition and run it",
    )
    p_run.add_argument("definition", type=Path, help="Path to definition JSON")
    p_run.add_argument(
        "-p", "--preset", action="append", default=[], metavar="NAME",
        help="Input preset to run with (repeatable, one run per preset)",
    )
    p_run.add_argument(
        "--retry-failed", action="store_true",
        help="Retry failed runs once after they finish",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- plan ---
    p_plan = subparsers.add_parser(
        "plan", help="Validate a definition and print its execution levels",
    )
    p_plan.add_argument("definition", type=Path, help="Path to definition JSON")
    p_plan.add_argument(
        "--export", type=Path, default=None, metavar="PATH",
        help="Write the flow graph as node-link JSON",
    )
    p_plan.set_defaults(func=_cmd_plan)

    # --- show ---
    p_show = subparsers.add_parser(
        "show", help="Show a persisted run (sqlite record store)",
    )
    p_show.add_argument("run_id", help="Run ID")
    p_show.set_defaults(func=_cmd_show)

    return parser


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Run a strategy once per selected preset."""
    from stratrun.api.facade import StrategyRunService
    from stratrun.api.models import StrategyDefinition

    definition_path: Path = args.definition
    if not definition_path.exists():
        logger.error("Definition not found: %s", definition_path)
        return 1

    definition = StrategyDefinition.from_file(definition_path)
    service = StrategyRunService.from_settings(settings)
    try:
        loaded = await service.load_definition(definition)

        unknown = [name for name in args.preset if name not in loaded.presets]
        if unknown:
            logger.error("Unknown preset(s): %s", ", ".join(unknown))
            return 1

        if args.preset:
            await service.start_runs(
                loaded.strategy.id, [loaded.presets[name].id for name in args.preset]
            )
        else:
            await service.start_run(loaded.strategy.id)
        details = await service.wait_all()

        if args.retry_failed:
            failed = [d for d in details if d.status == "failed"]
            for detail in failed:
                logger.info("Retrying run %s (failed steps %s)", detail.run_id, detail.failed_steps)
                await service.retry_run(detail.run_id)
            if failed:
                retried = {d.run_id: d for d in await service.wait_all()}
                details = [retried.get(d.run_id, d) for d in details]

        for detail in details:
            _print_run_detail(detail)
        return 0 if all(d.status == "completed" for d in details) else 1
    finally:
        await service.close()


async def _cmd_plan(args: argparse.Namespace, settings: Settings) -> int:
    """Validate a definition without running it."""
    from stratrun.api.facade import StrategyRunService
    from stratrun.api.models import StrategyDefinition
    from stratrun.pipeline.dag_builder import build_dependency_map, build_execution_plan
    from stratrun.pipeline.flow_graph import export_flow_graph
    from stratrun.providers.mock_provider import MockImageProvider
    from stratrun.storage.memory_store import MemoryRecordStore

    definition_path: Path = args.definition
    if not definition_path.exists():
        logger.error("Definition not found: %s", definition_path)
        return 1

    definition = StrategyDefinition.from_file(definition_path)
    service = StrategyRunService(MemoryRecordStore(), MockImageProvider(), settings)
    loaded = await service.load_definition(definition)
    plan = build_execution_plan(build_dependency_map(loaded.steps))
    by_order = {s.step_order: s for s in loaded.steps}

    print(f"\nStrategy: {loaded.strategy.name}")
    print(f"  Steps:  {plan.total_steps}")
    print(f"  Levels: {len(plan.stages)}")
    for level, stage in enumerate(plan.stages, start=1):
        print(f"  Level {level}:")
        for order in stage:
            step = by_order[order]
            refs = ", ".join(f"{k}={v}" for k, v in step.upstream_references().items())
            suffix = f"  <- {refs}" if refs else ""
            print(f"    {order}. {step.name or f'Step {order}'} [{step.model}]{suffix}")

    if args.export:
        path = export_flow_graph(loaded.steps, args.export)
        print(f"\nFlow graph written to {path}")
    return 0


async def _cmd_show(args: argparse.Namespace, settings: Settings) -> int:
    """Print a run stored in the sqlite record store."""
    from stratrun.api.facade import StrategyRunService
    from stratrun.storage.base_record_store import RecordNotFoundError

    if settings.record_store_backend != "sqlite":
        logger.error("show requires RECORD_STORE_BACKEND=sqlite")
        return 1

    service = StrategyRunService.from_settings(settings)
    try:
        detail = await service.get_run(args.run_id)
    except RecordNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        await service.close()
    _print_run_detail(detail)
    return 0


def _print_run_detail(detail: RunDetail) -> None:
    """Print a human-readable summary of a RunDetail."""
    print(f"\nRun {detail.run_id}: {detail.status}")
    if detail.strategy_name:
        print(f"  Strategy:  {detail.strategy_name}")
    if detail.input_preset_id:
        print(f"  Preset:    {detail.input_preset_id}")
    for step in detail.steps:
        label = step.name or f"Step {step.step_order}"
        line = f"  {step.step_order}. {label:<24} {step.status:<9}"
        if step.execution_time_ms is not None:
            line += f" {step.execution_time_ms}ms"
        if step.output_url:
            line += f"  {step.output_url}"
        if step.error:
            line += f"  ({step.error})"
        print(line)


def _load_settings(verbose: bool) -> Settings:
    """Load settings and configure logging for CLI usage."""
    from stratrun.config.settings import load_settings
    from stratrun.logging.logger import setup_logging_from_settings

    settings = load_settings(log_level="DEBUG") if verbose else load_settings()
    setup_logging_from_settings(settings, stream=sys.stderr)
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return settings


if __name__ == "__main__":
    sys.exit(main())

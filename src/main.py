# src/main.py — v3
"""CLI entry point: run, resolve, versions, seed commands.

Usage:
    genstage run <batch.json>
    genstage resolve <stage> <capability> [--project P]
    genstage versions <stage> <prompt_id>
    genstage seed <prompts.json>

Events of ``run`` go to stdout as JSON lines; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from genstage.version import __version__

if TYPE_CHECKING:
    from genstage.config.settings import Settings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from genstage.config.settings import ConfigurationError, load_settings

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    _setup_logging(settings, args.verbose)

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
        prog="genstage",
        description=f"genstage v{__version__} — staged generation orchestrator",
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
    p_run = subparsers.add_parser("run", help="Run a batch request file")
    p_run.add_argument("batch_file", type=Path, help="JSON BatchRequest")
    p_run.set_defaults(func=_cmd_run)

    # --- resolve ---
    p_resolve = subparsers.add_parser(
        "resolve", help="Show the effective prompt and model for a stage",
    )
    p_resolve.add_argument("stage", help="Stage type (e.g. stage_2_themes)")
    p_resolve.add_argument("capability", choices=["text", "image", "video"])
    p_resolve.add_argument("-p", "--project", default=None, help="Project id")
    p_resolve.set_defaults(func=_cmd_resolve)

    # --- versions ---
    p_versions = subparsers.add_parser("versions", help="List prompt versions")
    p_versions.add_argument("stage", help="Stage type")
    p_versions.add_argument("prompt_id", help="Prompt id")
    p_versions.set_defaults(func=_cmd_versions)

    # --- seed ---
    p_seed = subparsers.add_parser(
        "seed", help="Seed stage prompts from a JSON file",
    )
    p_seed.add_argument(
        "prompts_file", type=Path,
        help='JSON object: {"<stage_type>": [<prompt>, ...]}',
    )
    p_seed.set_defaults(func=_cmd_seed)

    return parser


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Execute a batch and stream its events."""
    from genstage.api.facade import GenStageService
    from genstage.core.errors import PlannerValidationError
    from genstage.engine.events import JsonLinesSink

    batch_file: Path = args.batch_file
    if not batch_file.exists():
        logger.error("File not found: %s", batch_file)
        return 1

    service = GenStageService.build(settings)
    request = json.loads(batch_file.read_text(encoding="utf-8"))
    try:
        summary = await service.run_batch(request, JsonLinesSink(sys.stdout))
    except PlannerValidationError as exc:
        logger.error("Batch rejected [%s]: %s", exc.kind, exc.message)
        return 1

    print(
        f"\nBatch {summary.batch_id}: {summary.succeeded}/{summary.total_items} succeeded, "
        f"{summary.failed} failed, {summary.duration_ms}ms",
        file=sys.stderr,
    )
    return 0 if summary.success else 1


async def _cmd_resolve(args: argparse.Namespace, settings: Settings) -> int:
    """Display the effective template and model."""
    from genstage.api.facade import GenStageService
    from genstage.core.errors import GenerationError

    service = GenStageService.build(settings)
    try:
        ref = await service.resolve_prompt(args.stage, args.capability, args.project)
        config = await service.models.resolve_config(args.project, args.stage, args.capability)
    except GenerationError as exc:
        logger.error("Resolution failed [%s]: %s", exc.kind, exc.message)
        return 1

    print(f"\nResolution for {args.stage}/{args.capability}:")
    print(f"  Project:  {args.project or '-'}")
    print(f"  Prompt:   {ref.template.id} ({ref.source})")
    print(f"  Model:    {config.key} ({config.source})")
    preview = ref.template.user_prompt[:200]
    if len(ref.template.user_prompt) > 200:
        preview += "..."
    print(f"  User:     {preview}")
    return 0


async def _cmd_versions(args: argparse.Namespace, settings: Settings) -> int:
    """List versions of a prompt, newest first."""
    from genstage.api.facade import GenStageService

    service = GenStageService.build(settings)
    versions = await service.templates.get_version_history(args.stage, args.prompt_id)
    if not versions:
        print(f"No versions for {args.stage}/{args.prompt_id}")
        return 1

    print(f"\nVersions of {args.stage}/{args.prompt_id}:")
    for v in versions:
        marker = "*" if v.is_chosen else " "
        print(f" {marker} v{v.version:<4} {v.created_at:%Y-%m-%d %H:%M}  {v.version_note}")
    return 0


async def _cmd_seed(args: argparse.Namespace, settings: Settings) -> int:
    """Insert prompts that are not present yet."""
    from genstage.api.facade import GenStageService

    prompts_file: Path = args.prompts_file
    if not prompts_file.exists():
        logger.error("File not found: %s", prompts_file)
        return 1

    data = json.loads(prompts_file.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        logger.error("Seed file must be a JSON object keyed by stage type")
        return 1

    service = GenStageService.build(settings)
    total = 0
    for stage_type, prompts in data.items():
        added = await service.templates.seed_stage(stage_type, prompts)
        print(f"  {stage_type}: {len(added)} added")
        total += len(added)
    print(f"\nSeeded {total} prompts")
    return 0


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from genstage.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())

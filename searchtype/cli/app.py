from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Callable, Coroutine
from typing import Any, NoReturn

from searchtype.cli import output as out
from searchtype.config import load_config, load_visualizer_config
from searchtype.errors import (
    ConfigValidationError,
    PipelineAborted,
    SearchTypeError,
)
from searchtype.logs import periodic_flush, setup_logging
from searchtype.saver import UnknownPolicy
from searchtype.shutdown import Shutdown

DESCRIPTION = """\
searchtype: sort search queries by the kind of match they produce

Each query is sent to the exact-match service and filed under one of
Preset, ExtendSearch or Merger, depending on the parameters of the
returned catalog value. Results land next to the queries file:

    <Category>/queries.csv     text and catalog value per query
    <Category>/list.presets    sorted preset ids

The number of requests in flight is capped by the
SEARCHTYPE_CONCURRENCY_LIMIT environment variable (default 100)."""

EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def _fail_config(exc: ConfigValidationError) -> NoReturn:
    out.error("Invalid configuration")
    for problem in exc.problems:
        out.kv("-", problem, indent=4)
    sys.exit(EXIT_CONFIG)


async def _run_guarded(coro: Coroutine[Any, Any, Any], shutdown: Shutdown) -> Any:
    """Run *coro* with SIGINT/SIGTERM wired to *shutdown*; map errors to exit codes."""
    shutdown.install_signal_handlers()
    try:
        return await coro
    except PipelineAborted as exc:
        out.failure(exc)
        sys.exit(EXIT_INTERRUPTED)
    except (SearchTypeError, OSError) as exc:
        out.failure(exc)
        sys.exit(EXIT_FAILURE)
    finally:
        shutdown.remove_signal_handlers()


# ── classify ────────────────────────────────────────────────────────


async def cmd_classify(args: argparse.Namespace) -> None:
    from searchtype.executor import ignore_messages
    from searchtype.pipeline import run_pipeline

    try:
        cfg = load_config(
            args.config,
            queries_path=args.queries,
            url=args.url,
            rps=args.rps,
            retries=args.retry,
            timeout=args.timeout,
            field_delimiter=args.csv_separator,
            preset_delimiter=args.presets_separator,
            unknown_policy=args.unknown_policy,
            output_dir=args.output_dir,
            log_period=args.log_period,
        ).validate()
    except ConfigValidationError as exc:
        _fail_config(exc)

    handler = setup_logging(verbose=args.verbose)
    ignore = ignore_messages(*args.ignore_error) if args.ignore_error else None
    shutdown = Shutdown()

    async with periodic_flush(handler, cfg.log_period):
        result = await _run_guarded(
            run_pipeline(cfg, shutdown=shutdown, ignore=ignore), shutdown
        )

    out.header("Queries classified")
    out.kv("Read", result.queries_read)
    for category, count in sorted(result.saved.items()):
        out.kv(category, count)
    out.kv("Skipped", result.skipped)
    out.kv("Output", cfg.resolved_output_dir)
    out.success("Done")


# ── visualize ───────────────────────────────────────────────────────


async def cmd_visualize(args: argparse.Namespace) -> None:
    from searchtype.visualizer import run_visualizer
    from searchtype.visualizer.screenshots import PlaywrightScreenshotter

    try:
        cfg = load_visualizer_config(
            args.config,
            queries_path=args.queries,
            bucket_url=args.bucket_url,
            visualizer_url=args.visualizer_url,
            results_path=args.results_path,
            version_name=args.version_name,
            rps=args.rps,
            retries=args.retry,
            timeout=args.timeout,
            csv_separator=args.csv_separator,
            screenshot_width=args.screenshot_width,
            screenshot_height=args.screenshot_height,
            screenshot_timeout=args.screenshot_timeout,
            pool_size=args.browser_pool_size,
            log_period=args.log_period,
        ).validate()
    except ConfigValidationError as exc:
        _fail_config(exc)

    handler = setup_logging(verbose=args.verbose)
    shutdown = Shutdown()

    async with periodic_flush(handler, cfg.log_period):
        async with PlaywrightScreenshotter(
            cfg.visualizer_url,
            width=cfg.screenshot_width,
            height=cfg.screenshot_height,
            timeout=cfg.screenshot_timeout,
            pool_size=cfg.pool_size,
        ) as screenshotter:
            result = await _run_guarded(
                run_visualizer(cfg, screenshotter=screenshotter, shutdown=shutdown),
                shutdown,
            )

    out.header("Presets visualized")
    out.kv("Rows", result.rows_read)
    out.kv("Rendered", result.rendered)
    out.kv("Results", cfg.resolved_results_path)
    out.success("Done")


# ── parser ──────────────────────────────────────────────────────────


def _add_request_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--rps", type=float, help="Requests per second (default 1)")
    p.add_argument(
        "--retry", type=int, help="Retries per request on network errors (default 0)"
    )
    p.add_argument(
        "--timeout", type=float, help="Per-request timeout in seconds (default 3)"
    )
    p.add_argument(
        "--log-period",
        type=float,
        help="Seconds between flushes of the buffered log (default 3)",
    )
    p.add_argument("--config", help="TOML config file")
    p.add_argument(
        "-v", "--verbose", action="store_true", help="Log retries and every query read"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="searchtype",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", title="commands")

    p = sub.add_parser("classify", help="Sort queries into category files")
    p.add_argument("queries", help="File with one search query per line")
    p.add_argument("--url", help="Exact-match service URL (may carry extra params)")
    p.add_argument(
        "--csv-separator", help="Field separator of queries.csv (default: tab)"
    )
    p.add_argument(
        "--presets-separator", help="Separator of list.presets (default: ',')"
    )
    p.add_argument(
        "--unknown-policy",
        choices=[policy.value for policy in UnknownPolicy],
        help="What to do with queries of unknown category (default: skip)",
    )
    p.add_argument("--output-dir", help="Where category folders are written")
    p.add_argument(
        "--ignore-error",
        action="append",
        default=[],
        metavar="MESSAGE",
        help="Service error message to log and skip instead of failing (repeatable)",
    )
    _add_request_args(p)

    p = sub.add_parser("visualize", help="Screenshot the cards behind preset queries")
    p.add_argument("queries", help="Delimited file with text and query columns")
    p.add_argument("--bucket-url", help="Bucket server URL")
    p.add_argument("--visualizer-url", help="Visualizer page URL")
    p.add_argument("--version-name", help="Prefix of the result files")
    p.add_argument(
        "--results-path", help="Where results go (default: next to the queries)"
    )
    p.add_argument(
        "--csv-separator", help="Column separator of the queries file (default: tab)"
    )
    p.add_argument("--screenshot-width", type=int)
    p.add_argument("--screenshot-height", type=int)
    p.add_argument("--screenshot-timeout", type=float)
    p.add_argument("--browser-pool-size", type=int)
    _add_request_args(p)

    return parser


_CommandHandler = Callable[[argparse.Namespace], Coroutine[Any, Any, None]]

_COMMAND_MAP: dict[str, _CommandHandler] = {
    "classify": cmd_classify,
    "visualize": cmd_visualize,
}


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    handler = _COMMAND_MAP.get(args.command)
    if handler is None:
        parser.print_help()
        return

    try:
        asyncio.run(handler(args))
    except KeyboardInterrupt:
        print()
        sys.exit(EXIT_INTERRUPTED)

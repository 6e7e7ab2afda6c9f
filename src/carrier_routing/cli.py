# src/carrier_routing/cli.py
from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

from .config.env import get_app_env, get_origin_address, get_routing_rules
from .config.logging_config import default_log_path_for_input, get_logger
from .io.paths import derive_output_paths


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="carrier-routing",
        description="Route orders between the discount carrier and market carriers.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    r = sub.add_parser("route", help="Route every row of an orders workbook into <input>_routed.xlsx.")
    r.add_argument("input", type=Path, help="Path to input .xlsx file.")
    r.add_argument(
        "--execute",
        action="store_true",
        help="Create shipments with the winning carrier (default: quote and decide only).",
    )
    r.add_argument(
        "--retry-store",
        type=Path,
        default=None,
        help="Retry job database: SQLite file or SQLAlchemy URL (default: <input>_retry.db when --execute is set).",
    )
    r.add_argument(
        "--audit-log",
        type=Path,
        default=None,
        help="Append carrier call audit records (JSON lines) to this file.",
    )

    w = sub.add_parser("retry-worker", help="Process due retry jobs from the retry job database.")
    w.add_argument("--store", required=True, help="Retry job database (SQLite file or SQLAlchemy URL) shared with `route --execute`.")
    w.add_argument("--once", action="store_true", help="Process due jobs once and exit.")
    w.add_argument("--interval", type=float, default=5.0, help="Polling interval in seconds. Default: 5")
    w.add_argument("--audit-log", type=Path, default=None, help="Audit JSON lines file.")
    w.add_argument("--log-file", type=Path, default=None, help="Log file (default: <store>.log next to a file store, retry-worker.log for a URL).")

    for sp in (r, w):
        sp.add_argument(
            "--no-console",
            action="store_true",
            help="Disable console logging (file logging remains).",
        )
        sp.add_argument(
            "--log-level",
            default="INFO",
            help="Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO",
        )
        sp.add_argument(
            "--strict-env",
            action="store_true",
            help="Require DISCOUNT_CLIENT_CODE/DISCOUNT_API_KEY to be present; otherwise exit 2.",
        )
    return p


def build_executors(env_cfg, origin, *, audit_sink=None, retry_queue=None, logger=None) -> dict:
    """ResilientExecutor per registered adapter that its credentials configure, keyed by adapter_id."""
    # Importing the carrier modules registers their adapters
    from .api import discount, fedex, shipengine  # noqa: F401
    from .api.adapters import registered_adapters
    from .pipelines.executor import ResilientExecutor

    adapters = []
    for adapter_id, cls in registered_adapters().items():
        adapter = cls.from_env(env_cfg, origin)
        if adapter is None:
            if logger is not None:
                logger.debug("Carrier adapter %s not configured", adapter_id)
            continue
        adapters.append(adapter)

    out = {
        a.adapter_id: ResilientExecutor(a, audit_sink=audit_sink, retry_queue=retry_queue)
        for a in adapters
    }
    if logger is not None:
        logger.info("Carrier adapters: %s", ", ".join(out))
    return out


def _audit_sink(path):
    if path is None:
        return None
    from .io.audit import JsonlAuditSink
    return JsonlAuditSink(path)


def _run_route(args, logger, env_cfg) -> int:
    try:
        routed_path, _ = derive_output_paths(args.input)
    except FileNotFoundError:
        logger.error("Input missing: %s", args.input)
        return 2

    from .pipelines.batch_router import BatchRouter
    from .pipelines.order_router import OrderRouter
    from .pipelines.rate_normalizer import RateNormalizer
    from .pipelines.retry_queue import RetryQueue
    from .pipelines.retry_store import SqlRetryStore
    from .rules.eligibility import EligibilityChecker
    from .rules.routing import RoutingDecisionEngine

    try:
        rules = get_routing_rules()
    except RuntimeError as e:
        logger.error("Environment error: %s", e)
        return 2

    origin = get_origin_address()
    audit = _audit_sink(args.audit_log)
    queue = None
    if args.execute:
        store_path = args.retry_store or args.input.with_name(f"{args.input.stem}_retry.db")
        queue = RetryQueue(SqlRetryStore(store_path))
        logger.info("Retry store: %s", store_path)

    executors = build_executors(env_cfg, origin, audit_sink=audit, retry_queue=queue, logger=logger)
    market = [ex for ex in executors.values() if not ex.adapter.is_discount]
    router = OrderRouter(
        normalizer=RateNormalizer(market, origin=origin, margin_percentage=rules.margin_percentage,
                                  audit_sink=audit),
        executors=executors,
        checker=EligibilityChecker(rules),
        engine=RoutingDecisionEngine(rules),
        analytics_sink=audit,
    )

    try:
        result = BatchRouter(logger, router, execute=args.execute).process(args.input, routed_path)
    except FileNotFoundError as e:
        logger.error("Input missing: %s", e)
        return 2
    except ValueError as e:
        logger.error("Invalid input workbook: %s", e)
        return 2
    except Exception as e:
        logger.exception("Failed to route workbook: %s", e)
        return 1

    logger.info("Routed %d row(s), %d with errors → %s", result["rows"], result["errors"], result["output_path"])
    return 0


def _run_retry_worker(args, logger, env_cfg) -> int:
    from .pipelines.executor import register_executor_handlers
    from sqlalchemy.exc import SQLAlchemyError

    from .pipelines.retry_queue import RetryQueue, RetryScheduler
    from .pipelines.retry_store import SqlRetryStore

    try:
        queue = RetryQueue(SqlRetryStore(args.store))
    except (SQLAlchemyError, ValueError) as e:
        logger.error("Unreadable retry store %s: %s", args.store, e)
        return 2

    executors = build_executors(env_cfg, get_origin_address(), audit_sink=_audit_sink(args.audit_log),
                                retry_queue=queue, logger=logger)
    for ex in executors.values():
        register_executor_handlers(queue, ex)

    scheduler = RetryScheduler(queue, interval=args.interval)
    if args.once:
        processed = scheduler.run_once()
        logger.info("Processed %d job(s); queue: %s", len(processed), queue.stats())
        return 0

    scheduler.start()
    try:
        while scheduler.is_running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Stopping retry worker")
    finally:
        scheduler.stop(timeout=args.interval + 5)
    logger.info("Queue: %s", queue.stats())
    return 0


def main(argv: list[str] | None = None) -> int:
    try:
        args = build_parser().parse_args(argv)
    except SystemExit as e:
        return int(e.code or 0)

    if args.command == "route":
        if not args.input.exists():
            print(f"error: input file not found: {args.input}", file=sys.stderr)
            return 2
        _, log_path = derive_output_paths(args.input)
    else:
        if args.log_file:
            log_path = args.log_file
        elif "://" in args.store:
            log_path = Path("retry-worker.log")
        else:
            log_path = default_log_path_for_input(args.store)

    # Configure logging (file + optional console)
    logger = get_logger(
        "carrier_routing",
        level=args.log_level,
        console=not args.no_console,
        log_file=log_path,
    )
    logger.debug("Logger initialized.")

    # Load env (don’t fail unless user asked for strict)
    try:
        env_cfg = get_app_env(strict=args.strict_env, logger=logger)
        if args.strict_env:
            logger.info("Strict env passed; discount carrier credentials present.")
        else:
            logger.debug("Env loaded (non-strict).")
    except RuntimeError as e:
        logger.error("Environment error: %s", e)
        return 2

    if args.command == "route":
        logger.info("Input: %s", args.input)
        return _run_route(args, logger, env_cfg)
    return _run_retry_worker(args, logger, env_cfg)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

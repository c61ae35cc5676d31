"""Command-line entrypoint for the weak map stress runner."""

from __future__ import annotations

import argparse
import contextlib
import json
import logging
from logging.handlers import RotatingFileHandler
from typing import Sequence

from .config import CLEANER_MODES, load_app_config
from .contracts.error import InvariantError, guard_cli
from .metrics import CleanupMetrics, render_snapshot
from .stress import run_stress

# --------------------------------------------------------------------
# Logging
# --------------------------------------------------------------------
logger = logging.getLogger("weaklockfree")

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"
DEFAULT_LOG_MAX_BYTES = 5_000_000
DEFAULT_LOG_BACKUP_COUNT = 5


class JsonFormatter(logging.Formatter):
    """Render log records as JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, DEFAULT_LOG_DATEFMT),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(
    use_json: bool = False,
    log_file: str | None = None,
    *,
    level: int | str = logging.INFO,
    max_bytes: int = DEFAULT_LOG_MAX_BYTES,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
) -> None:
    """Configure console (and optional rotating file) logging for the package logger."""

    formatter: logging.Formatter
    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_LOG_DATEFMT)

    for handler in list(logger.handlers):
        with contextlib.suppress(Exception):
            handler.close()
        logger.removeHandler(handler)

    logger.setLevel(level.upper() if isinstance(level, str) else level)
    logger.propagate = False

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if log_file:
        handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="weaklockfree",
        description="Stress a weak concurrent map from several threads and verify it drains.",
    )
    parser.add_argument("--config", help="TOML config with [cleaner] and [table] sections")
    parser.add_argument("--mode", choices=CLEANER_MODES, help="Override cleaner.mode")
    parser.add_argument("--threads", type=int, default=4)
    parser.add_argument("--ops", type=int, default=2_000, help="Operations per thread")
    parser.add_argument("--keys", type=int, default=64, help="Live key pool size")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--drain-timeout", type=float, default=5.0)
    parser.add_argument("--json", action="store_true", help="Emit the summary as JSON")
    parser.add_argument("--metrics", action="store_true", help="Print Prometheus counters too")
    parser.add_argument("--log-json", action="store_true", help="JSON log lines")
    parser.add_argument("--log-file", default=None, help="Also log to a rotating file")
    parser.add_argument("--log-level", default="INFO")
    return parser


@guard_cli
def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(use_json=args.log_json, log_file=args.log_file, level=args.log_level)
    cfg = load_app_config(args.config)
    mode = args.mode or cfg.cleaner.mode
    metrics = CleanupMetrics()
    summary = run_stress(
        threads=args.threads,
        ops_per_thread=args.ops,
        mode=mode,
        key_pool=args.keys,
        seed=args.seed,
        drain_timeout=args.drain_timeout,
        config=cfg,
        metrics=metrics,
    )
    if args.json:
        print(summary.model_dump_json())
    else:
        print(
            f"mode={summary.mode} threads={summary.threads} puts={summary.puts} "
            f"gets={summary.gets} removes={summary.removes} anomalies={summary.anomalies} "
            f"final_size={summary.final_size} drained={summary.drained}"
        )
    if args.metrics and summary.metrics is not None:
        print(render_snapshot(summary.metrics), end="")
    if summary.anomalies:
        raise InvariantError(f"{summary.anomalies} anomalous read(s) during stress run")
    if not summary.drained:
        raise InvariantError(
            f"{summary.final_size} stale entries left after drain",
            hint="raise --drain-timeout or check for keys still referenced elsewhere",
        )
    return 0


__all__ = ["JsonFormatter", "build_parser", "configure_logging", "main"]

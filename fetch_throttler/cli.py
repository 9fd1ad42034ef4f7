from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from fetch_throttler.exceptions import ThrottlerError
from fetch_throttler.executor import HttpxExecutor
from fetch_throttler.retries import retry_tracking_context
from fetch_throttler.settings import LOG_LEVELS, check_log_level, get_settings
from fetch_throttler.throttler import Throttler


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="fetch-throttler",
        description="Send COUNT concurrent requests to URL through a throttler and report timings as JSON.",
    )
    parser.add_argument("url", help="Target URL.")
    parser.add_argument("-n", "--count", type=int, default=1, help="Number of requests.")
    parser.add_argument("--method", default="GET", help="HTTP method.")
    parser.add_argument(
        "--scope", choices=["global", "domain", "path"], help="Default pool scope."
    )
    parser.add_argument("--max-concurrency", type=int, help="Max in-flight requests.")
    parser.add_argument(
        "--interval", type=int, help="Milliseconds between admission starts."
    )
    parser.add_argument("--max-retry", type=int, help="Retries after the first attempt.")
    parser.add_argument("--capacity", type=int, help="Max queued + in-flight requests.")
    parser.add_argument("--timeout", type=float, default=30.0, help="Per-request timeout (s).")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default from FETCH_THROTTLER_LOG_LEVEL).",
    )
    return parser.parse_args(argv)


def _config_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    # Flags override environment defaults field by field.
    config: Dict[str, Any] = {}
    env = get_settings().default_config().model_dump(exclude_unset=True)
    config.update(env)
    for name in ("scope", "max_concurrency", "interval", "max_retry", "capacity"):
        value = getattr(args, name)
        if value is not None:
            config[name] = value
    return config


async def _run(args: argparse.Namespace) -> Dict[str, Any]:
    config = _config_from_args(args)
    started = time.perf_counter()
    results: List[Dict[str, Any]] = []

    async def one(throttler: Throttler, index: int) -> None:
        entry: Dict[str, Any] = {"id": index}
        t0 = time.perf_counter()
        try:
            response = await throttler(args.url, args.method)
            entry["status"] = response.status_code
            entry["ok"] = response.is_success
        except ThrottlerError as exc:
            entry["ok"] = False
            entry["error"] = exc.to_dict()
        except Exception as exc:  # noqa: BLE001
            entry["ok"] = False
            entry["error"] = {"error": type(exc).__name__, "message": str(exc)}
        entry["start_ms"] = round((t0 - started) * 1000, 1)
        entry["duration_ms"] = round((time.perf_counter() - t0) * 1000, 1)
        results.append(entry)

    executor = HttpxExecutor(timeout=args.timeout)
    try:
        throttler = Throttler(config, executor)
        async with retry_tracking_context() as tracker:
            await asyncio.gather(*(one(throttler, i) for i in range(args.count)))
        stats = throttler.stats(args.url)
    finally:
        await executor.aclose()

    results.sort(key=lambda r: r["id"])
    return {
        "url": args.url,
        "count": args.count,
        "elapsed_ms": round((time.perf_counter() - started) * 1000, 1),
        "requests": results,
        "stats": stats.to_dict(),
        "retries": tracker.to_dict(),
    }


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    try:
        level = args.log_level or check_log_level(get_settings().log_level)
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        report = asyncio.run(_run(args))
    except ThrottlerError as exc:
        print(json.dumps(exc.to_dict(), ensure_ascii=True), file=sys.stderr)
        return 1
    print(json.dumps(report, ensure_ascii=True))
    return 0 if all(r["ok"] for r in report["requests"]) else 1


if __name__ == "__main__":
    raise SystemExit(main())

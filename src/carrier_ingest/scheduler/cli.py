from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from carrier_ingest.backend.native.http_client import FixtureFetcher, SaferRegistryClient
from carrier_ingest.errors import IngestError
from carrier_ingest.identity import validate_dot_number
from carrier_ingest.normalize import parse_timestamp
from carrier_ingest.pipeline import build_record
from carrier_ingest.scheduler.models import STATUS_COMPLETED
from carrier_ingest.scheduler.runner import SyncOrchestrator, dumps
from carrier_ingest.scheduler.targets import list_policies
from carrier_ingest.scoring.insurance import days_until_expiry, insurance_tier, next_alert_tier
from carrier_ingest.settings import get_settings
from carrier_ingest.storage import SQLiteStore


def _split(value: Optional[str]) -> List[str]:
    return [p.strip() for p in str(value or "").split(",") if p.strip()]


def _cmd_parse(args) -> int:
    dot = validate_dot_number(args.dot)
    html = Path(args.html).read_text(encoding="utf-8", errors="replace")
    record = build_record(html, dot)
    print(dumps(record.to_dict()), end="")
    return 0


async def _run_sync(args, settings) -> dict:
    if args.fixture_dir:
        fetcher = FixtureFetcher(directory=args.fixture_dir)
    else:
        fetcher = SaferRegistryClient(settings=settings)
    log_fn = None
    if args.log_json:
        def log_fn(payload):
            print(json.dumps(payload, sort_keys=True), file=sys.stderr)
    store = SQLiteStore(args.db or settings.db_path)
    try:
        orchestrator = SyncOrchestrator(store, fetcher, settings, log_fn=log_fn)
        params = {}
        if args.job_type == "discovery":
            params = {"strategy": args.strategy, "start_dot": args.start_dot}
        job = await orchestrator.run(
            args.job_type,
            args.limit,
            _split(args.dots) or None,
            **params,
        )
        return job.to_dict()
    finally:
        await fetcher.aclose()
        store.close()


def _cmd_sync(args) -> int:
    settings = get_settings().with_overrides(
        concurrency=args.concurrency,
        request_delay_ms=args.delay_ms,
    )
    res = asyncio.run(_run_sync(args, settings))
    print(dumps(res), end="")
    return 0 if res.get("status") == STATUS_COMPLETED else 2


def _cmd_insurance(args) -> int:
    now = parse_timestamp(args.now) if args.now else None
    if args.now and now is None:
        raise IngestError(f"Invalid --now timestamp: {args.now}")
    res = {
        "expiry_date": args.expiry,
        "days_until_expiry": days_until_expiry(args.expiry, now),
        "tier": insurance_tier(args.expiry, now),
        "next_alert_tier": next_alert_tier(args.expiry, now, _split(args.sent)),
    }
    if res["days_until_expiry"] is None:
        raise IngestError(f"Invalid --expiry date: {args.expiry}")
    print(dumps(res), end="")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="carrier_ingest")
    parser.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, etc.)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_parse = sub.add_parser("parse", help="Parse one saved snapshot page")
    p_parse.add_argument("--dot", required=True, help="DOT number of the page")
    p_parse.add_argument("--html", required=True, help="Path to the saved HTML")

    p_sync = sub.add_parser("sync", help="Run one sync job to completion")
    p_sync.add_argument("--job-type", default="daily", choices=list_policies())
    p_sync.add_argument("--limit", type=int, default=None)
    p_sync.add_argument("--dots", default=None, help="Comma-separated DOT numbers (explicit jobs)")
    p_sync.add_argument("--strategy", default="sequential", choices=["sequential", "random"])
    p_sync.add_argument("--start-dot", default=None, help="First DOT for sequential discovery")
    p_sync.add_argument("--db", default=None, help="SQLite DB path (default: CI_DB)")
    p_sync.add_argument("--fixture-dir", default=None, help="Serve pages from <dir>/<dot>.html")
    p_sync.add_argument("--concurrency", type=int, default=None)
    p_sync.add_argument("--delay-ms", type=int, default=None)
    p_sync.add_argument("--log-json", action="store_true", help="Emit per-DOT JSON lines on stderr")

    p_ins = sub.add_parser("insurance", help="Evaluate an insurance expiry date")
    p_ins.add_argument("--expiry", required=True, help="Expiry date (YYYY-MM-DD)")
    p_ins.add_argument("--now", default=None, help="Override current time (ISO8601)")
    p_ins.add_argument("--sent", default=None, help="Comma-separated tiers already alerted")

    args = parser.parse_args(argv)
    if args.log_level:
        logging.basicConfig(level=args.log_level.upper())

    handlers = {"parse": _cmd_parse, "sync": _cmd_sync, "insurance": _cmd_insurance}
    try:
        return handlers[args.cmd](args)
    except IngestError as exc:
        print(dumps({"ok": False, "error": str(exc)}), end="", file=sys.stderr)
        return 2

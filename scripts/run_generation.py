#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from fastapi.encoders import jsonable_encoder

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from creative_studio.generation.errors import GenerationError
from creative_studio.generation.orchestrator import GenerationOrchestrator
from creative_studio.generation.plugins.registry import build_default_registry
from creative_studio.generation.poller import JobPoller
from creative_studio.observability import initialize_langfuse, shutdown_langfuse


def _load_request(raw: str | None, path: str | None) -> dict:
    if path:
        raw = Path(path).read_text(encoding="utf-8")
    if not raw:
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise SystemExit("Request JSON must be an object.")
    return parsed


async def _run(args: argparse.Namespace) -> int:
    registry = build_default_registry()
    if args.list:
        for plugin in registry.list_all():
            print(f"{plugin.plugin_id}\t{plugin.name}\t{plugin.description}")
        return 0

    poller = JobPoller(poll_interval_seconds=args.poll_interval, max_attempts=args.max_attempts)
    orchestrator = GenerationOrchestrator(registry=registry, poller=poller)
    request = _load_request(args.request, args.request_file)

    try:
        entry = await orchestrator.run_and_wait(args.plugin_id, request)
    except GenerationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    finally:
        await orchestrator.shutdown()

    print(json.dumps(jsonable_encoder(entry), indent=2, ensure_ascii=False))
    return 0 if entry.status == "success" else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Submit one generation run and wait for its terminal status.")
    parser.add_argument("plugin_id", nargs="?", default=None, help="Plugin to run (see --list).")
    parser.add_argument("--request", default=None, help="Request payload as a JSON object.")
    parser.add_argument("--request-file", default=None, help="Path to a JSON file with the request payload.")
    parser.add_argument("--poll-interval", type=float, default=None)
    parser.add_argument("--max-attempts", type=int, default=None)
    parser.add_argument("--list", action="store_true", help="List registered plugins and exit.")
    args = parser.parse_args()

    if not args.list and not args.plugin_id:
        parser.error("plugin_id is required unless --list is given")

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    initialize_langfuse()
    try:
        return asyncio.run(_run(args))
    finally:
        shutdown_langfuse()


if __name__ == "__main__":
    raise SystemExit(main())

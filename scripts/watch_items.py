#!/usr/bin/env python3
"""Watch live state changes of openHAB items.

This script uses the pyhab client to:
1) check that the REST API answers,
2) sync item types,
3) print the current (cached) state of each item,
4) subscribe to each item's change stream and print every change or
   stream failure until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyhab import HabClient, HabConfig, HabError  # noqa: E402

_LOG = logging.getLogger("watch_items")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("items", nargs="+", help="Item names to watch")
    parser.add_argument("--host", help="openHAB host or URL (default: PYHAB_HOST / PYHAB_BASE_URL)")
    parser.add_argument("--port", type=int, default=None, help="openHAB REST port")
    parser.add_argument(
        "--topic-prefix",
        default=None,
        help="Event bus namespace: 'smarthome' (openHAB 2) or 'openhab' (openHAB 3+)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _build_config(args: argparse.Namespace) -> HabConfig:
    overrides: dict[str, str] = {}
    if args.topic_prefix:
        overrides["topic_prefix"] = args.topic_prefix
    if args.host:
        return HabConfig.from_host(args.host, args.port, **overrides)
    return HabConfig.from_env(**overrides)


def _print_change(value: str | HabError, item: str) -> None:
    stamp = datetime.now().strftime("%H:%M:%S")
    if isinstance(value, HabError):
        print(f"[{stamp}] {item}: stream error: {value}")
    else:
        print(f"[{stamp}] {item} -> {value}")


async def _run(args: argparse.Namespace) -> int:
    config = _build_config(args)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover - Windows
            pass

    async with HabClient(config) as client:
        if not await client.is_online():
            _LOG.error("openHAB at %s is not reachable", config.base_url)
            return 1

        try:
            count = await client.sync_item_types()
            _LOG.info("Synced %d item type(s)", count)
        except HabError as exc:
            _LOG.warning("Type sync failed: %s", exc)

        for item in args.items:
            try:
                value = await client.get_state(item)
            except HabError as exc:
                print(f"{item} ({client.get_item_type(item) or '?'}): {exc}")
                continue
            print(f"{item} ({client.get_item_type(item) or '?'}) = {value}")
            client.subscribe(item, _print_change)

        client.start_subscriptions()
        await stop.wait()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except HabError as exc:
        _LOG.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
Chart feed runner - inspect what the chart would receive.

Usage:
    python run_feed.py history BINANCE:BTC-USDT -r 5            # Print recent bars
    python run_feed.py watch BINANCE:BTC-USDT -r 1              # Stream realtime bars
    python run_feed.py history --leg BINANCE:BTC-USDT=1000 --leg BINANCE:ETH-USDT=500
    python run_feed.py watch --side sell --leg BINANCE:BTC-USDT=1000 --leg BINANCE:ETH-USDT=500

The endpoint comes from BAR_HISTORY_URL (env or .env).
"""

import argparse
import asyncio
import time
from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table

from core.config import settings
from core.logging_utils import setup_logging
from core.models import Side
from core.price_scale import price_scale
from core.resolution import SUPPORTED_RESOLUTIONS, seconds_for
from datafeeds.feeds import BasketDataFeed, CustomDataFeed

console = Console()


def _parse_leg(text: str) -> dict:
    symbol, sep, notional = text.rpartition("=")
    if not sep or not symbol:
        raise argparse.ArgumentTypeError(f"leg must be SYMBOL=NOTIONAL, got {text!r}")
    return {"symbol": symbol, "notional": notional}


def _fmt_time(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def _bars_table(title: str, bars, decimals: int) -> Table:
    table = Table(title=title)
    table.add_column("Time (UTC)")
    for col in ("Open", "High", "Low", "Close", "Volume"):
        table.add_column(col, justify="right")
    for bar in bars:
        table.add_row(
            _fmt_time(bar.time),
            f"{bar.open:.{decimals}f}",
            f"{bar.high:.{decimals}f}",
            f"{bar.low:.{decimals}f}",
            f"{bar.close:.{decimals}f}",
            f"{bar.volume:.2f}",
        )
    return table


def _stats_table(feed, emitted: int) -> Table:
    stats = feed.get_stats()
    stats["emitted"] = emitted
    stats.pop("subscriptions", None)
    table = Table(title="Feed stats")
    table.add_column("Stat")
    table.add_column("Value", justify="right")
    for key, value in stats.items():
        table.add_row(key, str(value))
    return table


def _build_feed(args):
    if args.leg:
        return BasketDataFeed(args.leg, side=args.side), "BASKET"
    if not args.symbol:
        raise SystemExit("symbol or at least one --leg is required")
    return CustomDataFeed(live_price=args.price), args.symbol


async def _history(args):
    feed, name = _build_feed(args)
    now = int(time.time())
    range_info = {
        "from": now - seconds_for(args.resolution) * args.count,
        "to": now,
        "first_data_request": True,
    }
    result = {}

    def on_history(bars, meta):
        result["bars"] = bars
        result["meta"] = meta

    def on_error(message):
        console.print(f"[red]{message}[/red]")

    try:
        await feed.get_bars({"name": name}, args.resolution, range_info, on_history, on_error)
    finally:
        await feed.close()

    bars = result.get("bars") or []
    if not bars:
        console.print("[yellow]No data[/yellow]")
        return
    decimals = max(2, len(str(price_scale(bars[-1].close))) - 1) if not args.leg else 2
    console.print(_bars_table(f"{name} {args.resolution}", bars[-args.count:], decimals))


async def _watch(args):
    feed, name = _build_feed(args)

    def on_realtime(bar):
        console.print(
            f"{_fmt_time(bar.time)}  O {bar.open}  H {bar.high}  L {bar.low}  "
            f"C {bar.close}  V {bar.volume}"
        )

    handle = feed.subscribe_bars({"name": name}, args.resolution, on_realtime, f"cli-{name}")
    sub = feed.subscribers[handle.uid]
    console.print(f"Watching {name} {args.resolution} (Ctrl+C to stop)")
    try:
        if isinstance(feed, BasketDataFeed):
            await feed.refresh(sub)
        while handle.active:
            await asyncio.sleep(1)
    finally:
        handle.cancel()
        await feed.close()
        console.print(_stats_table(feed, sub.emitted))


def main():
    parser = argparse.ArgumentParser(
        prog="run_feed",
        description="Inspect chart bars for a symbol or basket",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("mode", choices=["history", "watch"])
    parser.add_argument("symbol", nargs="?", default="",
                        help="EXCHANGE:PAIR symbol (omit when using --leg)")
    parser.add_argument("-r", "--resolution", default="1", choices=SUPPORTED_RESOLUTIONS)
    parser.add_argument("-n", "--count", type=int, default=30,
                        help="Bars of history to show (default: 30)")
    parser.add_argument("--leg", action="append", type=_parse_leg, default=[],
                        help="Basket leg SYMBOL=NOTIONAL (repeatable)")
    parser.add_argument("--side", default=Side.BUY.value, choices=[s.value for s in Side])
    parser.add_argument("--price", default=None, help="Seed live price for a single symbol")
    parser.add_argument("--log-level", default=settings.log_level)

    args = parser.parse_args()
    setup_logging(args.log_level)

    try:
        asyncio.run(_history(args) if args.mode == "history" else _watch(args))
    except KeyboardInterrupt:
        console.print("\nStopped")


if __name__ == "__main__":
    main()

# -*- coding: utf-8 -*-

"""Render the CGM chart to a PNG from a saved Nightscout entries payload.

Example:
    curl "$NIGHTSCOUT_URL/api/v1/entries.json?count=300&token=$NS_TOKEN" > entries.json
    cgm-snapshot entries.json -o chart.png --hours 6
"""

from __future__ import annotations

import argparse
import datetime as dt
import json
import sys
from typing import List, Optional

import dateutil.parser

from cgm_graph import CGMGraph
from config import GRAPH_HOURS_CHOICES, Config, load_env
from glucose import UNITS, entries_to_samples, threshold_for_display, threshold_from_display
from surface import MatplotlibSurface


def _parse_now(raw: Optional[str]) -> dt.datetime:
    if not raw:
        return dt.datetime.now().astimezone()
    ts = dateutil.parser.isoparse(raw)
    if ts.tzinfo is None:
        # Interpret naive --now as local wall-clock time
        ts = ts.astimezone()
    return ts


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="cgm-snapshot", description="Render a CGM chart PNG from entries.json")
    p.add_argument("entries", help="Nightscout entries.json payload")
    p.add_argument("-o", "--out", default="chart.png", help="output PNG path (default chart.png)")
    p.add_argument("--hours", type=int, choices=GRAPH_HOURS_CHOICES, help="window length in hours")
    p.add_argument("--width", type=int, default=300)
    p.add_argument("--height", type=int, default=150)
    p.add_argument("--now", help="ISO timestamp the window ends at (default: current time)")
    p.add_argument("--units", choices=UNITS, help="axis label units")
    p.add_argument("--low", type=float, help="low threshold in the display units")
    p.add_argument("--high", type=float, help="high threshold in the display units")
    p.add_argument("--config-dir", help="directory holding config.json")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_env()
    cfg = Config(config_dir=args.config_dir)

    def _log(msg: str):
        if cfg.debug:
            print(f"[GRAPH] {msg}", flush=True)

    try:
        with open(args.entries, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, ValueError) as e:
        print(f"Could not read entries from {args.entries}: {e}", file=sys.stderr)
        return 1
    if not isinstance(payload, list):
        print(f"Could not read entries from {args.entries}: expected a JSON list", file=sys.stderr)
        return 1

    try:
        now = _parse_now(args.now)
    except (ValueError, OverflowError) as e:
        print(f"Invalid --now timestamp {args.now!r}: {e}", file=sys.stderr)
        return 1

    graph = CGMGraph(width=args.width, height=args.height, debug_log=_log)
    cfg.apply_to(graph)
    if args.hours is not None:
        graph.set_graph_hours(args.hours)
    if args.units is not None:
        graph.set_units(args.units)
    if args.low is not None or args.high is not None:
        thresholds = dict(graph.thresholds)
        if args.low is not None:
            thresholds["low"] = threshold_from_display(args.low, graph.units)
        if args.high is not None:
            thresholds["high"] = threshold_from_display(args.high, graph.units)
        graph.set_thresholds(thresholds)
    graph.set_data(entries_to_samples(payload))

    surface = MatplotlibSurface(graph.width, graph.height)
    graph.render(surface, now)
    surface.to_png(args.out)
    low = threshold_for_display(graph.thresholds["low"], graph.units)
    high = threshold_for_display(graph.thresholds["high"], graph.units)
    print(
        f"Wrote {args.out} ({len(graph.series)} points, {graph.graph_hours:g}h window, "
        f"thresholds {low:g}-{high:g} {graph.units})"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

# -*- coding: utf-8 -*-

"""Threshold-coloured, rolling-window glucose chart.

CGMGraph holds the accepted series, thresholds and parsed palette and draws
them onto a fixed-size surface (see surface.py) with ``render(surface, now)``.
The setters never draw; they only ask the host to schedule a repaint.

Drawing stages, in order: background, grid, threshold lines, series, labels.
An empty series skips all of them and shows a centred "No data available".
"""

from __future__ import annotations

import datetime as dt
import math
import numbers
import os
import re
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

import numpy as np
from matplotlib.colors import to_rgb

from glucose import UNIT_MMOL, Sample, format_glucose

RGB = Tuple[float, float, float]

# Default colors, overridden per category by set_colors()
DEFAULT_COLORS: Dict[str, str] = {
    "low": "rgb(255, 70, 70)",       # red
    "high": "rgb(255, 170, 0)",      # orange
    "normal": "rgb(255, 255, 255)",  # white
}
DEFAULT_THRESHOLDS: Dict[str, float] = {"low": 4.0, "high": 10.0}

GRID_DIVISIONS = 6
MIN_AXIS_MAX = 15
MAX_GAP = dt.timedelta(minutes=5)

BACKGROUND_RGB: RGB = (0.1, 0.1, 0.1)
GRID_RGB: RGB = (0.3, 0.3, 0.3)
LABEL_RGB: RGB = (0.8, 0.8, 0.8)
NO_DATA_RGB: RGB = (0.7, 0.7, 0.7)
GRID_WIDTH = 0.5
LINE_WIDTH = 2
POINT_RADIUS = 3
LABEL_FONT_SIZE = 10
NO_DATA_FONT_SIZE = 14
NO_DATA_TEXT = "No data available"
DASH_STEP = 6
DASH_LENGTH = 2
DASH_THICKNESS = 1

EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)

DEBUG_GRAPH = os.getenv("DEBUG_GRAPH", "0").strip().lower() in ("1", "true", "yes", "on")


def _print_log(msg: str):
    if DEBUG_GRAPH:
        print(f"[GRAPH] {msg}", flush=True)


class Padding(NamedTuple):
    top: int = 20
    right: int = 20
    bottom: int = 30
    left: int = 40


class ViewState(NamedTuple):
    min_value: float
    max_value: float
    value_range: float
    window_start: dt.datetime
    window_end: dt.datetime
    time_range: dt.timedelta


class Layout(NamedTuple):
    padding: Padding
    chart_width: float
    chart_height: float


# --- Colors -----------------------------------------------------------
_CSS_RGB = re.compile(r"^rgba?\(\s*([^,\s]+)\s*,\s*([^,\s]+)\s*,\s*([^,\s)]+)\s*(?:,\s*([^,\s)]+)\s*)?\)$", re.I)


def _css_channel(token: str) -> Optional[float]:
    try:
        if token.endswith("%"):
            v = float(token[:-1]) / 100.0
        else:
            v = float(token) / 255.0
    except ValueError:
        return None
    if not math.isfinite(v):
        return None
    return min(1.0, max(0.0, v))


def parse_color(value: Any) -> Optional[RGB]:
    """Parse a colour string into an RGB triple in [0, 1], or None.

    Accepts CSS ``rgb()``/``rgba()`` notation (alpha is dropped) and anything
    matplotlib understands: ``#rgb``, ``#rrggbb``, ``#rrggbbaa``, named colours.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    s = value.strip()
    m = _CSS_RGB.match(s)
    if m:
        chans = [_css_channel(tok) for tok in m.groups()[:3]]
        if any(c is None for c in chans):
            return None
        return (chans[0], chans[1], chans[2])
    try:
        r, g, b = to_rgb(s)
    except ValueError:
        return None
    return (float(r), float(g), float(b))


# --- Pure chart stages ------------------------------------------------
def classify(value: float, thresholds: Dict[str, float]) -> str:
    if value < thresholds["low"]:
        return "low"
    if value > thresholds["high"]:
        return "high"
    return "normal"


def axis_max(max_data_value: float) -> float:
    # Axis top is a multiple of the grid division count
    preliminary = max(MIN_AXIS_MAX, max_data_value + 1)
    return math.ceil(preliminary / GRID_DIVISIONS) * GRID_DIVISIONS


def compute_view(series: Iterable[Sample], graph_hours: float, now: dt.datetime) -> ViewState:
    values = [s.value for s in series]
    max_data_value = max(values) if values else 0
    min_value = 0
    max_value = axis_max(max_data_value)
    window_end = now
    window_start = window_end - dt.timedelta(hours=graph_hours)
    return ViewState(
        min_value=min_value,
        max_value=max_value,
        value_range=max_value - min_value,
        window_start=window_start,
        window_end=window_end,
        time_range=window_end - window_start,
    )


def layout_for(width: float, height: float, padding: Padding) -> Layout:
    return Layout(
        padding=padding,
        chart_width=width - padding.left - padding.right,
        chart_height=height - padding.top - padding.bottom,
    )


def _ratio(num: float, den: float) -> float:
    if den == 0:
        return float("nan")
    return num / den


def map_x(view: ViewState, layout: Layout, t: dt.datetime) -> float:
    frac = _ratio((t - view.window_start).total_seconds(), view.time_range.total_seconds())
    return layout.padding.left + frac * layout.chart_width


def map_y(view: ViewState, layout: Layout, value: float) -> float:
    frac = _ratio(value - view.min_value, view.value_range)
    return layout.padding.top + layout.chart_height - frac * layout.chart_height


def map_point(view: ViewState, layout: Layout, t: dt.datetime, value: float) -> Tuple[float, float]:
    return (map_x(view, layout, t), map_y(view, layout, value))


def in_window(view: ViewState, t: dt.datetime) -> bool:
    offset = t - view.window_start
    return not (offset < dt.timedelta(0) or offset > view.time_range)


def time_step_for_hours(graph_hours: float) -> dt.timedelta:
    if graph_hours <= 6:
        return dt.timedelta(hours=1)
    if graph_hours <= 12:
        return dt.timedelta(hours=2)
    if graph_hours <= 24:
        return dt.timedelta(hours=4)
    return dt.timedelta(hours=8)


def time_ticks(window_start: dt.datetime, window_end: dt.datetime, step: dt.timedelta) -> List[dt.datetime]:
    """Tick instants on epoch-aligned multiples of ``step`` within the window (inclusive)."""
    ticks: List[dt.datetime] = []
    if step <= dt.timedelta(0):
        return ticks
    k = -((EPOCH - window_start) // step)  # ceil((start - epoch) / step)
    current = EPOCH + k * step
    while current <= window_end:
        if current >= window_start:
            ticks.append(current)
        current = current + step
    return ticks


def tick_label(tick: dt.datetime, tz: Optional[dt.tzinfo]) -> str:
    return f"{tick.astimezone(tz).hour}:00"


def y_axis_labels(min_value: float, max_value: float, units: str = UNIT_MMOL) -> List[Tuple[int, str]]:
    """(row index, text) for the Y axis, top row first; the ~0 label is left out."""
    step = (max_value - min_value) / GRID_DIVISIONS
    labels = []
    for i in range(GRID_DIVISIONS + 1):
        value = min_value + step * (GRID_DIVISIONS - i)
        if value < 0.1:
            continue
        labels.append((i, format_glucose(value, units)))
    return labels


def _finite(*coords: float) -> bool:
    return bool(np.all(np.isfinite(coords)))


def _as_aware(t: dt.datetime) -> dt.datetime:
    if t.tzinfo is None:
        return t.replace(tzinfo=dt.timezone.utc)
    return t


def _field(point: Any, name: str) -> Any:
    if isinstance(point, dict):
        return point.get(name)
    return getattr(point, name, None)


def _valid_value(v: Any) -> bool:
    if isinstance(v, bool) or not isinstance(v, numbers.Real):
        return False
    return math.isfinite(float(v))


# --- Renderer ---------------------------------------------------------
class CGMGraph:
    def __init__(self, width: int = 300, height: int = 150, thresholds: Optional[Dict[str, float]] = None,
                 graph_hours: float = 6, colors: Optional[Dict[str, str]] = None, units: str = UNIT_MMOL,
                 debug_log: Optional[Callable[[str], None]] = None,
                 request_redraw: Optional[Callable[[], None]] = None):
        self.width = width
        self.height = height
        self.padding = Padding()
        self.thresholds = dict(thresholds) if thresholds else dict(DEFAULT_THRESHOLDS)
        self.graph_hours = graph_hours
        self.units = units
        self.log = debug_log or _print_log
        self._request_redraw = request_redraw
        self.redraw_pending = False
        self._series: Tuple[Sample, ...] = ()
        self.colors: Dict[str, str] = dict(DEFAULT_COLORS)
        self.parsed_colors: Dict[str, RGB] = {}
        self.set_colors(colors or {})

    def _queue_redraw(self):
        self.redraw_pending = True
        if self._request_redraw is not None:
            self._request_redraw()

    @property
    def series(self) -> Tuple[Sample, ...]:
        return self._series

    # ----------------- Setters -----------------
    def set_colors(self, colors: Dict[str, str]):
        merged = dict(DEFAULT_COLORS)
        for key, value in (colors or {}).items():
            if key in DEFAULT_COLORS:
                merged[key] = value
            else:
                self.log(f"Ignoring unknown color key {key!r}")
        # Rebuilt from defaults on every call
        parsed: Dict[str, RGB] = {}
        for key, value in merged.items():
            rgb = parse_color(value)
            if rgb is None:
                self.log(f"Invalid color string for {key}: {value}")
                rgb = parse_color(DEFAULT_COLORS[key])
            parsed[key] = rgb
        self.colors = merged
        self.parsed_colors = parsed
        self._queue_redraw()

    def set_thresholds(self, thresholds: Dict[str, float]):
        # Not validated: an inverted low/high pair is drawn as given
        self.thresholds = dict(thresholds)
        self._queue_redraw()

    def set_graph_hours(self, graph_hours: float):
        self.graph_hours = graph_hours
        self._queue_redraw()

    def set_units(self, units: str):
        self.units = units
        self._queue_redraw()

    def set_data(self, data_points: Iterable[Any]):
        accepted = []
        for point in data_points or []:
            if point is None:
                continue
            t = _field(point, "time")
            v = _field(point, "value")
            if not isinstance(t, dt.datetime) or not _valid_value(v):
                continue
            accepted.append(Sample(_as_aware(t), float(v)))
        # sorted() is stable: equal timestamps keep their input order
        self._series = tuple(sorted(accepted, key=lambda s: s.time))

        self.log(f"Graph received {len(self._series)} valid data points")
        if self._series:
            first, last = self._series[0], self._series[-1]
            self.log(f"First point: {first.value} at {first.time.isoformat()}")
            self.log(f"Last point: {last.value} at {last.time.isoformat()}")
        self._queue_redraw()

    def color_for_value(self, value: float) -> RGB:
        return self.parsed_colors[classify(value, self.thresholds)]

    # ----------------- Rendering -----------------
    def render(self, surface, now: dt.datetime):
        self.redraw_pending = False
        width, height = surface.size
        try:
            surface.clear(BACKGROUND_RGB)
            if not self._series:
                self._draw_no_data(surface, width, height)
                return
            now = _as_aware(now)
            view = compute_view(self._series, self.graph_hours, now)
            layout = layout_for(width, height, self.padding)

            self._draw_grid(surface, layout)
            self._draw_threshold_lines(surface, view, layout)
            self._draw_colored_line(surface, view, layout)
            self._draw_labels(surface, view, layout, height, now.tzinfo)
        except Exception as e:
            self.log(f"Render failed: {e!r}")

    def _draw_no_data(self, surface, width: float, height: float):
        tw = surface.text_width(NO_DATA_TEXT, NO_DATA_FONT_SIZE)
        surface.text((width - tw) / 2, height / 2, NO_DATA_TEXT, NO_DATA_RGB, NO_DATA_FONT_SIZE)

    def _draw_grid(self, surface, layout: Layout):
        pad = layout.padding
        # Horizontal grid lines (glucose divisions)
        for i in range(GRID_DIVISIONS + 1):
            y = pad.top + layout.chart_height * i / GRID_DIVISIONS
            surface.line(pad.left, y, pad.left + layout.chart_width, y, GRID_RGB, GRID_WIDTH)
        # Vertical grid lines (time divisions)
        for i in range(GRID_DIVISIONS + 1):
            x = pad.left + layout.chart_width * i / GRID_DIVISIONS
            surface.line(x, pad.top, x, pad.top + layout.chart_height, GRID_RGB, GRID_WIDTH)

    def _draw_threshold_lines(self, surface, view: ViewState, layout: Layout):
        for key in ("low", "high"):
            value = self.thresholds.get(key)
            if not _valid_value(value):
                continue
            if not (view.min_value <= value <= view.max_value):
                continue
            y = map_y(view, layout, value)
            if not _finite(y):
                self.log(f"Invalid threshold coordinate for {key}: {y}")
                continue
            rgb = self.parsed_colors[key]
            # Dashed: short filled rectangles tiled along the line
            x = layout.padding.left
            end = layout.padding.left + layout.chart_width
            while x < end:
                surface.rect(x, y, DASH_LENGTH, DASH_THICKNESS, rgb)
                x += DASH_STEP

    def _draw_colored_line(self, surface, view: ViewState, layout: Layout):
        data = self._series
        if len(data) == 1:
            self._draw_single_point(surface, view, layout, data[0])
            return

        for current, nxt in zip(data, data[1:]):
            # Don't bridge sensor dropouts
            if nxt.time - current.time > MAX_GAP:
                continue
            # Only segments fully inside the window are drawn
            if not (in_window(view, current.time) and in_window(view, nxt.time)):
                continue
            # Left point decides the segment colour
            rgb = self.color_for_value(current.value)
            x1, y1 = map_point(view, layout, current.time, current.value)
            x2, y2 = map_point(view, layout, nxt.time, nxt.value)
            if not _finite(x1, y1, x2, y2):
                self.log(f"Invalid coordinates: ({x1}, {y1}) to ({x2}, {y2})")
                continue
            surface.line(x1, y1, x2, y2, rgb, LINE_WIDTH)

    def _draw_single_point(self, surface, view: ViewState, layout: Layout, point: Sample):
        if not in_window(view, point.time):
            return
        x, y = map_point(view, layout, point.time, point.value)
        if not _finite(x, y):
            self.log(f"Invalid coordinates: ({x}, {y})")
            return
        surface.circle(x, y, POINT_RADIUS, self.color_for_value(point.value))

    def _draw_labels(self, surface, view: ViewState, layout: Layout, height: float, tz: Optional[dt.tzinfo]):
        pad = layout.padding
        for i, text in y_axis_labels(view.min_value, view.max_value, self.units):
            y = pad.top + layout.chart_height * i / GRID_DIVISIONS
            tw = surface.text_width(text, LABEL_FONT_SIZE)
            if not _finite(tw, y):
                continue
            surface.text(pad.left - tw - 5, y + 3, text, LABEL_RGB, LABEL_FONT_SIZE)

        step = time_step_for_hours(self.graph_hours)
        for tick in time_ticks(view.window_start, view.window_end, step):
            x = map_x(view, layout, tick)
            text = tick_label(tick, tz)
            tw = surface.text_width(text, LABEL_FONT_SIZE)
            if not _finite(tw, x):
                self.log(f"Invalid tick coordinate for {text}: {x}")
                continue
            surface.text(x - tw / 2, height - 5, text, LABEL_RGB, LABEL_FONT_SIZE)


__all__ = [
    "CGMGraph",
    "Sample",
    "Padding",
    "ViewState",
    "DEFAULT_COLORS",
    "DEFAULT_THRESHOLDS",
    "MAX_GAP",
    "parse_color",
    "classify",
    "axis_max",
    "compute_view",
    "layout_for",
    "map_point",
    "time_step_for_hours",
    "time_ticks",
    "tick_label",
    "y_axis_labels",
]

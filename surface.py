# -*- coding: utf-8 -*-

"""Fixed-size drawing surfaces for the CGM chart.

The chart renderer only speaks in pixels: origin at the top-left corner,
y growing downwards, colours as RGB triples in [0, 1]. Any object offering
the methods of ``MatplotlibSurface`` (size, clear, line, rect, circle, text,
text_width) can be drawn on.

MatplotlibSurface keeps one Figure sized exactly width x height pixels with
a single axes spanning it, so data coordinates are pixel coordinates. The
Figure can be saved as PNG, read back as an RGBA array, or embedded in a
host canvas (e.g. FigureCanvasTkAgg).
"""

from __future__ import annotations

from typing import Tuple, Union, IO

import numpy as np
from matplotlib.figure import Figure
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.font_manager import FontProperties
from matplotlib.lines import Line2D
from matplotlib.patches import Circle, Rectangle

RGB = Tuple[float, float, float]

FONT_FAMILY = "sans-serif"


class MatplotlibSurface:
    def __init__(self, width: int, height: int, dpi: int = 100):
        self.width = int(width)
        self.height = int(height)
        self.dpi = dpi
        self.figure = Figure(figsize=(self.width / dpi, self.height / dpi), dpi=dpi)
        self.canvas = FigureCanvasAgg(self.figure)
        self.ax = self.figure.add_axes([0, 0, 1, 1])
        self._setup_axes()

    def _setup_axes(self):
        self.ax.set_xlim(0, self.width)
        # Flip y so that (0, 0) is the top-left pixel
        self.ax.set_ylim(self.height, 0)
        self.ax.set_axis_off()
        self.ax.set_autoscale_on(False)

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def _pt(self, px: float) -> float:
        return px * 72.0 / self.dpi

    def _font(self, size: float) -> FontProperties:
        return FontProperties(family=FONT_FAMILY, size=self._pt(size))

    # ----------------- Drawing primitives -----------------
    def clear(self, rgb: RGB):
        self.ax.clear()
        self._setup_axes()
        self.figure.set_facecolor(rgb)
        self.ax.add_patch(Rectangle((0, 0), self.width, self.height, facecolor=rgb, edgecolor="none", linewidth=0))

    def line(self, x1: float, y1: float, x2: float, y2: float, rgb: RGB, width: float = 1.0):
        self.ax.add_line(Line2D([x1, x2], [y1, y2], color=rgb, linewidth=self._pt(width), solid_capstyle="butt"))

    def rect(self, x: float, y: float, w: float, h: float, rgb: RGB):
        self.ax.add_patch(Rectangle((x, y), w, h, facecolor=rgb, edgecolor="none", linewidth=0))

    def circle(self, x: float, y: float, radius: float, rgb: RGB):
        self.ax.add_patch(Circle((x, y), radius, facecolor=rgb, edgecolor="none", linewidth=0))

    def text(self, x: float, y: float, s: str, rgb: RGB, size: float = 10.0):
        self.ax.text(x, y, s, color=rgb, fontproperties=self._font(size), ha="left", va="baseline")

    def text_width(self, s: str, size: float = 10.0) -> float:
        renderer = self.canvas.get_renderer()
        w, _h, _d = renderer.get_text_width_height_descent(s, self._font(size), ismath=False)
        return float(w)

    # ----------------- Output -----------------
    def draw(self):
        self.canvas.draw()

    def to_rgba(self) -> np.ndarray:
        """Rasterise and return a (height, width, 4) uint8 copy of the pixels."""
        self.canvas.draw()
        return np.asarray(self.canvas.buffer_rgba()).copy()

    def to_png(self, target: Union[str, IO[bytes]]):
        self.figure.savefig(target, format="png", dpi=self.dpi, facecolor=self.figure.get_facecolor())


__all__ = ["MatplotlibSurface", "RGB"]

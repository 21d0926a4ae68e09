import datetime as dt

import matplotlib
import pytest

matplotlib.use("Agg")


class RecordingSurface:
    """Fake surface that records every draw call instead of rasterising."""

    def __init__(self, width=300, height=150):
        self.width = width
        self.height = height
        self.ops = []

    @property
    def size(self):
        return (self.width, self.height)

    def clear(self, rgb):
        self.ops = [("clear", rgb)]

    def line(self, x1, y1, x2, y2, rgb, width=1.0):
        self.ops.append(("line", x1, y1, x2, y2, rgb, width))

    def rect(self, x, y, w, h, rgb):
        self.ops.append(("rect", x, y, w, h, rgb))

    def circle(self, x, y, radius, rgb):
        self.ops.append(("circle", x, y, radius, rgb))

    def text(self, x, y, s, rgb, size=10.0):
        self.ops.append(("text", x, y, s, rgb, size))

    def text_width(self, s, size=10.0):
        return len(s) * size * 0.6

    def of(self, kind):
        return [op for op in self.ops if op[0] == kind]

    def texts(self):
        return [op[3] for op in self.of("text")]


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def now():
    return dt.datetime(2026, 10, 19, 14, 0, tzinfo=dt.timezone.utc)


@pytest.fixture
def log_lines():
    return []

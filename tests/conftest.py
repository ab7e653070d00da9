import os

os.environ.setdefault("MPLBACKEND", "Agg")

import numpy as np
import pytest

from skin_biometrics.models.frame import FaceBounds, RasterFrame
from skin_biometrics.models.skin_metrics import SCORE_FIELDS, SkinMetrics
from skin_biometrics.utils.skin_analyzer import SkinAnalyzer
from skin_biometrics.utils.stabilization import ConsistencyProtocol, InMemoryAnalysisCache

HEALTHY_SKIN = (205, 160, 135)
BACKGROUND = (30, 90, 200)

NOW_MS = 1_700_000_000_000


class FixedClock:
    """Deterministic epoch-millisecond clock."""

    def __init__(self, now=NOW_MS):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class FixedLocalizer:
    """Reports the same face bounds for every frame."""

    def __init__(self, bounds):
        self.bounds = bounds
        self.calls = 0

    def locate(self, frame):
        self.calls += 1
        return self.bounds


def make_frame(width, height, background=BACKGROUND, patches=()):
    """
    Solid frame with rectangular colour patches.

    ``patches`` holds (x0, y0, x1, y1, colour) tuples.
    """
    pixels = np.empty((height, width, 3), dtype=np.uint8)
    pixels[:] = background
    for x0, y0, x1, y1, colour in patches:
        pixels[y0:y1, x0:x1] = colour
    return RasterFrame(pixels)


def make_metrics(value=70, timestamp=NOW_MS, **overrides):
    scores = {name: value for name in SCORE_FIELDS}
    scores.update(overrides)
    return SkinMetrics(**scores, timestamp=timestamp)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def cache():
    return InMemoryAnalysisCache()


@pytest.fixture
def centered_bounds():
    # Face centred in a 400x400 frame; every region lies inside the frame
    return FaceBounds(200.0, 200.0, 200.0, 270.0)


@pytest.fixture
def skin_frame():
    """400x400 frame of uniform healthy skin."""
    return make_frame(400, 400, background=HEALTHY_SKIN)


@pytest.fixture
def face_frame():
    """640x480 frame with a 200x200 skin square the heuristic localizer accepts."""
    return make_frame(640, 480, patches=[(220, 140, 420, 340, HEALTHY_SKIN)])


@pytest.fixture
def analyzer(centered_bounds, cache, clock):
    protocol = ConsistencyProtocol(cache=cache, clock=clock)
    return SkinAnalyzer(localizer=FixedLocalizer(centered_bounds), clock=clock, protocol=protocol)

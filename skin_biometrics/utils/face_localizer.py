"""
Coarse face localization from skin-coloured pixels.

This is deliberately not a face detector: the frame is sampled on a sparse
grid, warm-toned pixels are treated as skin, and their centroid and count
stand in for the face centre and size. Every downstream threshold is tuned
against the error characteristics of this approximation, so alternative
localizers must be plugged in explicitly through ``FaceLocalizer``.
"""
import logging
from typing import Protocol

import numpy as np

from ..models.frame import FaceBounds

logger = logging.getLogger(__name__)

GRID_STEP = 20
MIN_SKIN_SAMPLES = 50
WIDTH_EXPANSION = 1.5
HEIGHT_RATIO = 1.35


class FaceLocalizer(Protocol):
    def locate(self, frame) -> FaceBounds:
        ...


def skin_mask(rgb):
    """
    Warm-tone skin heuristic: red dominant, with minimum channel levels

    Parameters:
    ----------
    rgb : numpy.ndarray
        Array whose last axis holds R, G, B (0-255)

    Returns:
    -------
    mask : numpy.ndarray
        Boolean array, True where the pixel looks like skin
    """
    rgb = np.asarray(rgb).astype(np.int16)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    return (r > 40) & (g > 20) & (b > 10) & (r > g) & (r > b)


class HeuristicFaceLocalizer:
    """
    Grid-sampled skin-pixel localizer

    Parameters:
    ----------
    step : int
        Grid spacing in pixels along both axes
    min_samples : int
        Skin samples required before a face is reported
    width_expansion : float
        Empirical factor applied to the skin patch side length
    height_ratio : float
        Face height as a multiple of face width
    """
    def __init__(self,
                 step=GRID_STEP,
                 min_samples=MIN_SKIN_SAMPLES,
                 width_expansion=WIDTH_EXPANSION,
                 height_ratio=HEIGHT_RATIO):
        if step < 1:
            raise ValueError("step must be a positive integer")
        self.step = step
        self.min_samples = min_samples
        self.width_expansion = width_expansion
        self.height_ratio = height_ratio

    def locate(self, frame):
        # Sample every step-th pixel in each axis
        grid = frame.rgb[::self.step, ::self.step]
        mask = skin_mask(grid)
        count = int(mask.sum())

        if count < self.min_samples:
            logger.debug("Only %d skin samples, no face reported", count)
            return FaceBounds(frame.width / 2, frame.height / 2, 0.0, 0.0)

        ys, xs = np.nonzero(mask)
        cx = float(xs.mean() * self.step)
        cy = float(ys.mean() * self.step)

        # Side of a square with the skin area, widened empirically
        face_width = float(np.sqrt(count * self.step * self.step) * self.width_expansion)
        face_height = face_width * self.height_ratio

        return FaceBounds(cx, cy, face_width, face_height)

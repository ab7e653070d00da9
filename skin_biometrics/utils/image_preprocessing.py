import logging
import math
from dataclasses import dataclass

import numpy as np

from ..models.frame import RasterFrame, RegionOfInterest, empty_region
from .color_model import lab_to_rgb, luminance, rgb_to_lab
from .face_localizer import skin_mask

logger = logging.getLogger(__name__)

TARGET_LUMINANCE = 135.0
MAX_EXPOSURE_GAIN = 8.0
DEGENERATE_LUMINANCE = 1.0

# Region layout relative to the face bounds. Each entry gives
# (x offset, y offset, width, height); offsets are fractions of face
# width / face height, sizes are multiples of the base ROI side.
REGION_LAYOUT = {
    'forehead': (('roi', -1.0), ('fh', -0.35), 2.0, 0.6),
    'left_cheek': (('fw', -0.28), ('fh', 0.05), 1.0, 1.0),
    'right_cheek': (('fw', 0.08), ('fh', 0.05), 1.0, 1.0),
    'under_eye': (('roi', -1.0), ('fh', -0.12), 2.0, 0.4),
    'nose': (('roi', -0.5), ('fh', 0.10), 1.0, 0.5),
    'jaw': (('roi', -1.0), ('fh', 0.45), 2.0, 0.4),
}

ROI_FRACTION = 0.25


class RegionNormalizer:
    """
    Slice anatomical regions out of a frame and equalize their exposure

    Parameters:
    ----------
    target_luminance : float
        Mean luminance every region is rescaled to (0-255 scale)
    max_gain : float
        Upper bound on the exposure gain, protects near-black regions
    degenerate_luminance : float
        Regions whose mean luminance is below this are flagged degenerate
    roi_fraction : float
        Base ROI side as a fraction of the face width
    """
    def __init__(self,
                 target_luminance=TARGET_LUMINANCE,
                 max_gain=MAX_EXPOSURE_GAIN,
                 degenerate_luminance=DEGENERATE_LUMINANCE,
                 roi_fraction=ROI_FRACTION):
        self.target_luminance = target_luminance
        self.max_gain = max_gain
        self.degenerate_luminance = degenerate_luminance
        self.roi_fraction = roi_fraction

    def region_rects(self, bounds):
        """
        Unclipped integer rectangles for every named region

        Returns:
        -------
        rects : dict
            Region name -> (x, y, w, h)
        """
        roi = math.floor(bounds.face_width * self.roi_fraction)
        scale = {'roi': roi, 'fw': bounds.face_width, 'fh': bounds.face_height}

        rects = {}
        for name, ((x_ref, x_off), (y_ref, y_off), w_mult, h_mult) in REGION_LAYOUT.items():
            x = bounds.cx + scale[x_ref] * x_off
            y = bounds.cy + scale[y_ref] * y_off
            rects[name] = (int(math.floor(x)), int(math.floor(y)),
                           int(math.floor(roi * w_mult)), int(math.floor(roi * h_mult)))
        return rects

    @staticmethod
    def clip_rect(rect, width, height):
        """Shift a rectangle's origin into the frame and trim its far edges."""
        x, y, w, h = rect
        x = max(0, x)
        y = max(0, y)
        w = max(0, min(w, width - x))
        h = max(0, min(h, height - y))
        return x, y, w, h

    def normalize_exposure(self, rgb, name='region', rect=(0, 0, 0, 0)):
        """
        Rescale a crop so its mean luminance hits the target

        Parameters:
        ----------
        rgb : numpy.ndarray
            (H, W, 3) crop on the 0-255 scale
        name : str
            Region name carried into the result
        rect : tuple
            Source rectangle carried into the result

        Returns:
        -------
        region : RegionOfInterest
            Normalized region with float32 pixels
        """
        rgb = np.asarray(rgb, dtype=np.float32)[..., :3]
        if rgb.size == 0:
            return empty_region(name, rect)

        mean = float(luminance(rgb).mean())
        degenerate = mean < self.degenerate_luminance

        # Clamp the gain so an all-black crop cannot blow up
        gain = self.target_luminance / mean if mean > 0 else self.max_gain
        gain = min(gain, self.max_gain)

        pixels = np.clip(rgb * gain, 0.0, 255.0).astype(np.float32)

        if degenerate:
            logger.debug("Region %s is degenerate (mean luminance %.2f)", name, mean)

        return RegionOfInterest(
            name=name,
            rect=tuple(rect),
            pixels=pixels,
            source_luminance=mean,
            gain=gain,
            degenerate=degenerate,
        )

    def extract_regions(self, frame, bounds):
        """
        Crop and normalize every named region of a located face

        Returns:
        -------
        regions : dict
            Region name -> RegionOfInterest (empty when off-frame)
        """
        regions = {}
        for name, rect in self.region_rects(bounds).items():
            x, y, w, h = self.clip_rect(rect, frame.width, frame.height)
            if w == 0 or h == 0:
                regions[name] = empty_region(name, (x, y, w, h))
                continue
            crop = frame.rgb[y:y + h, x:x + w]
            regions[name] = self.normalize_exposure(crop, name, (x, y, w, h))
        return regions


def enhance_for_review(frame, target_luminance=TARGET_LUMINANCE, red_boost=1.35, contrast_blend=0.3):
    """
    Dermatological review rendering of a whole frame

    Normalizes global exposure, amplifies the Lab a (red-green) axis so
    inflammation stands out without shifting skin tone on the b axis, and
    blends an S-curve into L to lift fine texture.

    Parameters:
    ----------
    frame : RasterFrame
        Input frame
    target_luminance : float
        Mean luminance after exposure correction
    red_boost : float
        Multiplier on the a channel
    contrast_blend : float
        Share of the S-curve mixed into L

    Returns:
    -------
    enhanced : RasterFrame
        New frame, the input is not modified
    """
    rgb = frame.rgb.astype(np.float32)

    # Exposure correction from a sparse luminance sample
    sample = luminance(rgb.reshape(-1, 3)[::10])
    mean = float(sample.mean()) if sample.size else 127.0
    factor = target_luminance / (mean or 1.0)
    rgb = np.clip(rgb * factor, 0.0, 255.0)

    lab = rgb_to_lab(rgb)
    lab[..., 1] *= red_boost

    # S-curve on normalized lightness
    norm_l = lab[..., 0] / 100.0
    curved = np.where(norm_l < 0.5, 2 * norm_l * norm_l, -1 + (4 - 2 * norm_l) * norm_l)
    lab[..., 0] = (norm_l * (1 - contrast_blend) + curved * contrast_blend) * 100.0

    enhanced = np.round(lab_to_rgb(lab)).astype(np.uint8)
    return RasterFrame(enhanced)


@dataclass(frozen=True)
class ClinicalMarker:
    x: int
    y: int
    kind: str  # 'inflammation' or 'dark_spot'


def detect_clinical_markers(frame, bounds, step=6, redness_margin=15.0, darkness_margin=25.0):
    """
    Flag inflamed and dark pixels inside the face ellipse

    Each sampled skin pixel is compared against the face's own mean L and a,
    so markers follow the subject's baseline rather than a fixed palette.

    Parameters:
    ----------
    frame : RasterFrame
        Frame to inspect (typically the review enhancement of a capture)
    bounds : FaceBounds
        Located face
    step : int
        Sampling stride in pixels

    Returns:
    -------
    markers : list
        ClinicalMarker entries, empty when no face was located
    """
    if not bounds.found:
        return []

    y0 = max(0, int(math.floor(bounds.cy - bounds.face_height * 0.45)))
    y1 = min(frame.height, int(math.ceil(bounds.cy + bounds.face_height * 0.5)))
    x0 = max(0, int(math.floor(bounds.cx - bounds.face_width * 0.45)))
    x1 = min(frame.width, int(math.ceil(bounds.cx + bounds.face_width * 0.45)))
    if y0 >= y1 or x0 >= x1:
        return []

    ys, xs = np.mgrid[y0:y1:step, x0:x1:step]
    dx = (xs - bounds.cx) / (bounds.face_width * 0.5)
    dy = (ys - bounds.cy) / (bounds.face_height * 0.55)
    inside = dx * dx + dy * dy <= 1.0

    rgb = frame.rgb[ys, xs]
    candidates = inside & skin_mask(rgb)
    if not candidates.any():
        return []

    lab = rgb_to_lab(rgb[candidates].astype(np.float32))
    mean_l = lab[:, 0].mean()
    mean_a = lab[:, 1].mean()

    inflamed = lab[:, 1] > mean_a + redness_margin
    dark = ~inflamed & (lab[:, 0] < mean_l - darkness_margin)

    px, py = xs[candidates], ys[candidates]
    markers = [ClinicalMarker(int(x), int(y), 'inflammation') for x, y in zip(px[inflamed], py[inflamed])]
    markers += [ClinicalMarker(int(x), int(y), 'dark_spot') for x, y in zip(px[dark], py[dark])]
    return markers

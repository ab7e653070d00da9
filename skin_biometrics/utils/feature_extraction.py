"""
Per-attribute skin scoring algorithms.

Every function here is a pure function of normalized region pixels plus the
module constants. Scores are relative to the region's own statistics where
possible, which keeps them comparable across skin tones and lighting, and
every value is clamped to the metric range before it is returned.
"""
import logging

import cv2
import numpy as np

from ..models.skin_metrics import NEUTRAL_SCORE, SCORE_MIN, clamp_score
from .color_model import luminance, rgb_to_lab, saturation
from .image_preprocessing import TARGET_LUMINANCE

logger = logging.getLogger(__name__)

# Colour statistics use every 4th pixel
PIXEL_STRIDE = 4

ACNE_REDNESS_MARGIN = 18.0
SCAR_DARKNESS_MARGIN = 25.0
ACNE_PENALTY = 600.0
SCAR_PENALTY = 400.0

REDNESS_BASELINE_A = 13.0
REDNESS_PENALTY = 4.0

TEXTURE_FLAT_RESPONSE = 2.0
TEXTURE_EDGE_RESPONSE = 40.0
TEXTURE_PENALTY = 2.5

PORE_MARGIN = 15.0
BLACKHEAD_MARGIN = 30.0
PORE_PENALTY = 300.0
BLACKHEAD_PENALTY = 500.0

WRINKLE_FINE_RANGE = (15.0, 35.0)
WRINKLE_FINE_PENALTY = 150.0
WRINKLE_DEEP_PENALTY = 100.0

GLOW_LUMA_RANGE = (170.0, 245.0)
GLOW_MAX_SATURATION = 0.4
IDEAL_GLOW_RATIO = (0.12, 0.20)
HYDRATION_PENALTY = 300.0

SHINE_MIN_LUMA = 220.0
SHINE_MAX_SATURATION = 0.15
OILINESS_PENALTY = 600.0

DARK_CIRCLE_TOLERANCE = 5.0
DARK_CIRCLE_PENALTY = 2.5

SAGGING_BASE = 30.0
SAGGING_GAIN = 1.2
SAGGING_COLUMN_STRIDE = 4


def _usable(*regions):
    """
    Split regions into those that can be measured and a fallback score.

    Returns the measurable regions and ``None``, or an empty list and the
    score to report: neutral when nothing was captured, the floor when the
    only captured regions are black.
    """
    present = [r for r in regions if r is not None and not r.is_empty]
    usable = [r for r in present if not r.is_degenerate]
    if usable:
        return usable, None
    if present:
        return [], SCORE_MIN
    return [], NEUTRAL_SCORE


def _sample_lab(regions, stride=PIXEL_STRIDE):
    pixels = np.concatenate([r.flat_pixels(stride) for r in regions], axis=0)
    return rgb_to_lab(pixels)


def _share(mask):
    return float(mask.mean()) if mask.size else 0.0


def blemish_shares(region, stride=PIXEL_STRIDE):
    """
    Share of red-excess and dark-excess pixels relative to the region mean

    Returns:
    -------
    tuple
        (active_share, scar_share)
    """
    lab = _sample_lab([region], stride)
    mean_l = lab[:, 0].mean()
    mean_a = lab[:, 1].mean()
    active = lab[:, 1] > mean_a + ACNE_REDNESS_MARGIN
    scars = lab[:, 0] < mean_l - SCAR_DARKNESS_MARGIN
    return _share(active), _share(scars)


def score_acne_active(region, stride=PIXEL_STRIDE):
    usable, fallback = _usable(region)
    if fallback is not None:
        return fallback
    active, _ = blemish_shares(usable[0], stride)
    return clamp_score(100 - active * ACNE_PENALTY)


def score_acne_scars(region, stride=PIXEL_STRIDE):
    """Dark-excess density. Also used on the secondary cheek for pigmentation."""
    usable, fallback = _usable(region)
    if fallback is not None:
        return fallback
    _, scars = blemish_shares(usable[0], stride)
    return clamp_score(100 - scars * SCAR_PENALTY)


def score_redness(*regions, stride=PIXEL_STRIDE):
    """
    Average excess of Lab a over a fixed healthy baseline

    Parameters:
    ----------
    regions : RegionOfInterest
        Cheek and nose regions; empty ones are skipped

    Returns:
    -------
    int
        Clamped score, lower means redder skin
    """
    usable, fallback = _usable(*regions)
    if fallback is not None:
        return fallback
    a = _sample_lab(usable, stride)[:, 1]
    severity = float(np.maximum(0.0, a - REDNESS_BASELINE_A).mean())
    return clamp_score(100 - severity * REDNESS_PENALTY)


def texture_roughness(region):
    """
    Energy of mid-band Laplacian responses of the region luminance

    Flat responses (sensor noise) and very strong responses (hair, hard
    edges) are excluded. The result is the RMS of the in-band responses
    weighted by the share of pixels that fall in the band.
    """
    gray = luminance(region.pixels).astype(np.float32)
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return None

    blurred = cv2.GaussianBlur(gray, (3, 3), 0)
    response = np.abs(cv2.Laplacian(blurred, cv2.CV_32F, ksize=1))[1:-1, 1:-1]

    band = (response > TEXTURE_FLAT_RESPONSE) & (response < TEXTURE_EDGE_RESPONSE)
    if not band.any():
        return 0.0

    rms = float(np.sqrt(np.mean(response[band] ** 2)))
    return rms * _share(band)


def score_texture(*regions):
    usable, fallback = _usable(*regions)
    if fallback is not None:
        return fallback
    values = [v for v in (texture_roughness(r) for r in usable) if v is not None]
    if not values:
        return NEUTRAL_SCORE
    return clamp_score(100 - float(np.mean(values)) * TEXTURE_PENALTY)


def score_pores(region, stride=PIXEL_STRIDE):
    """
    Moderately dark (pores) and very dark (blackheads) spot density

    Returns:
    -------
    tuple
        (pore_size, blackheads) scores
    """
    usable, fallback = _usable(region)
    if fallback is not None:
        return fallback, fallback

    lightness = _sample_lab(usable, stride)[:, 0]
    mean_l = lightness.mean()
    blackheads = lightness < mean_l - BLACKHEAD_MARGIN
    pores = ~blackheads & (lightness < mean_l - PORE_MARGIN)

    return (clamp_score(100 - _share(pores) * PORE_PENALTY),
            clamp_score(100 - _share(blackheads) * BLACKHEAD_PENALTY))


def score_wrinkles(region):
    """
    Horizontal-line density on the forehead

    Luminance is compared with the pixel directly above on a 2-pixel
    lattice. Steps inside the fine band count as fine lines, larger steps
    as deep lines.

    Returns:
    -------
    tuple
        (wrinkle_fine, wrinkle_deep) scores
    """
    usable, fallback = _usable(region)
    if fallback is not None:
        return fallback, fallback

    gray = luminance(usable[0].pixels)
    h, w = gray.shape
    if h < 3 or w < 3:
        return NEUTRAL_SCORE, NEUTRAL_SCORE

    current = gray[1:h - 1:2, 1:w - 1:2]
    above = gray[0:h - 2:2, 1:w - 1:2]
    delta = np.abs(current - above)

    low, high = WRINKLE_FINE_RANGE
    fine = (delta > low) & (delta < high)
    deep = delta >= high

    return (clamp_score(100 - _share(fine) * WRINKLE_FINE_PENALTY),
            clamp_score(100 - _share(deep) * WRINKLE_DEEP_PENALTY))


def score_hydration(region, stride=PIXEL_STRIDE):
    """Distance of the healthy-glow pixel ratio from the ideal band."""
    usable, fallback = _usable(region)
    if fallback is not None:
        return fallback

    pixels = usable[0].flat_pixels(stride)
    luma = luminance(pixels)
    sat = saturation(pixels)
    low, high = GLOW_LUMA_RANGE
    ratio = _share((luma > low) & (luma < high) & (sat < GLOW_MAX_SATURATION))

    ideal_low, ideal_high = IDEAL_GLOW_RATIO
    deviation = max(0.0, ideal_low - ratio, ratio - ideal_high)
    return clamp_score(100 - deviation * HYDRATION_PENALTY)


def score_oiliness(region, stride=PIXEL_STRIDE):
    usable, fallback = _usable(region)
    if fallback is not None:
        return fallback

    pixels = usable[0].flat_pixels(stride)
    shine = (luminance(pixels) > SHINE_MIN_LUMA) & (saturation(pixels) < SHINE_MAX_SATURATION)
    return clamp_score(100 - _share(shine) * OILINESS_PENALTY)


def score_dark_circles(eye_region, cheek_region):
    """
    Under-eye darkness relative to the cheek

    Both regions are exposure-normalized independently, so the comparison
    uses their source luminance and expresses the gap on the normalized
    scale. That keeps the score independent of ambient light.
    """
    usable, fallback = _usable(eye_region)
    if fallback is not None:
        return fallback
    if cheek_region is None or cheek_region.is_empty or cheek_region.is_degenerate:
        return NEUTRAL_SCORE

    eye = usable[0].source_luminance
    cheek = cheek_region.source_luminance
    gap = max(0.0, TARGET_LUMINANCE * (1.0 - eye / cheek))
    return clamp_score(100 - max(0.0, gap - DARK_CIRCLE_TOLERANCE) * DARK_CIRCLE_PENALTY)


def score_sagging(region):
    """
    Jawline definition: mean over sampled columns of the sharpest vertical
    luminance step. A crisp jaw edge scores high, a soft one low.
    """
    usable, fallback = _usable(region)
    if fallback is not None:
        return fallback

    gray = luminance(usable[0].pixels)
    if gray.shape[0] < 2:
        return NEUTRAL_SCORE

    steps = np.abs(np.diff(gray, axis=0))[:, ::SAGGING_COLUMN_STRIDE]
    contrast = float(steps.max(axis=0).mean())
    return clamp_score(SAGGING_BASE + contrast * SAGGING_GAIN)


class SkinFeatureExtractor:
    """
    Run every scoring algorithm over a set of normalized regions

    Parameters:
    ----------
    pixel_stride : int
        Sampling stride for colour statistics
    """
    def __init__(self, pixel_stride=PIXEL_STRIDE):
        if pixel_stride < 1:
            raise ValueError("pixel_stride must be a positive integer")
        self.pixel_stride = pixel_stride

    def extract_scores(self, regions):
        """
        Measure raw attribute scores

        Parameters:
        ----------
        regions : dict
            Region name -> RegionOfInterest, as produced by RegionNormalizer

        Returns:
        -------
        scores : dict
            Attribute name -> clamped score. ``texture_roughness`` and
            ``secondary_scars`` are intermediate signals folded in by the
            aggregator; ``jaw_measured`` reports whether the jaw was in frame.
        """
        stride = self.pixel_stride
        forehead = regions.get('forehead')
        cheek = regions.get('left_cheek')
        secondary_cheek = regions.get('right_cheek')
        eye = regions.get('under_eye')
        nose = regions.get('nose')
        jaw = regions.get('jaw')

        wrinkle_fine, wrinkle_deep = score_wrinkles(forehead)
        pore_size, blackheads = score_pores(nose, stride)

        scores = {
            'acne_active': score_acne_active(cheek, stride),
            'acne_scars': score_acne_scars(cheek, stride),
            'secondary_scars': score_acne_scars(secondary_cheek, stride),
            'redness': score_redness(cheek, nose, stride=stride),
            'texture_roughness': score_texture(cheek, nose),
            'pore_size': pore_size,
            'blackheads': blackheads,
            'wrinkle_fine': wrinkle_fine,
            'wrinkle_deep': wrinkle_deep,
            'hydration': score_hydration(cheek, stride),
            'oiliness': score_oiliness(forehead, stride),
            'dark_circles': score_dark_circles(eye, cheek),
            'sagging': score_sagging(jaw),
            'jaw_measured': jaw is not None and not jaw.is_empty,
        }
        logger.debug("Raw attribute scores: %s", scores)
        return scores

import warnings

import numpy as np
from skimage import color

# Luma weights (ITU-R BT.601), used for every luminance statistic
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def _as_unit_rgb(pixels):
    """Clip 0-255 RGB values and rescale them to [0, 1] for scikit-image."""
    pixels = np.asarray(pixels, dtype=np.float64)
    return np.clip(pixels, 0.0, 255.0) / 255.0


def to_lab(r, g, b):
    """
    Convert one sRGB colour to CIE L*a*b* (D65 white point)

    Parameters:
    ----------
    r, g, b : float
        Channel values on the 0-255 scale

    Returns:
    -------
    tuple
        (L, a, b) with L in [0, 100]
    """
    lab = color.rgb2lab(_as_unit_rgb([[[r, g, b]]]), illuminant='D65')
    L, a, b_ = lab[0, 0]
    return float(L), float(a), float(b_)


def to_rgb(L, a, b):
    """
    Convert one CIE L*a*b* colour back to sRGB

    Out-of-gamut colours are clipped to the displayable range.

    Returns:
    -------
    tuple
        (r, g, b) integers on the 0-255 scale
    """
    lab = np.array([[[L, a, b]]], dtype=np.float64)
    rgb = color.lab2rgb(lab, illuminant='D65')[0, 0]
    rgb = np.clip(np.round(rgb * 255.0), 0, 255).astype(int)
    return int(rgb[0]), int(rgb[1]), int(rgb[2])


def rgb_to_lab(pixels):
    """
    Vectorised RGB -> Lab for an array whose last axis holds R, G, B (0-255).
    """
    pixels = np.asarray(pixels)
    if pixels.size == 0:
        return np.empty(pixels.shape[:-1] + (3,), dtype=np.float64)
    shape = pixels.shape
    lab = color.rgb2lab(_as_unit_rgb(pixels).reshape(1, -1, 3), illuminant='D65')
    return lab.reshape(shape[:-1] + (3,))


def lab_to_rgb(lab):
    """Vectorised Lab -> RGB, returning float values on the 0-255 scale."""
    lab = np.asarray(lab, dtype=np.float64)
    if lab.size == 0:
        return np.empty(lab.shape, dtype=np.float64)
    shape = lab.shape
    # Out-of-gamut colours are clipped below
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', UserWarning)
        rgb = color.lab2rgb(lab.reshape(1, -1, 3), illuminant='D65')
    return np.clip(rgb.reshape(shape) * 255.0, 0.0, 255.0)


def luminance(pixels):
    """Weighted grayscale value of RGB pixels (last axis = channels)."""
    pixels = np.asarray(pixels, dtype=np.float32)
    return pixels[..., :3] @ LUMA_WEIGHTS


def saturation(pixels):
    """
    HSV-style saturation, (max - min) / max, defined as 0 for black pixels.
    """
    pixels = np.asarray(pixels, dtype=np.float32)[..., :3]
    high = pixels.max(axis=-1)
    low = pixels.min(axis=-1)
    # Black pixels have no defined saturation
    with np.errstate(divide='ignore', invalid='ignore'):
        sat = np.where(high > 0, (high - low) / high, 0.0)
    return sat

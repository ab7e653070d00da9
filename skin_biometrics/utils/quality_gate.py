import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .color_model import luminance
from .face_localizer import HeuristicFaceLocalizer

logger = logging.getLogger(__name__)

MIN_FACE_FRACTION = 0.15
TOO_FAR_FRACTION = 0.25
TOO_CLOSE_FRACTION = 0.85
LOW_LIGHT_LUMA = 40.0
OVEREXPOSED_LUMA = 230.0
MAX_MOTION_FRACTION = 0.1
LIGHT_PATCH_RADIUS = 2


class ReasonCode(str, Enum):
    OK = "OK"
    NO_FACE = "NO_FACE"
    TOO_FAR = "TOO_FAR"
    TOO_CLOSE = "TOO_CLOSE"
    LOW_LIGHT = "LOW_LIGHT"
    OVEREXPOSED = "OVEREXPOSED"
    UNSTABLE = "UNSTABLE"


# Status line and user instruction shown by the capture screen
GUIDANCE = {
    ReasonCode.OK: ("Perfect", "Hold steady..."),
    ReasonCode.NO_FACE: ("No Face", "Position face in circle"),
    ReasonCode.TOO_FAR: ("Move Closer", "Move Closer"),
    ReasonCode.TOO_CLOSE: ("Too Close", "Back up slightly"),
    ReasonCode.LOW_LIGHT: ("Low Light", "Face light source"),
    ReasonCode.OVEREXPOSED: ("Too Bright", "Reduce glare"),
    ReasonCode.UNSTABLE: ("Hold Still", "Hold Still"),
}


@dataclass(frozen=True)
class FrameCheck:
    acceptable: bool
    reason_code: ReasonCode
    face_center: Optional[Tuple[float, float]] = None

    @property
    def message(self):
        return GUIDANCE[self.reason_code][0]

    @property
    def instruction(self):
        return GUIDANCE[self.reason_code][1]


def center_luminance(frame, cx, cy, radius=LIGHT_PATCH_RADIUS):
    """Mean luminance of a small patch around the face centre."""
    x = min(max(int(math.floor(cx)), 0), frame.width - 1)
    y = min(max(int(math.floor(cy)), 0), frame.height - 1)
    patch = frame.rgb[max(0, y - radius):y + radius + 1, max(0, x - radius):x + radius + 1]
    return float(luminance(patch).mean())


def validate_frame(frame, previous_face_center=None, localizer=None):
    """
    Pre-flight check deciding whether a frame may be scored

    Checks run in order: face presence, face size, lighting at the face
    centre, then movement since the previous accepted frame. The first
    failing check is reported.

    Parameters:
    ----------
    frame : RasterFrame
        Candidate frame
    previous_face_center : tuple, optional
        (cx, cy) of the face in the previous frame
    localizer : FaceLocalizer, optional
        Defaults to the heuristic skin-pixel localizer

    Returns:
    -------
    FrameCheck
        ``acceptable`` is True only for ReasonCode.OK
    """
    localizer = localizer or HeuristicFaceLocalizer()
    bounds = localizer.locate(frame)
    width = frame.width

    if bounds.face_width < width * MIN_FACE_FRACTION:
        return FrameCheck(False, ReasonCode.NO_FACE)

    center = bounds.center

    if bounds.face_width < width * TOO_FAR_FRACTION:
        return FrameCheck(False, ReasonCode.TOO_FAR, center)
    if bounds.face_width > width * TOO_CLOSE_FRACTION:
        return FrameCheck(False, ReasonCode.TOO_CLOSE, center)

    luma = center_luminance(frame, bounds.cx, bounds.cy)
    if luma < LOW_LIGHT_LUMA:
        return FrameCheck(False, ReasonCode.LOW_LIGHT, center)
    if luma > OVEREXPOSED_LUMA:
        return FrameCheck(False, ReasonCode.OVEREXPOSED, center)

    if previous_face_center is not None:
        px, py = previous_face_center
        moved = math.hypot(bounds.cx - px, bounds.cy - py)
        if moved > width * MAX_MOTION_FRACTION:
            logger.debug("Face moved %.1f px since previous frame", moved)
            return FrameCheck(False, ReasonCode.UNSTABLE, center)

    return FrameCheck(True, ReasonCode.OK, center)

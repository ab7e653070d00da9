"""
Wire schema for the external refinement service.

The service answers with camelCase JSON. Every field is optional so a
partial answer can still be merged over the local measurement.
"""
import math
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .skin_metrics import SCORE_FIELDS, round_half_up


def _round_number(value):
    # Whole numbers pass through, anything non-numeric is left for validation
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if not math.isfinite(value):
        return None
    return round_half_up(value)


class RefinementResponse(BaseModel):
    """Validated refinement answer"""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    overall_score: Optional[int] = Field(None, alias='overallScore')
    acne_active: Optional[int] = Field(None, alias='acneActive')
    acne_scars: Optional[int] = Field(None, alias='acneScars')
    pore_size: Optional[int] = Field(None, alias='poreSize')
    blackheads: Optional[int] = None
    wrinkle_fine: Optional[int] = Field(None, alias='wrinkleFine')
    wrinkle_deep: Optional[int] = Field(None, alias='wrinkleDeep')
    sagging: Optional[int] = None
    pigmentation: Optional[int] = None
    redness: Optional[int] = None
    texture: Optional[int] = None
    hydration: Optional[int] = None
    oiliness: Optional[int] = None
    dark_circles: Optional[int] = Field(None, alias='darkCircles')
    skin_age: Optional[int] = Field(None, alias='skinAge')
    stability_rating: Optional[int] = Field(None, alias='stabilityRating')
    analysis_summary: Optional[str] = Field(None, alias='analysisSummary')
    observations: Dict[str, str] = Field(default_factory=dict)

    @field_validator(*SCORE_FIELDS, 'skin_age', mode='before')
    @classmethod
    def _round_scores(cls, value):
        return _round_number(value)

    @field_validator('stability_rating', mode='before')
    @classmethod
    def _numeric_rating(cls, value):
        value = _round_number(value)
        return value if isinstance(value, int) and not isinstance(value, bool) else None

    @field_validator('stability_rating')
    @classmethod
    def _rating_in_range(cls, value):
        # Out-of-range ratings are unverifiable, treat them as absent
        if value is None or not 0 <= value <= 100:
            return None
        return value

    @field_validator('skin_age')
    @classmethod
    def _plausible_age(cls, value):
        if value is None or not 1 <= value <= 120:
            return None
        return value

    @field_validator('observations', mode='before')
    @classmethod
    def _drop_empty_notes(cls, value):
        if value is None:
            return {}
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if isinstance(v, str) and v.strip()}
        return value


class RefinementRequest(BaseModel):
    """Body sent to the refinement service."""
    model_config = ConfigDict(populate_by_name=True)

    image: str = Field(..., description="Base64 JPEG of the enhanced frame")
    mime_type: str = Field('image/jpeg', alias='mimeType')
    local_metrics: Dict[str, int] = Field(default_factory=dict, alias='localMetrics')
    history: list = Field(default_factory=list)
    minutes_since_last_scan: Optional[float] = Field(None, alias='minutesSinceLastScan')

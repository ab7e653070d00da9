from .frame import RasterFrame, FaceBounds, RegionOfInterest
from .skin_metrics import (
    SkinMetrics,
    MetricsBuffer,
    METRIC_NAMES,
    SCORE_FIELDS,
    SCORE_MIN,
    SCORE_MAX,
    NEUTRAL_SCORE,
    clamp_score,
    neutral_metrics,
)
from .history import ScanHistory, ScanHistoryStore, InMemoryScanHistoryStore
from .refinement_schema import RefinementRequest, RefinementResponse

__all__ = [
    'RasterFrame',
    'FaceBounds',
    'RegionOfInterest',
    'SkinMetrics',
    'MetricsBuffer',
    'METRIC_NAMES',
    'SCORE_FIELDS',
    'SCORE_MIN',
    'SCORE_MAX',
    'NEUTRAL_SCORE',
    'clamp_score',
    'neutral_metrics',
    'ScanHistory',
    'ScanHistoryStore',
    'InMemoryScanHistoryStore',
    'RefinementRequest',
    'RefinementResponse',
]

from .color_model import to_lab, to_rgb, rgb_to_lab, lab_to_rgb, luminance
from .face_localizer import HeuristicFaceLocalizer
from .image_preprocessing import RegionNormalizer, enhance_for_review, detect_clinical_markers
from .feature_extraction import SkinFeatureExtractor
from .aggregator import MetricAggregator
from .stabilization import ConsistencyProtocol, InMemoryAnalysisCache
from .quality_gate import ReasonCode, FrameCheck, validate_frame
from .skin_analyzer import SkinAnalyzer
from .refinement import HttpRefinementService, ScanRefiner, RefinementStatus

__all__ = [
    'to_lab',
    'to_rgb',
    'rgb_to_lab',
    'lab_to_rgb',
    'luminance',
    'HeuristicFaceLocalizer',
    'RegionNormalizer',
    'enhance_for_review',
    'detect_clinical_markers',
    'SkinFeatureExtractor',
    'MetricAggregator',
    'ConsistencyProtocol',
    'InMemoryAnalysisCache',
    'ReasonCode',
    'FrameCheck',
    'validate_frame',
    'SkinAnalyzer',
    'HttpRefinementService',
    'ScanRefiner',
    'RefinementStatus',
]

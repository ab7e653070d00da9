import logging

from ..models.frame import RasterFrame
from ..models.skin_metrics import neutral_metrics, now_millis
from .aggregator import MetricAggregator
from .face_localizer import HeuristicFaceLocalizer
from .feature_extraction import SkinFeatureExtractor
from .image_preprocessing import RegionNormalizer
from .stabilization import ConsistencyProtocol

logger = logging.getLogger(__name__)


class SkinAnalyzer:
    """
    Frame-to-metrics pipeline

    Locates the face, slices and normalizes the anatomical regions, scores
    each attribute, aggregates the scores and finally stabilizes the record
    against the cache and the subject's history.

    Parameters:
    ----------
    localizer : FaceLocalizer, optional
        Face localization strategy (heuristic skin-pixel grid by default)
    normalizer : RegionNormalizer, optional
        Region slicing and exposure correction
    extractor : SkinFeatureExtractor, optional
        Per-attribute scoring
    cache : AnalysisCache, optional
        Fingerprint store shared by every analysis of this instance
    clock : callable, optional
        Returns the current time in epoch milliseconds
    protocol : ConsistencyProtocol, optional
        Overrides the stabilization protocol built from ``cache``/``clock``
    """
    def __init__(self,
                 localizer=None,
                 normalizer=None,
                 extractor=None,
                 cache=None,
                 clock=None,
                 protocol=None):
        self.clock = clock or now_millis
        self.localizer = localizer or HeuristicFaceLocalizer()
        self.normalizer = normalizer or RegionNormalizer()
        self.extractor = extractor or SkinFeatureExtractor()
        self.aggregator = MetricAggregator(clock=self.clock)
        self.protocol = protocol or ConsistencyProtocol(cache=cache, clock=self.clock)

    @staticmethod
    def _as_frame(frame):
        if isinstance(frame, RasterFrame):
            return frame
        return RasterFrame(frame)

    def locate_regions(self, frame):
        """
        Face bounds and normalized regions of a frame

        Returns:
        -------
        bounds : FaceBounds
        regions : dict
            Empty when no face was found
        """
        frame = self._as_frame(frame)
        bounds = self.localizer.locate(frame)
        if not bounds.found:
            return bounds, {}
        return bounds, self.normalizer.extract_regions(frame, bounds)

    def measure(self, frame):
        """
        Score one frame without consulting the cache or history

        Returns:
        -------
        SkinMetrics
            The neutral record when no face was found
        """
        frame = self._as_frame(frame)
        bounds, regions = self.locate_regions(frame)

        if not bounds.found:
            logger.info("No face found in %r, returning neutral metrics", frame)
            return neutral_metrics(self.clock())

        raw = self.extractor.extract_scores(regions)
        return self.aggregator.aggregate(raw)

    def analyze(self, frame, history=None, stability_rating=None):
        """
        Primary entry point: analyze a frame with memoization and damping

        Parameters:
        ----------
        frame : RasterFrame or numpy.ndarray
            Frame to analyze
        history : ScanHistory, optional
            Subject's previous scans, the latest one is the anchor
        stability_rating : int, optional
            Environment similarity rating in [0, 100] from the refinement
            service; anything else is ignored

        Returns:
        -------
        SkinMetrics
        """
        frame = self._as_frame(frame)
        return self.protocol.run(
            frame.fingerprint(),
            lambda: self.measure(frame),
            history=history,
            stability_rating=stability_rating,
        )

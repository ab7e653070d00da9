"""
Temporal consistency for repeated scans.

Three mechanisms keep scores steady between scans:

1. exact memoization of previously analyzed images by content fingerprint
2. anchoring on the subject's most recent scan when it is recent enough
3. damping, which blends each new score with the anchored one unless the
   change is large enough to be real
"""
import logging
import threading
from dataclasses import dataclass, replace
from typing import Protocol

from ..models.skin_metrics import SCORE_FIELDS, clamp_score, now_millis, round_half_up

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

RECENCY_WINDOW_MS = 48 * HOUR_MS
RAPID_RESCAN_MS = 5 * MINUTE_MS
RAPID_RESCAN_DAMPING = 0.9
SIMILAR_CONDITIONS_DAMPING = 0.6
STABILITY_RATING_THRESHOLD = 80
LARGE_CHANGE_THRESHOLD = 15


class AnalysisCache(Protocol):
    def get(self, fingerprint: str):
        ...

    def put(self, fingerprint: str, metrics) -> None:
        ...


class InMemoryAnalysisCache:
    """
    Process-lifetime fingerprint -> SkinMetrics store.

    Writes are first-wins, so racing writers for one fingerprint leave the
    same entry behind.
    """
    def __init__(self):
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, fingerprint):
        return self._entries.get(fingerprint)

    def put(self, fingerprint, metrics):
        with self._lock:
            self._entries.setdefault(fingerprint, metrics)

    def __contains__(self, fingerprint):
        return fingerprint in self._entries

    def __len__(self):
        return len(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()


def valid_stability_rating(rating):
    """Return the rating when it is a number in [0, 100], otherwise None."""
    if rating is None or isinstance(rating, bool):
        return None
    try:
        rating = float(rating)
    except (TypeError, ValueError):
        return None
    if not 0 <= rating <= 100:
        return None
    return rating


def stabilize_score(new_value, previous_value, damping, large_change=LARGE_CHANGE_THRESHOLD):
    """
    Blend one score with its anchored value

    Parameters:
    ----------
    new_value : int
        Fresh measurement
    previous_value : int
        Value from the anchor scan
    damping : float
        Weight given to the previous value, in [0, 1]
    large_change : int
        Differences above this are treated as real change and kept as-is

    Returns:
    -------
    int
        Clamped blended score
    """
    if previous_value is None or damping <= 0:
        return clamp_score(new_value)
    if abs(new_value - previous_value) > large_change:
        return clamp_score(new_value)
    return clamp_score(round_half_up(previous_value * damping + new_value * (1 - damping)))


@dataclass(frozen=True)
class Anchor:
    """The scan a new measurement is stabilized against."""
    metrics: object
    elapsed_ms: int

    @property
    def elapsed_minutes(self):
        return self.elapsed_ms / MINUTE_MS


class ConsistencyProtocol:
    """
    Memoize, anchor and damp analysis results

    Parameters:
    ----------
    cache : AnalysisCache, optional
        Fingerprint store; a fresh in-memory cache is used when omitted
    recency_window_ms : int
        Oldest anchor still considered, in milliseconds
    rapid_rescan_ms : int
        Anchors younger than this get the rapid-rescan damping
    large_change : int
        Score change treated as real rather than noise
    clock : callable, optional
        Returns the current time in epoch milliseconds
    """
    def __init__(self,
                 cache=None,
                 recency_window_ms=RECENCY_WINDOW_MS,
                 rapid_rescan_ms=RAPID_RESCAN_MS,
                 large_change=LARGE_CHANGE_THRESHOLD,
                 clock=None):
        self.cache = cache if cache is not None else InMemoryAnalysisCache()
        self.recency_window_ms = recency_window_ms
        self.rapid_rescan_ms = rapid_rescan_ms
        self.large_change = large_change
        self.clock = clock or now_millis

    def lookup(self, fingerprint):
        """Cached record for a fingerprint with a refreshed timestamp, or None."""
        cached = self.cache.get(fingerprint)
        if cached is None:
            return None
        logger.info("Returning cached analysis for fingerprint %s", fingerprint[:12])
        return cached.with_timestamp(self.clock())

    def find_anchor(self, history, now=None):
        """
        Most recent history entry, if it is usable as an anchor

        Entries stamped in the future or older than the recency window are
        ignored.
        """
        if history is None:
            return None
        latest = history.latest if hasattr(history, 'latest') else (history[-1] if history else None)
        if latest is None:
            return None

        now = self.clock() if now is None else now
        elapsed = now - latest.timestamp
        if elapsed < 0:
            logger.warning("Ignoring anchor scan stamped %d ms in the future", -elapsed)
            return None
        if elapsed > self.recency_window_ms:
            logger.debug("Latest scan is %.1f h old, no anchoring", elapsed / HOUR_MS)
            return None
        return Anchor(latest, elapsed)

    def damping_factor(self, anchor, stability_rating=None):
        """
        Weight given to the anchor scan

        Rapid rescans are damped hard. Older anchors are only damped when an
        externally supplied stability rating says conditions look the same,
        in proportion to that rating.
        """
        if anchor is None:
            return 0.0

        damping = 0.0
        if anchor.elapsed_ms < self.rapid_rescan_ms:
            damping = RAPID_RESCAN_DAMPING

        rating = valid_stability_rating(stability_rating)
        if rating is not None and rating >= STABILITY_RATING_THRESHOLD:
            damping = max(damping, SIMILAR_CONDITIONS_DAMPING * rating / 100.0)

        return damping

    def stabilize(self, metrics, history=None, stability_rating=None):
        """
        Blend a fresh record against the anchored scan

        Returns:
        -------
        SkinMetrics
            New record; the input is returned unchanged when no damping
            applies
        """
        anchor = self.find_anchor(history)
        damping = self.damping_factor(anchor, stability_rating)
        if damping == 0.0:
            return metrics

        previous = anchor.metrics
        blended = {
            name: stabilize_score(getattr(metrics, name), getattr(previous, name), damping, self.large_change)
            for name in SCORE_FIELDS
        }
        logger.debug("Stabilized against scan %.1f min old with damping %.2f",
                     anchor.elapsed_minutes, damping)
        return replace(metrics, **blended)

    def run(self, fingerprint, compute, history=None, stability_rating=None):
        """
        Full protocol for one image

        Parameters:
        ----------
        fingerprint : str
            Content hash of the analyzed image
        compute : callable
            Produces the fresh SkinMetrics; only called on a cache miss
        history : ScanHistory, optional
            Subject's previous scans
        stability_rating : int, optional
            Environment similarity rating in [0, 100]

        Returns:
        -------
        SkinMetrics
        """
        cached = self.lookup(fingerprint)
        if cached is not None:
            return cached

        result = self.stabilize(compute(), history, stability_rating)
        self.cache.put(fingerprint, result)
        return result

import math
import time
from collections import deque
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional

SCORE_MIN = 10
SCORE_MAX = 99
NEUTRAL_SCORE = 70

# Tracked attributes, in the order collaborators display them
METRIC_NAMES = (
    'acne_active',
    'acne_scars',
    'pore_size',
    'blackheads',
    'wrinkle_fine',
    'wrinkle_deep',
    'sagging',
    'pigmentation',
    'redness',
    'texture',
    'hydration',
    'oiliness',
    'dark_circles',
)

# All integer score fields subject to clamping and damping
SCORE_FIELDS = METRIC_NAMES + ('overall_score',)

# snake_case field -> camelCase wire name
WIRE_NAMES = {
    'overall_score': 'overallScore',
    'acne_active': 'acneActive',
    'acne_scars': 'acneScars',
    'pore_size': 'poreSize',
    'blackheads': 'blackheads',
    'wrinkle_fine': 'wrinkleFine',
    'wrinkle_deep': 'wrinkleDeep',
    'sagging': 'sagging',
    'pigmentation': 'pigmentation',
    'redness': 'redness',
    'texture': 'texture',
    'hydration': 'hydration',
    'oiliness': 'oiliness',
    'dark_circles': 'darkCircles',
    'timestamp': 'timestamp',
    'skin_age': 'skinAge',
    'analysis_summary': 'analysisSummary',
    'observations': 'observations',
}


def now_millis():
    return int(time.time() * 1000)


def round_half_up(value):
    """Round to the nearest integer with halves going up."""
    return int(math.floor(value + 0.5))


def clamp_score(value, low=SCORE_MIN, high=SCORE_MAX):
    """
    Clamp a raw score into the metric range and truncate it to an integer.

    NaN and infinite values map to the neutral score rather than leaking out
    of an algorithm.
    """
    if value is None or not math.isfinite(value):
        return NEUTRAL_SCORE
    return int(math.floor(max(low, min(high, value))))


@dataclass(frozen=True)
class SkinMetrics:
    """
    Aggregate result of one scan.

    Records are immutable; stabilization and refinement produce new records
    with ``dataclasses.replace``.
    """
    acne_active: int
    acne_scars: int
    pore_size: int
    blackheads: int
    wrinkle_fine: int
    wrinkle_deep: int
    sagging: int
    pigmentation: int
    redness: int
    texture: int
    hydration: int
    oiliness: int
    dark_circles: int
    overall_score: int
    timestamp: int
    skin_age: Optional[int] = None
    analysis_summary: Optional[str] = None
    observations: Dict[str, str] = field(default_factory=dict)

    def scores(self):
        """Mapping of every integer score field to its value."""
        return {name: getattr(self, name) for name in SCORE_FIELDS}

    def with_timestamp(self, timestamp):
        return replace(self, timestamp=int(timestamp))

    def to_payload(self):
        """Serialize to the camelCase structure shared with collaborators."""
        payload = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name == 'observations':
                value = dict(value)
            payload[WIRE_NAMES[f.name]] = value
        return payload

    @classmethod
    def from_payload(cls, payload):
        kwargs = {}
        for name, wire_name in WIRE_NAMES.items():
            if wire_name in payload:
                kwargs[name] = payload[wire_name]
        for name in SCORE_FIELDS:
            kwargs[name] = clamp_score(kwargs.get(name, NEUTRAL_SCORE))
        kwargs['timestamp'] = int(kwargs.get('timestamp', 0))
        kwargs['observations'] = dict(kwargs.get('observations') or {})
        return cls(**kwargs)


def neutral_metrics(timestamp=None):
    """The documented fallback record: every score neutral."""
    return SkinMetrics(
        **{name: NEUTRAL_SCORE for name in SCORE_FIELDS},
        timestamp=now_millis() if timestamp is None else int(timestamp),
    )


class MetricsBuffer:
    """
    Rolling buffer of per-frame metrics collected during a live capture.

    The capture loop pushes one record per sampled frame; ``average`` folds
    the buffer into a single record that is handed to stabilization.

    Parameters:
    ----------
    max_size : int
        Number of most recent frames kept
    """
    def __init__(self, max_size=30):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._frames = deque(maxlen=max_size)

    def push(self, metrics):
        self._frames.append(metrics)

    def clear(self):
        self._frames.clear()

    def __len__(self):
        return len(self._frames)

    def average(self, timestamp=None):
        """
        Average every score field over the buffered frames

        Returns:
        -------
        SkinMetrics
            Averaged record, or the neutral record when the buffer is empty
        """
        if not self._frames:
            return neutral_metrics(timestamp)

        count = len(self._frames)
        averaged = {
            name: clamp_score(round_half_up(sum(getattr(m, name) for m in self._frames) / count))
            for name in SCORE_FIELDS
        }
        ages = [m.skin_age for m in self._frames if m.skin_age is not None]

        return SkinMetrics(
            **averaged,
            timestamp=now_millis() if timestamp is None else int(timestamp),
            skin_age=round_half_up(sum(ages) / len(ages)) if ages else None,
        )

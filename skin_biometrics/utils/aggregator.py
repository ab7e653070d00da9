import logging

from ..models.skin_metrics import SkinMetrics, clamp_score, now_millis

logger = logging.getLogger(__name__)

# Perceived importance of each attribute in the overall score
METRIC_WEIGHTS = {
    'acne_active': 1.5,
    'redness': 1.5,
    'texture': 1.5,
    'pigmentation': 1.2,
    'pore_size': 1.0,
    'blackheads': 1.0,
    'wrinkle_fine': 0.8,
    'wrinkle_deep': 0.8,
    'sagging': 0.8,
    'hydration': 0.8,
    'oiliness': 0.8,
    'dark_circles': 0.5,
}

CRITICAL_METRICS = ('acne_active', 'redness', 'texture', 'hydration')
WEAKEST_LINK_THRESHOLD = 50
WEAKEST_LINK_CEILING = 65
WEAKEST_LINK_PENALTY = 0.5


def derive_metrics(raw):
    """
    Apply the cross-metric derivation rules

    - pigmentation is the scar-density signal measured on the secondary cheek
    - texture blends Laplacian roughness with fine lines, pores and scars
    - sagging falls back to fine lines when the jaw was out of frame

    Parameters:
    ----------
    raw : dict
        Output of SkinFeatureExtractor.extract_scores

    Returns:
    -------
    metrics : dict
        One clamped score per tracked attribute
    """
    metrics = {
        name: raw[name] for name in (
            'acne_active', 'acne_scars', 'pore_size', 'blackheads', 'wrinkle_fine',
            'wrinkle_deep', 'redness', 'hydration', 'oiliness', 'dark_circles',
        )
    }

    metrics['pigmentation'] = raw['secondary_scars']
    metrics['texture'] = clamp_score(
        (raw['texture_roughness'] + raw['wrinkle_fine'] + raw['pore_size'] + raw['acne_scars']) / 4
    )
    metrics['sagging'] = raw['sagging'] if raw.get('jaw_measured', True) else raw['wrinkle_fine']
    return metrics


def weighted_score(metrics, weights=None):
    weights = weights or METRIC_WEIGHTS
    total = sum(weights.values())
    return sum(metrics[name] * weight for name, weight in weights.items()) / total


def overall_score(metrics, weights=None):
    """
    Weighted mean with the weakest-link rule

    When any critical attribute falls below the threshold, the weighted mean
    is capped and reduced in proportion to how far that attribute fell, so
    one severely affected area cannot be hidden by healthy ones.
    """
    score = weighted_score(metrics, weights)
    weakest = min(metrics[name] for name in CRITICAL_METRICS)

    if weakest < WEAKEST_LINK_THRESHOLD:
        penalty = (WEAKEST_LINK_THRESHOLD - weakest) * WEAKEST_LINK_PENALTY
        logger.debug("Weakest-link penalty applied: weakest=%d penalty=%.1f", weakest, penalty)
        score = min(score, WEAKEST_LINK_CEILING) - penalty

    return clamp_score(score)


def estimate_skin_age(metrics, base_age=25, minimum_age=18):
    """Rough apparent age from ageing-related attributes."""
    age = float(base_age)
    for name, factor in (('wrinkle_deep', 0.5), ('wrinkle_fine', 0.2), ('sagging', 0.4), ('pigmentation', 0.2)):
        if metrics[name] < 90:
            age += (90 - metrics[name]) * factor
    if metrics['texture'] > 90:
        age -= 2
    if metrics['hydration'] > 90:
        age -= 1
    return int(max(minimum_age, age))


class MetricAggregator:
    """
    Fold raw attribute scores into a SkinMetrics record

    Parameters:
    ----------
    weights : dict, optional
        Attribute weights for the overall score
    clock : callable, optional
        Returns the current time in epoch milliseconds
    """
    def __init__(self, weights=None, clock=None):
        self.weights = dict(weights or METRIC_WEIGHTS)
        self.clock = clock or now_millis

    def aggregate(self, raw):
        metrics = derive_metrics(raw)
        return SkinMetrics(
            **metrics,
            overall_score=overall_score(metrics, self.weights),
            timestamp=self.clock(),
            skin_age=estimate_skin_age(metrics),
        )

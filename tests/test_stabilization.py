import threading

import pytest

from conftest import NOW_MS, make_metrics
from skin_biometrics.models.history import ScanHistory
from skin_biometrics.utils.stabilization import (
    HOUR_MS,
    MINUTE_MS,
    ConsistencyProtocol,
    InMemoryAnalysisCache,
    stabilize_score,
    valid_stability_rating,
)


@pytest.fixture
def protocol(cache, clock):
    return ConsistencyProtocol(cache=cache, clock=clock)


def history_at(age_ms, value=70):
    return ScanHistory([make_metrics(value, timestamp=NOW_MS - age_ms)])


class TestStabilizeScore:
    def test_small_change_is_damped(self):
        assert stabilize_score(72, 70, 0.9) == 70

    def test_large_change_passes_through(self):
        assert stabilize_score(40, 70, 0.9) == 40

    def test_no_damping(self):
        assert stabilize_score(72, 70, 0.0) == 72

    def test_halves_round_up(self):
        assert stabilize_score(71, 70, 0.5) == 71
        assert stabilize_score(70, 71, 0.5) == 71


class TestStabilityRating:
    @pytest.mark.parametrize("rating", [None, -1, 101, 150, "high", True])
    def test_invalid_ratings(self, rating):
        assert valid_stability_rating(rating) is None

    def test_valid_rating(self):
        assert valid_stability_rating(85) == 85


class TestAnchoring:
    def test_rapid_rescan_is_damped(self, protocol):
        result = protocol.stabilize(make_metrics(72), history_at(2 * MINUTE_MS))
        assert all(v == 70 for v in result.scores().values())

    def test_real_change_overrides_anchor(self, protocol):
        result = protocol.stabilize(make_metrics(40), history_at(2 * MINUTE_MS))
        assert result.overall_score == 40

    def test_stale_anchor_ignored(self, protocol):
        fresh = make_metrics(72)
        assert protocol.stabilize(fresh, history_at(49 * HOUR_MS)) == fresh

    def test_future_anchor_ignored(self, protocol):
        fresh = make_metrics(72)
        assert protocol.stabilize(fresh, history_at(-10 * MINUTE_MS)) == fresh

    def test_older_anchor_needs_high_rating(self, protocol):
        fresh = make_metrics(80)
        history = history_at(2 * HOUR_MS)
        assert protocol.stabilize(fresh, history) == fresh
        assert protocol.stabilize(fresh, history, stability_rating=79) == fresh
        assert protocol.stabilize(fresh, history, stability_rating=150) == fresh
        # damping 0.6 * 0.9 = 0.54
        assert protocol.stabilize(fresh, history, stability_rating=90).overall_score == 75

    def test_empty_history(self, protocol):
        fresh = make_metrics(72)
        assert protocol.stabilize(fresh, ScanHistory()) == fresh
        assert protocol.stabilize(fresh, None) == fresh

    def test_damping_factor(self, protocol):
        anchor = protocol.find_anchor(history_at(MINUTE_MS))
        assert protocol.damping_factor(anchor) == 0.9
        assert protocol.damping_factor(None, 100) == 0.0


class TestCache:
    def test_first_write_wins(self):
        cache = InMemoryAnalysisCache()
        cache.put('abc', make_metrics(60))
        cache.put('abc', make_metrics(90))
        assert cache.get('abc').overall_score == 60
        assert 'abc' in cache and len(cache) == 1

    def test_concurrent_writers_leave_one_entry(self):
        cache = InMemoryAnalysisCache()
        threads = [threading.Thread(target=cache.put, args=('abc', make_metrics(v))) for v in range(10, 90, 5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 1

    def test_run_memoizes_with_refreshed_timestamp(self, protocol, clock):
        calls = []

        def compute():
            calls.append(1)
            return make_metrics(80, timestamp=clock())

        first = protocol.run('fp', compute)
        clock.advance(MINUTE_MS)
        second = protocol.run('fp', compute)

        assert len(calls) == 1
        assert second.scores() == first.scores()
        assert second.timestamp == NOW_MS + MINUTE_MS

    def test_run_caches_stabilized_result(self, protocol, cache):
        result = protocol.run('fp', lambda: make_metrics(72), history=history_at(MINUTE_MS))
        assert result.overall_score == 70
        assert cache.get('fp').overall_score == 70

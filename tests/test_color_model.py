import numpy as np
import pytest

from skin_biometrics.utils.color_model import lab_to_rgb, luminance, rgb_to_lab, saturation, to_lab, to_rgb


class TestLabConversion:
    def test_white_and_black(self):
        L, a, b = to_lab(255, 255, 255)
        assert L == pytest.approx(100.0, abs=0.01)
        assert a == pytest.approx(0.0, abs=0.01)
        assert b == pytest.approx(0.0, abs=0.01)

        L, a, b = to_lab(0, 0, 0)
        assert L == pytest.approx(0.0, abs=0.01)

    def test_lightness_stays_in_range(self):
        rng = np.random.default_rng(7)
        lab = rgb_to_lab(rng.integers(0, 256, size=(50, 50, 3)))
        assert lab[..., 0].min() >= 0.0
        assert lab[..., 0].max() <= 100.0

    def test_red_has_positive_a(self):
        _, a, _ = to_lab(220, 90, 100)
        assert a > 30

    def test_round_trip_within_one_level(self):
        for colour in [(205, 160, 135), (30, 90, 200), (12, 250, 3), (128, 128, 128)]:
            back = to_rgb(*to_lab(*colour))
            assert all(abs(x - y) <= 1 for x, y in zip(colour, back))

    def test_out_of_gamut_is_clipped(self):
        r, g, b = to_rgb(50, 150, -150)
        assert all(0 <= c <= 255 for c in (r, g, b))

    def test_vectorised_matches_scalar(self):
        pixels = np.array([[[205, 160, 135], [30, 90, 200]]])
        lab = rgb_to_lab(pixels)
        assert lab.shape == (1, 2, 3)
        assert lab[0, 0] == pytest.approx(to_lab(205, 160, 135), abs=1e-6)
        assert lab_to_rgb(lab)[0, 1] == pytest.approx([30, 90, 200], abs=1)

    def test_empty_input(self):
        assert rgb_to_lab(np.empty((0, 3))).shape == (0, 3)


class TestLuminance:
    def test_gray_luminance_is_the_gray_level(self):
        assert float(luminance(np.array([120, 120, 120]))) == pytest.approx(120.0, abs=1e-3)

    def test_saturation_of_black_is_zero(self):
        assert float(saturation(np.array([0, 0, 0]))) == 0.0
        assert float(saturation(np.array([200, 100, 100]))) == pytest.approx(0.5)

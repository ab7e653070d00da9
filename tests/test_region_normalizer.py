import numpy as np
import pytest

from conftest import HEALTHY_SKIN, make_frame
from skin_biometrics.models.frame import FaceBounds
from skin_biometrics.utils.color_model import luminance
from skin_biometrics.utils.image_preprocessing import (
    MAX_EXPOSURE_GAIN,
    TARGET_LUMINANCE,
    RegionNormalizer,
    detect_clinical_markers,
    enhance_for_review,
)


class TestRegionRects:
    def test_layout_inside_frame(self, centered_bounds):
        rects = RegionNormalizer().region_rects(centered_bounds)
        assert set(rects) == {'forehead', 'left_cheek', 'right_cheek', 'under_eye', 'nose', 'jaw'}
        assert rects['forehead'] == (150, 105, 100, 30)
        x, y, w, h = rects['left_cheek']
        assert abs(x - 144) <= 1 and y == 213
        assert (w, h) == (50, 50)
        assert rects['right_cheek'][0] > x

    def test_clip_rect(self):
        assert RegionNormalizer.clip_rect((-10, -5, 30, 30), 100, 100) == (0, 0, 30, 30)
        assert RegionNormalizer.clip_rect((90, 90, 30, 30), 100, 100) == (90, 90, 10, 10)
        assert RegionNormalizer.clip_rect((120, 10, 30, 30), 100, 100) == (120, 10, 0, 30)


class TestExposureNormalization:
    def test_mean_luminance_hits_target(self):
        region = RegionNormalizer().normalize_exposure(np.full((20, 20, 3), 90.0))
        assert float(luminance(region.pixels).mean()) == pytest.approx(TARGET_LUMINANCE, abs=0.01)
        assert region.gain == pytest.approx(1.5)
        assert region.source_luminance == pytest.approx(90.0, abs=0.01)

    def test_gain_is_clamped_for_dim_regions(self):
        region = RegionNormalizer().normalize_exposure(np.full((20, 20, 3), 5.0))
        assert region.gain == MAX_EXPOSURE_GAIN
        assert not region.is_degenerate

    def test_black_region_is_degenerate(self):
        region = RegionNormalizer().normalize_exposure(np.zeros((20, 20, 3)))
        assert region.is_degenerate
        assert np.isfinite(region.pixels).all()

    def test_empty_crop(self):
        region = RegionNormalizer().normalize_exposure(np.empty((0, 0, 3)), 'jaw')
        assert region.is_empty
        assert region.name == 'jaw'


class TestExtractRegions:
    def test_all_regions_populated(self, skin_frame, centered_bounds):
        regions = RegionNormalizer().extract_regions(skin_frame, centered_bounds)
        for region in regions.values():
            assert not region.is_empty
            x, y, w, h = region.rect
            assert region.pixels.shape == (h, w, 3)

    def test_off_frame_regions_are_empty(self, skin_frame):
        # Face hugging the bottom-right corner pushes the jaw out of frame
        bounds = FaceBounds(390.0, 380.0, 200.0, 270.0)
        regions = RegionNormalizer().extract_regions(skin_frame, bounds)
        assert regions['jaw'].is_empty
        assert not regions['left_cheek'].is_empty


class TestReviewEnhancement:
    def test_returns_new_frame(self, skin_frame):
        before = skin_frame.pixels.copy()
        enhanced = enhance_for_review(skin_frame)
        assert enhanced is not skin_frame
        assert (enhanced.width, enhanced.height) == (skin_frame.width, skin_frame.height)
        assert np.array_equal(skin_frame.pixels, before)

    def test_redness_is_amplified(self):
        frame = make_frame(40, 40, background=(200, 120, 120))
        enhanced = enhance_for_review(frame)
        r, g, _ = enhanced.rgb[0, 0].astype(int)
        r0, g0, _ = frame.rgb[0, 0].astype(int)
        assert (r - g) > (r0 - g0) * (135.0 / float(luminance(frame.rgb[0, 0])))


class TestClinicalMarkers:
    def test_red_spot_flagged_as_inflammation(self, centered_bounds):
        frame = make_frame(400, 400, background=HEALTHY_SKIN,
                           patches=[(190, 190, 210, 210, (230, 60, 70))])
        markers = detect_clinical_markers(frame, centered_bounds)
        inflamed = [m for m in markers if m.kind == 'inflammation']
        assert inflamed
        assert all(190 <= m.x < 210 and 190 <= m.y < 210 for m in inflamed)

    def test_dark_spot_flagged(self, centered_bounds):
        frame = make_frame(400, 400, background=HEALTHY_SKIN,
                           patches=[(150, 150, 170, 170, (60, 40, 30))])
        markers = detect_clinical_markers(frame, centered_bounds)
        assert any(m.kind == 'dark_spot' for m in markers)

    def test_uniform_skin_has_no_markers(self, skin_frame, centered_bounds):
        assert detect_clinical_markers(skin_frame, centered_bounds) == []

    def test_no_face(self, skin_frame):
        assert detect_clinical_markers(skin_frame, FaceBounds(200.0, 200.0, 0.0, 0.0)) == []

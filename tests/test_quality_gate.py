import pytest

from conftest import HEALTHY_SKIN, make_frame
from skin_biometrics.utils.quality_gate import ReasonCode, validate_frame


def face_square(colour=HEALTHY_SKIN):
    return make_frame(640, 480, patches=[(220, 140, 420, 340, colour)])


class TestValidateFrame:
    def test_acceptable_frame(self, face_frame):
        check = validate_frame(face_frame)
        assert check.acceptable
        assert check.reason_code == ReasonCode.OK
        assert check.face_center == pytest.approx((310.0, 230.0))
        assert check.message == "Perfect"

    def test_no_face(self):
        check = validate_frame(make_frame(640, 480))
        assert not check.acceptable
        assert check.reason_code == ReasonCode.NO_FACE
        assert check.face_center is None

    def test_too_far(self):
        # 8x8 grid samples in a 1280 wide frame
        frame = make_frame(1280, 960, patches=[(600, 400, 760, 560, HEALTHY_SKIN)])
        assert validate_frame(frame).reason_code == ReasonCode.TOO_FAR

    def test_too_close(self):
        frame = make_frame(640, 480, background=HEALTHY_SKIN)
        assert validate_frame(frame).reason_code == ReasonCode.TOO_CLOSE

    def test_low_light(self):
        assert validate_frame(face_square((50, 30, 20))).reason_code == ReasonCode.LOW_LIGHT

    def test_overexposed(self):
        assert validate_frame(face_square((255, 245, 235))).reason_code == ReasonCode.OVEREXPOSED

    def test_movement_between_frames(self, face_frame):
        check = validate_frame(face_frame, previous_face_center=(100.0, 100.0))
        assert not check.acceptable
        assert check.reason_code == ReasonCode.UNSTABLE
        assert check.instruction == "Hold Still"

    def test_small_movement_is_fine(self, face_frame):
        assert validate_frame(face_frame, previous_face_center=(300.0, 235.0)).acceptable

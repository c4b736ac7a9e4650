"""DrowsinessFilter 单元测试"""

import pytest

from evaluators.drowsiness_filter import (
    DEFAULT_CONSEC_FRAMES,
    DEFAULT_EAR_THRESHOLD,
    DrowsinessFilter,
)
from models.data_models import AlertVerdict, DebounceState

ALERT = AlertVerdict.ALERT
DROWSY = AlertVerdict.DROWSY


def _feed(filt, ear, n):
    return [filt.update(ear) for _ in range(n)]


class TestDefaults:
    def test_default_constants(self):
        assert DEFAULT_EAR_THRESHOLD == 0.22
        assert DEFAULT_CONSEC_FRAMES == 15

    def test_initial_state(self):
        filt = DrowsinessFilter()
        assert filt.state == DebounceState(consecutive_low_frames=0, verdict=ALERT)


class TestOnset:
    def test_fifteen_low_frames_still_alert(self):
        filt = DrowsinessFilter()
        verdicts = _feed(filt, 0.10, 15)
        assert verdicts == [ALERT] * 15
        assert filt.consecutive_low_frames == 15

    def test_sixteenth_low_frame_triggers(self):
        filt = DrowsinessFilter()
        _feed(filt, 0.10, 15)
        assert filt.update(0.10) is DROWSY
        assert filt.consecutive_low_frames == 16

    def test_drowsy_is_sticky_while_low(self):
        filt = DrowsinessFilter()
        verdicts = _feed(filt, 0.10, 40)
        assert verdicts[15:] == [DROWSY] * 25

    def test_value_equal_to_threshold_is_not_low(self):
        filt = DrowsinessFilter()
        _feed(filt, 0.10, 10)
        assert filt.update(0.22) is ALERT
        assert filt.consecutive_low_frames == 0

    def test_interrupted_run_restarts_count(self):
        filt = DrowsinessFilter()
        _feed(filt, 0.10, 15)
        filt.update(0.30)
        verdicts = _feed(filt, 0.10, 15)
        assert verdicts == [ALERT] * 15

    def test_per_call_parameters_override(self):
        filt = DrowsinessFilter()
        assert filt.update(0.25, threshold=0.3, required_frames=0) is DROWSY

    def test_zero_required_frames_triggers_on_first_low_frame(self):
        filt = DrowsinessFilter(required_frames=0)
        assert filt.update(0.1) is DROWSY


class TestRelease:
    def test_single_good_frame_releases(self):
        filt = DrowsinessFilter()
        _feed(filt, 0.10, 20)
        assert filt.verdict is DROWSY
        assert filt.update(0.30) is ALERT
        assert filt.consecutive_low_frames == 0

    def test_reset(self):
        filt = DrowsinessFilter()
        _feed(filt, 0.10, 20)
        filt.reset()
        assert filt.state == DebounceState(0, ALERT)


class TestReleaseHysteresis:
    def test_band_keeps_drowsy(self):
        filt = DrowsinessFilter(release_threshold=0.26)
        _feed(filt, 0.10, 16)
        assert filt.update(0.24) is DROWSY
        assert filt.consecutive_low_frames == 0

    def test_release_above_band(self):
        filt = DrowsinessFilter(release_threshold=0.26)
        _feed(filt, 0.10, 16)
        assert filt.update(0.26) is ALERT

    def test_band_does_not_affect_alert_state(self):
        filt = DrowsinessFilter(release_threshold=0.26)
        assert filt.update(0.24) is ALERT

    def test_invalid_release_threshold(self):
        with pytest.raises(ValueError, match="release_threshold"):
            DrowsinessFilter(threshold=0.22, release_threshold=0.2)


class TestScenario:
    def test_end_to_end_sequence(self):
        """20 帧 0.15 + 5 帧 0.25 + 20 帧 0.10"""
        filt = DrowsinessFilter(threshold=0.22, required_frames=15)
        verdicts = _feed(filt, 0.15, 20) + _feed(filt, 0.25, 5) + _feed(filt, 0.10, 20)
        expected = [ALERT] * 15 + [DROWSY] * 5 + [ALERT] * 5 + [ALERT] * 15 + [DROWSY] * 5
        assert verdicts == expected

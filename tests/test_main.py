"""Tests for main.py DetectionSystem and session.config loading."""

import json
import logging
from unittest.mock import patch

import numpy as np
import pytest

from main import DetectionSystem
from models.data_models import SessionState
from session.config import DEFAULTS, load_config, merge_config, validate_config


class TestLoadConfig:
    """Test session.config.load_config."""

    def test_no_config_path_returns_defaults(self):
        config = load_config(None)
        assert config == DEFAULTS

    def test_defaults(self):
        assert DEFAULTS["ear_threshold"] == 0.22
        assert DEFAULTS["consec_frames"] == 15
        assert DEFAULTS["release_threshold"] is None

    def test_valid_config_file(self, tmp_path):
        cfg = {
            "ear_threshold": 0.25,
            "consec_frames": 20,
            "release_threshold": 0.28,
            "camera_index": 1,
            "mirror": False,
        }
        cfg_file = tmp_path / "config.json"
        cfg_file.write_text(json.dumps(cfg), encoding="utf-8")

        config = load_config(str(cfg_file))
        assert config["ear_threshold"] == 0.25
        assert config["consec_frames"] == 20
        assert config["release_threshold"] == 0.28
        assert config["camera_index"] == 1
        assert config["mirror"] is False

    def test_missing_config_file_uses_defaults(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = load_config("/nonexistent/path.json")
        assert config == DEFAULTS
        assert "配置文件不存在" in caplog.text

    def test_invalid_json_uses_defaults(self, tmp_path, caplog):
        cfg_file = tmp_path / "bad.json"
        cfg_file.write_text("not valid json {{{", encoding="utf-8")

        with caplog.at_level(logging.WARNING):
            config = load_config(str(cfg_file))
        assert config == DEFAULTS
        assert "配置文件格式错误" in caplog.text

    def test_partial_config_fills_defaults(self, tmp_path):
        cfg_file = tmp_path / "partial.json"
        cfg_file.write_text(json.dumps({"ear_threshold": 0.18}), encoding="utf-8")

        config = load_config(str(cfg_file))
        assert config["ear_threshold"] == 0.18
        assert config["consec_frames"] == DEFAULTS["consec_frames"]
        assert config["camera_index"] == DEFAULTS["camera_index"]

    def test_null_values_in_config_use_defaults(self, tmp_path):
        cfg_file = tmp_path / "nulls.json"
        cfg_file.write_text(json.dumps({"ear_threshold": None, "consec_frames": 10}), encoding="utf-8")

        config = load_config(str(cfg_file))
        assert config["ear_threshold"] == DEFAULTS["ear_threshold"]
        assert config["consec_frames"] == 10

    def test_extra_fields_ignored(self, tmp_path):
        cfg_file = tmp_path / "extra.json"
        cfg_file.write_text(json.dumps({"ear_threshold": 0.2, "unknown_field": 999}), encoding="utf-8")

        config = load_config(str(cfg_file))
        assert config["ear_threshold"] == 0.2
        assert "unknown_field" not in config

    def test_invalid_values_raise(self, tmp_path):
        cfg_file = tmp_path / "invalid.json"
        cfg_file.write_text(json.dumps({"consec_frames": -3}), encoding="utf-8")
        with pytest.raises(ValueError, match="consec_frames"):
            load_config(str(cfg_file))


class TestValidateConfig:
    @pytest.mark.parametrize("updates", [
        {"ear_threshold": 0},
        {"ear_threshold": -0.1},
        {"ear_threshold": "0.2"},
        {"consec_frames": 1.5},
        {"consec_frames": True},
        {"release_threshold": 0.1},
    ])
    def test_rejects(self, updates):
        with pytest.raises(ValueError):
            validate_config(dict(DEFAULTS, **updates))

    def test_merge_allows_clearing_release_threshold(self):
        config = dict(DEFAULTS, release_threshold=0.3)
        merged = merge_config(config, {"release_threshold": None, "ear_threshold": None})
        assert merged["release_threshold"] is None
        assert merged["ear_threshold"] == DEFAULTS["ear_threshold"]


@pytest.fixture
def system():
    with patch("main.AlarmPlayer") as mock_alarm_cls:
        s = DetectionSystem()
        s.mock_alarm = mock_alarm_cls.return_value
        yield s


class TestDetectionSystem:
    def test_init_defaults(self, system):
        assert system.config == DEFAULTS
        assert system.session.snapshot().state is SessionState.IDLE

    def test_init_with_config(self, tmp_path):
        cfg_file = tmp_path / "test_config.json"
        cfg_file.write_text(json.dumps({"ear_threshold": 0.15, "consec_frames": 30}), encoding="utf-8")

        with patch("main.AlarmPlayer"):
            s = DetectionSystem(config_path=str(cfg_file))
        assert s.session.config["ear_threshold"] == 0.15
        assert s.session.config["consec_frames"] == 30

    def test_init_muted(self):
        with patch("main.AlarmPlayer"):
            s = DetectionSystem(muted=True)
        assert s.session.snapshot().muted is True

    def test_mute_key(self, system):
        assert system.handle_key(ord("m")) is True
        assert system.session.snapshot().muted is True

    def test_unknown_key(self, system):
        assert system.handle_key(ord("x")) is False

    def test_start_key_from_idle(self, system):
        with patch.object(system.session, "start") as start:
            system.handle_key(ord("s"))
        start.assert_called_once()

    def test_retry_key(self, system):
        with patch.object(system.session, "retry") as retry:
            system.handle_key(ord("r"))
        retry.assert_called_once()

    def test_placeholder_when_idle(self, system):
        view = system.current_view()
        assert isinstance(view, np.ndarray)
        assert view.shape == (480, 640, 3)

    def test_stop_without_camera(self, system):
        """stop() should not raise even if camera was never opened."""
        system.stop()
        system.mock_alarm.close.assert_called_once()

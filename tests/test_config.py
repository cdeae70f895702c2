"""Tests for config.py - configuration defaults and validation."""

import pytest

from banknote_counter.config import Config, ScanConfig, VideoConfig, get_config, set_config


class TestScanConfig:
    """Tests for ScanConfig."""

    def test_defaults(self):
        """Test the default scan timings."""
        config = ScanConfig()

        assert config.threshold == 0.95
        assert config.validate_time == 2.0
        assert config.scan_wait_time == 5.0
        assert config.sum_reset_time == 20.0

    def test_empty_label_from_env(self, monkeypatch):
        monkeypatch.setenv("EMPTY_LABEL", "baseCase")

        assert ScanConfig().empty_label == "baseCase"

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_invalid_threshold(self, threshold):
        with pytest.raises(ValueError):
            ScanConfig(threshold=threshold)

    def test_negative_duration(self):
        with pytest.raises(ValueError):
            ScanConfig(sum_reset_time=-1.0)


class TestVideoConfig:
    """Tests for VideoConfig."""

    def test_numeric_source_is_camera_index(self, monkeypatch):
        monkeypatch.setenv("VIDEO_SOURCE", "1")

        assert VideoConfig().source == 1

    def test_path_source(self, monkeypatch):
        monkeypatch.setenv("VIDEO_SOURCE", "clips/notes.mp4")

        assert VideoConfig().source == "clips/notes.mp4"


class TestGlobalConfig:
    """Tests for get_config / set_config."""

    def test_set_config(self):
        config = Config(scan=ScanConfig(validate_time=1.0))
        set_config(config)

        assert get_config() is config
        assert get_config().scan.validate_time == 1.0

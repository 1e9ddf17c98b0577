"""Tests for settings and logging setup."""
import logging

import pytest
from pydantic import ValidationError

from surface_placement.utils.config import DetectionSettings
from surface_placement.utils.logging_config import setup_logging


class TestDetectionSettings:

    def test_defaults(self):
        settings = DetectionSettings()

        assert settings.horizontal_normal_threshold == 0.8
        assert settings.merge_threshold == 0.1
        assert settings.max_placements == 3
        assert settings.hit_test_ttl == 10.0
        assert settings.mesh_ttl == 30.0
        assert settings.eviction_grace == 60.0
        assert settings.detection_interval == pytest.approx(0.3)

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SURFACE_MAX_PLACEMENTS", "5")
        monkeypatch.setenv("SURFACE_KEYBOARD_TEMPLATE", "compact")

        settings = DetectionSettings()

        assert settings.max_placements == 5
        assert settings.keyboard_template == "compact"

    @pytest.mark.parametrize("field, value", [
        ("detection_interval_ms", 0),
        ("horizontal_normal_threshold", 1.5),
        ("merge_threshold", -0.1),
        ("min_surface_area", -1.0),
        ("max_placements", 0),
        ("keyboard_template", "piano"),
    ])
    def test_invalid_values_are_rejected(self, field, value):
        with pytest.raises(ValidationError):
            DetectionSettings(**{field: value})

    def test_active_threshold_cannot_be_below_visible(self):
        with pytest.raises(ValidationError):
            DetectionSettings(visibility_alignment_threshold=0.8, active_alignment_threshold=0.5)


class TestLogging:

    def test_log_files_are_created(self, tmp_path):
        settings = DetectionSettings(log_dir=str(tmp_path / "logs"), log_level="DEBUG")

        setup_logging(settings)
        logging.getLogger("surface_placement.test").error("boom")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert (tmp_path / "logs" / "surface_placement.log").exists()
        assert "boom" in (tmp_path / "logs" / "errors.log").read_text(encoding="utf-8")

import json

import pytest

from analytics_config import AnalyticsConfig, FlowConfig, config_from_dict, load_config
from shared import DEFAULT_SHIFT_MINUTES, DowntimeCategory, round_half_up, safe_pct


class TestConfig:

    def test_defaults(self):
        config = load_config()
        assert config.utilization.default_shift_minutes == DEFAULT_SHIFT_MINUTES
        assert config.utilization.review_threshold == 80.0
        assert config.flow.critical_blocked_ratio == 0.5
        assert "external_processing" in config.flow.informational_categories
        assert config.reason_lookup["tool change"] == DowntimeCategory.TOOLING

    def test_overrides(self):
        config = config_from_dict({
            "flow": {"high_aging_hours": 48, "informational_categories": []},
            "utilization": {"default_shift_minutes": 480, "review_threshold": 85},
            "reason_categories": {"Robot Fault": "Machine"},
        })
        assert config.flow.high_aging_hours == 48
        assert config.flow.informational_categories == frozenset()
        assert config.utilization.default_shift_minutes == 480
        assert config.utilization.review_threshold == 85
        assert config.reason_lookup["robot fault"] == DowntimeCategory.MACHINE
        # Built-in reasons are kept
        assert config.reason_lookup["no power"] == DowntimeCategory.POWER

    def test_config_is_immutable(self):
        config = AnalyticsConfig()
        with pytest.raises(Exception):
            config.flow.critical_aged_count = 10
        with pytest.raises(TypeError):
            config.reason_categories["New"] = DowntimeCategory.OTHER

    @pytest.mark.parametrize("data", [
        {"flows": {}},
        {"flow": {"bogus": 1}},
        {"flow": {"critical_blocked_ratio": "high"}},
        {"reason_categories": {"X": "Gremlins"}},
        {"utilization": {"default_shift_minutes": -5}},
        {"flow": {"medium_aging_hours": 100}},
    ])
    def test_bad_config_rejected(self, data):
        with pytest.raises(ValueError):
            config_from_dict(data)

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"flow": {"critical_aged_count": 5}}), encoding="utf-8")
        config = load_config(path)
        assert config.flow.critical_aged_count == 5
        assert config.flow == FlowConfig(critical_aged_count=5)


class TestRounding:

    def test_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.125, 2) == 0.13
        assert round_half_up(-2.5) == -3

    def test_safe_pct(self):
        assert safe_pct(1, 0) == 0.0
        assert safe_pct(1, 3) == 33.3
        assert safe_pct(945, 1380, ndigits=2) == 68.48

"""Tests for MapConfig validation."""

import pytest

from feedmap.config import ColorRule, MapConfig, get_project_root, print_config
from feedmap.errors import ConfigurationError


class TestValidate:
    """validate() is the only place configuration errors are raised."""

    def test_defaults_are_valid(self):
        """The default configuration validates."""
        config = MapConfig().validate()
        assert config.styling_mode == "classified"
        assert config.default_label == "tiny"

    def test_thresholds_sorted_descending(self):
        """Thresholds come back highest bound first, as floats."""
        config = MapConfig(thresholds=[(1, "small", 2), (4.5, "large", 10), (2.5, "medium", 5)]).validate()
        assert [row[0] for row in config.thresholds] == [4.5, 2.5, 1.0]
        assert config.thresholds[0] == (4.5, "large", 10.0)

    def test_validate_returns_copy(self):
        """The original instance is not modified."""
        original = MapConfig(thresholds=[(1, "small", 2), (3, "big", 4)])
        original.validate()
        assert original.thresholds[0] == (1, "small", 2)

    @pytest.mark.parametrize("changes", [
        {"styling_mode": "heatmap"},
        {"default_radius": 0},
        {"default_radius": -1},
        {"radius_bounds": (0, 10)},
        {"radius_bounds": (10, 5)},
        {"radius_bounds": 5},
        {"radius_scale": 0},
        {"thresholds": []},
        {"thresholds": [(1, "a", 2), (1, "b", 3)]},
        {"thresholds": [(1, "a")]},
        {"thresholds": [(1, "a", 0)]},
        {"color": "#ff0000"},
        {"color": ColorRule(mode="gradient")},
        {"color": ColorRule(mode="property")},
        {"geometry_render_map": {"Point": "hexagon"}},
        {"geometry_render_map": {"Triangle": "path"}},
        {"refresh_interval_ms": -5},
        {"popup_template": None},
        {"popup_template": "{place"},
        {"tooltip_template": 42},
        {"retries": -1},
        {"timeout_s": 0},
    ])
    def test_rejects(self, changes):
        """Unusable settings raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            MapConfig(**changes).validate()

    def test_continuous_needs_no_thresholds(self):
        """Continuous mode does not require a threshold table."""
        config = MapConfig(styling_mode="continuous", thresholds=[]).validate()
        assert config.thresholds == ()

    def test_callable_templates_allowed(self):
        """Templates may be callables."""
        MapConfig(popup_template=lambda f: "x", tooltip_template=lambda f: "y").validate()

    def test_with_options(self):
        """with_options derives a changed copy."""
        config = MapConfig().with_options(fit_bounds=True)
        assert config.fit_bounds
        assert not MapConfig().fit_bounds


class TestColorRule:
    """ColorRule constructors."""

    def test_constant(self):
        """A constant rule uses the value as its default too."""
        rule = ColorRule.constant("#000000")
        assert rule.mode == "constant"
        assert rule.default == "#000000"

    def test_from_property(self):
        """Breaks are stored as a tuple."""
        rule = ColorRule.from_property("mag", breaks=[(4, "red")])
        assert rule.key == "mag"
        assert rule.breaks == ((4, "red"),)


def test_project_root_override(monkeypatch, tmp_path):
    """FEEDMAP_PROJECT_ROOT overrides the detected root."""
    monkeypatch.setenv("FEEDMAP_PROJECT_ROOT", str(tmp_path))
    assert get_project_root() == tmp_path.resolve()


def test_print_config(capsys):
    """print_config() reports the feed and styling settings."""
    print_config(MapConfig(styling_mode="continuous"))
    out = capsys.readouterr().out
    assert "FEEDMAP CONFIGURATION" in out
    assert "continuous" in out

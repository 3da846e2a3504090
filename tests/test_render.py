"""Tests for the collection renderer: accounting, order, determinism."""

import folium

from feedmap.features import parse_feature_collection
from feedmap.render import LayerGroup, render_collection
from tests.samples import (
    GEOMETRY_COLLECTION,
    LINE,
    MIXED_DOCUMENT,
    NO_GEOMETRY,
    POLYGON,
    classified_config,
    collection,
    continuous_config,
    quake,
)


def _render(doc, config=None):
    return render_collection(parse_feature_collection(doc), config or classified_config())


class TestRenderCollection:
    """Render a FeatureCollection into one LayerGroup."""

    def test_all_kinds_rendered(self):
        """Every feature of a clean document becomes a layer."""
        result = _render(MIXED_DOCUMENT)
        assert isinstance(result.group, LayerGroup)
        assert result.rendered_count == 6
        assert result.diagnostics == ()

    def test_order_preserved(self):
        """Layers keep collection (draw) order."""
        doc = collection(quake("a", 1.0), quake("b", 5.0), quake("c", 3.0))
        result = _render(doc)
        assert [layer.feature_id for layer in result.group] == ["a", "b", "c"]
        children = list(result.group.feature_group._children.values())
        assert children == [layer.primitive for layer in result.group]

    def test_counts_add_up(self):
        """rendered + diagnostics == records in the source document."""
        doc = collection(quake("a", 1.0), NO_GEOMETRY, quake("b", 2.0), GEOMETRY_COLLECTION, LINE)
        result = _render(doc)
        assert result.rendered_count == 3
        assert result.skipped_count == 2
        assert result.rendered_count + result.skipped_count == result.source_count == 5

    def test_empty_multi_geometry_skipped(self):
        """An empty MultiPoint is diagnosed while its neighbours still render."""
        empty = {
            "type": "Feature",
            "id": "empty-1",
            "geometry": {"type": "MultiPoint", "coordinates": []},
            "properties": {"mag": 2.0},
        }
        result = _render(collection(quake("a", 1.0), empty, quake("b", 2.0)))
        assert [layer.feature_id for layer in result.group] == ["a", "b"]
        assert [d.feature_id for d in result.diagnostics] == ["empty-1"]
        assert result.diagnostics[0].error == "MalformedGeometry"
        assert result.rendered_count + result.skipped_count == result.source_count == 3

    def test_render_stage_failures(self):
        """Kinds without a primitive are skipped at render time and diagnosed."""
        config = classified_config(geometry_render_map={"Point": "circle_marker"})
        result = _render(collection(quake("a", 1.0), POLYGON, LINE), config)
        assert [layer.feature_id for layer in result.group] == ["a"]
        assert [d.feature_id for d in result.diagnostics] == ["zone-1", "fault-1"]
        assert {d.stage for d in result.diagnostics} == {"render"}
        assert {d.error for d in result.diagnostics} == {"UnsupportedGeometryKind"}

    def test_template_failure_is_feature_local(self):
        """A popup callable failing on one feature does not stop the others."""
        config = classified_config(popup_template=lambda f: f.properties["alert"])
        doc = collection(quake("a", 1.0, alert="green"), quake("b", 2.0))
        result = _render(doc, config)
        assert [layer.feature_id for layer in result.group] == ["a"]
        assert result.diagnostics[0].error == "TemplateError"

    def test_empty_collection(self):
        """An empty collection renders an empty group."""
        result = _render(collection())
        assert len(result.group) == 0
        assert result.group.bounds() is None

    def test_group_name(self):
        """The group takes the configured or explicit name."""
        assert _render(collection()).group.name == "Feed"
        parsed = parse_feature_collection(collection())
        assert render_collection(parsed, classified_config(), name="Quakes").group.name == "Quakes"

    def test_bounds(self):
        """bounds() covers every rendered feature as [[s, w], [n, e]]."""
        result = _render(collection(quake("a", 1.0, lon=-120.0, lat=30.0), quake("b", 1.0, lon=-110.0, lat=40.0)))
        assert result.group.bounds() == [[30.0, -120.0], [40.0, -110.0]]

    def test_group_not_attached(self):
        """A freshly rendered group is off-surface."""
        group = _render(MIXED_DOCUMENT).group
        assert not group.is_attached
        assert isinstance(group.feature_group, folium.FeatureGroup)
        assert group.feature_group._parent is None


class TestDeterminism:
    """Same input + config gives the same layers."""

    def test_idempotent_render(self):
        """Rendering twice yields identical per-layer style and popup content."""
        collection_ = parse_feature_collection(MIXED_DOCUMENT)
        config = classified_config()
        first = render_collection(collection_, config)
        second = render_collection(collection_, config)
        assert first.group.summary() == second.group.summary()
        assert first.group is not second.group

    def test_idempotent_continuous(self):
        """Continuous mode is just as repeatable."""
        doc = collection(quake("a", 1.2), quake("b", None), quake("c", 7.5))
        assert _render(doc, continuous_config()).group.summary() == _render(doc, continuous_config()).group.summary()

    def test_summary_contents(self):
        """The summary carries style and popup per layer."""
        summary = _render(collection(quake("a", 4.6))).group.summary()
        assert summary[0]["style"]["radius"] == 10
        assert "Ridgecrest" in summary[0]["popup"]

"""
Layers module: build one folium primitive per feature and bind its popup.

Dispatch is table-driven: ``MapConfig.geometry_render_map`` picks a primitive
kind per geometry kind, and each primitive kind has exactly one builder in
``_BUILDERS``. Adding a primitive means adding a builder and a table entry.

Nothing here touches a map; attaching is the renderer's and session's job.
"""

from dataclasses import dataclass
import html
import string

import folium
from loguru import logger

from .errors import ConfigurationError, TemplateError, UnsupportedGeometryKind
from .features import GeometryKind


# ============================================================================
# POPUP TEMPLATES
# ============================================================================

class _BlankingFormatter(string.Formatter):
    """str.format over feature properties where absent/null fields render as ''."""

    def get_field(self, field_name, args, kwargs):
        # Whole field name is the property key ("a.b" is a key, not attribute access)
        return kwargs.get(field_name), field_name

    def convert_field(self, value, conversion):
        if value is None:
            return None
        return super().convert_field(value, conversion)

    def format_field(self, value, format_spec):
        if value is None:
            return ""
        try:
            text = super().format_field(value, format_spec)
        except (TypeError, ValueError):
            # e.g. '{mag:.1f}' applied to a string
            text = str(value)
        return html.escape(text)


class PopupTemplate:
    """
    Popup/tooltip text from a format string over feature properties.

    Example:
        PopupTemplate("<b>{place}</b><br>M {mag:.1f}")

    Property values are HTML-escaped; the template text itself is not.
    """

    _formatter = _BlankingFormatter()

    def __init__(self, template):
        try:
            list(self._formatter.parse(template))
        except ValueError as exc:
            raise ConfigurationError(f"Invalid popup template {template!r}: {exc}") from exc
        self.template = template

    def __call__(self, feature):
        return self._formatter.vformat(self.template, (), feature.properties)

    def __repr__(self):
        return f"PopupTemplate({self.template!r})"


def as_template(template):
    """Normalise a config template (str, callable or None) to a callable or None."""
    if template is None or callable(template):
        return template
    if isinstance(template, str):
        return PopupTemplate(template)
    raise ConfigurationError(f"Template must be a string or callable, got {type(template).__name__}")


def render_text(template, feature):
    template = as_template(template)
    if template is None:
        return None
    try:
        return str(template(feature))
    except Exception as exc:
        raise TemplateError(f"template failed for {feature.feature_id}: {exc}") from exc


# ============================================================================
# RENDERED LAYER
# ============================================================================

@dataclass(frozen=True)
class RenderedLayer:
    """A folium primitive built from one feature, with its bound popup."""

    feature_id: str
    index: int
    geometry_kind: GeometryKind
    primitive_kind: str
    primitive: object
    style: object
    popup_html: str | None
    tooltip: str | None = None

    def summary(self):
        return {
            "feature_id": self.feature_id,
            "geometry_kind": self.geometry_kind.value,
            "primitive_kind": self.primitive_kind,
            "style": self.style.as_dict(),
            "popup": self.popup_html,
            "tooltip": self.tooltip,
        }


def to_latlng(position):
    """GeoJSON (lon, lat[, alt]) -> Leaflet [lat, lon]."""
    return [position[1], position[0]]


def _latlngs(coordinates, depth):
    if depth == 0:
        return to_latlng(coordinates)
    return [_latlngs(item, depth - 1) for item in coordinates]


def _popup(popup_html, config):
    if popup_html is None:
        return None
    return folium.Popup(popup_html, max_width=config.popup_max_width)


# ============================================================================
# BUILDERS
# ============================================================================

def _point_locations(feature, latlng):
    if feature.kind.is_point_like:
        return [to_latlng(position) for position in feature.positions()]
    # Point primitive standing in for a line/polygon: draw at the anchor
    if latlng is None:
        latlng = feature.anchor
    return [list(latlng)]


def _group_points(feature, locations, make_one):
    if len(locations) == 1:
        return make_one(locations[0])
    group = folium.FeatureGroup(name=feature.feature_id, control=False)
    for location in locations:
        make_one(location).add_to(group)
    return group


def _build_marker(feature, latlng, style, popup_html, tooltip, config):
    def make_one(location):
        return folium.Marker(
            location=location,
            popup=_popup(popup_html, config),
            tooltip=tooltip,
        )
    return _group_points(feature, _point_locations(feature, latlng), make_one)


def _build_circle_marker(feature, latlng, style, popup_html, tooltip, config):
    def make_one(location):
        return folium.CircleMarker(
            location=location,
            radius=style.radius,
            popup=_popup(popup_html, config),
            tooltip=tooltip,
            color=style.stroke_color,
            weight=style.weight,
            fill=True,
            fill_color=style.fill_color,
            fill_opacity=style.fill_opacity,
        )
    return _group_points(feature, _point_locations(feature, latlng), make_one)


def _build_circle(feature, latlng, style, popup_html, tooltip, config):
    def make_one(location):
        return folium.Circle(
            location=location,
            radius=style.radius * config.circle_metres_per_pixel,
            popup=_popup(popup_html, config),
            tooltip=tooltip,
            color=style.stroke_color,
            weight=style.weight,
            fill=True,
            fill_color=style.fill_color,
            fill_opacity=style.fill_opacity,
        )
    return _group_points(feature, _point_locations(feature, latlng), make_one)


def _build_path(feature, latlng, style, popup_html, tooltip, config):
    if feature.kind.is_line_like:
        depth = 1 if feature.kind is GeometryKind.LINE_STRING else 2
        return folium.PolyLine(
            locations=_latlngs(feature.coordinates, depth),
            popup=_popup(popup_html, config),
            tooltip=tooltip,
            color=style.stroke_color,
            weight=style.weight,
        )

    if feature.kind.is_polygon_like:
        return folium.GeoJson(
            feature.to_geojson(),
            name=feature.feature_id,
            control=False,
            style_function=lambda x, s=style: {
                'fillColor': s.fill_color,
                'color': s.stroke_color,
                'weight': s.weight,
                'fillOpacity': s.fill_opacity,
            },
            popup=_popup(popup_html, config),
            tooltip=tooltip,
        )

    raise UnsupportedGeometryKind(f"{feature.kind.value} cannot be drawn as a path")


_BUILDERS = {
    "marker": _build_marker,
    "circle_marker": _build_circle_marker,
    "circle": _build_circle,
    "path": _build_path,
}


# ============================================================================
# FACTORY
# ============================================================================

def build_layer(feature, style, config, latlng=None):
    """
    Build the RenderedLayer for one feature.

    Args:
        feature: Parsed Feature.
        style: StyleSpec from the style resolver.
        config: Validated MapConfig (render map, templates, popup width).
        latlng: Anchor (lat, lon) for point primitives drawn on line or
            polygon kinds; defaults to ``feature.anchor``, computed only then.

    Returns:
        RenderedLayer (not attached to any map)

    Raises:
        UnsupportedGeometryKind: No primitive configured for the kind, or the
            configured primitive cannot draw it.
        TemplateError: A callable popup/tooltip template raised.
    """
    primitive_kind = config.geometry_render_map.get(feature.kind.value)
    builder = _BUILDERS.get(primitive_kind)
    if builder is None:
        raise UnsupportedGeometryKind(
            f"no primitive configured for {feature.kind.value} (got {primitive_kind!r})"
        )

    popup_html = render_text(config.popup_template, feature)
    tooltip = render_text(config.tooltip_template, feature)

    primitive = builder(feature, latlng, style, popup_html, tooltip, config)
    logger.debug(f"Built {primitive_kind} for {feature.kind.value} {feature.feature_id}")

    return RenderedLayer(
        feature_id=feature.feature_id,
        index=feature.index,
        geometry_kind=feature.kind,
        primitive_kind=primitive_kind,
        primitive=primitive,
        style=style,
        popup_html=popup_html,
        tooltip=tooltip,
    )

"""
Render module: turn a FeatureCollection into one attachable LayerGroup.
"""

from dataclasses import dataclass

import folium
import numpy as np
from loguru import logger

from .errors import Diagnostic, FeatureError, UnsupportedGeometryKind
from .layers import build_layer
from .styling import resolve_style


class LayerGroup:
    """
    Ordered RenderedLayers composed into a single folium FeatureGroup.

    The group is built off-surface; MapSession attaches and detaches it as a
    unit. ``attached_to`` is owned by MapSession.
    """

    def __init__(self, members, name="Feed", bounds=None):
        self.members = tuple(members)
        self.name = name
        self._bounds = bounds
        self.attached_to = None

        self.feature_group = folium.FeatureGroup(name=name)
        for member in self.members:
            member.primitive.add_to(self.feature_group)

    def __len__(self):
        return len(self.members)

    def __iter__(self):
        return iter(self.members)

    def __repr__(self):
        return f"LayerGroup(name={self.name!r}, layers={len(self)})"

    @property
    def is_attached(self):
        return self.attached_to is not None

    def bounds(self):
        """[[south, west], [north, east]] of the members, or None when empty."""
        return self._bounds

    def summary(self):
        """Plain per-layer dicts (id, kinds, style, popup) for diffing."""
        return [member.summary() for member in self.members]


@dataclass(frozen=True)
class RenderResult:
    group: LayerGroup
    diagnostics: tuple
    source_count: int

    @property
    def rendered_count(self):
        return len(self.group)

    @property
    def skipped_count(self):
        return len(self.diagnostics)


def _collection_bounds(features):
    if not features:
        return None
    boxes = np.array([feature.geometry.bounds for feature in features])
    west, south = boxes[:, 0].min(), boxes[:, 1].min()
    east, north = boxes[:, 2].max(), boxes[:, 3].max()
    return [[float(south), float(west)], [float(north), float(east)]]


def render_collection(collection, config, name=None):
    """
    Render every feature of ``collection`` into one LayerGroup.

    Features are styled and built in collection order; a feature that fails
    is recorded as a Diagnostic and left out. Parse diagnostics carried by the
    collection are passed through, so rendered + diagnostics always equals
    the number of records in the source document.

    Args:
        collection: FeatureCollection from ``features.parse_feature_collection``.
        config: Validated MapConfig.
        name: Layer-control name for the group (defaults to config.group_name).

    Returns:
        RenderResult
    """
    members = []
    rendered_features = []
    diagnostics = list(collection.diagnostics)

    for feature in collection:
        try:
            style = resolve_style(feature, config)
            members.append(build_layer(feature, style, config))
            rendered_features.append(feature)
        except FeatureError as exc:
            diagnostic = Diagnostic.from_error(feature.index, feature.feature_id, exc, stage="render")
            diagnostics.append(diagnostic)
            if isinstance(exc, UnsupportedGeometryKind):
                logger.warning(f"Skipping feature: {diagnostic}")
            else:
                logger.info(f"Skipping feature: {diagnostic}")

    group = LayerGroup(
        members,
        name=name or config.group_name,
        bounds=_collection_bounds(rendered_features),
    )
    logger.info(
        f"Rendered {len(group)} layers from {collection.source_count} records "
        f"({len(diagnostics)} skipped)"
    )

    return RenderResult(
        group=group,
        diagnostics=tuple(diagnostics),
        source_count=collection.source_count,
    )

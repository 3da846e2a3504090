"""
Features module: parse raw GeoJSON into Feature / FeatureCollection.

Coordinates are kept in GeoJSON order, (lon, lat[, alt]). Swapping to
Leaflet's (lat, lon) happens in the layer factory only.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
import json
import math
from numbers import Real

from loguru import logger
from shapely.geometry import shape

from .errors import (
    Diagnostic,
    FeatureError,
    MalformedCollection,
    MalformedGeometry,
    MalformedProperties,
    UnsupportedGeometryKind,
)


class GeometryKind(str, Enum):
    POINT = "Point"
    LINE_STRING = "LineString"
    POLYGON = "Polygon"
    MULTI_POINT = "MultiPoint"
    MULTI_LINE_STRING = "MultiLineString"
    MULTI_POLYGON = "MultiPolygon"

    @property
    def is_point_like(self):
        return self in (GeometryKind.POINT, GeometryKind.MULTI_POINT)

    @property
    def is_line_like(self):
        return self in (GeometryKind.LINE_STRING, GeometryKind.MULTI_LINE_STRING)

    @property
    def is_polygon_like(self):
        return self in (GeometryKind.POLYGON, GeometryKind.MULTI_POLYGON)


@dataclass(frozen=True)
class Feature:
    """One geographic record: a geometry plus non-spatial attributes.

    Attributes:
        kind: Geometry kind.
        coordinates: Nested tuples of (lon, lat[, alt]) positions.
        properties: Attribute mapping; may be empty, no keys are required.
        feature_id: GeoJSON ``id`` as a string, or ``feature-<index>``.
        index: Position of the record in the source document.
    """

    kind: GeometryKind
    coordinates: tuple
    properties: dict = field(default_factory=dict)
    feature_id: str = ""
    index: int = 0

    @cached_property
    def geometry(self):
        """Shapely geometry (built on first access)."""
        return shape({"type": self.kind.value, "coordinates": self.coordinates})

    @cached_property
    def anchor(self):
        """(lat, lon) used for markers and popups."""
        if self.kind is GeometryKind.POINT:
            return (self.coordinates[1], self.coordinates[0])
        if self.geometry.is_empty:
            raise MalformedGeometry(f"{self.kind.value} geometry is empty")
        point = self.geometry.representative_point()
        return (point.y, point.x)

    def positions(self):
        """Flat list of every (lon, lat[, alt]) position in the geometry."""
        depth = _DEPTHS[self.kind]
        items = [self.coordinates]
        for _ in range(depth):
            items = [child for item in items for child in item]
        return items

    def to_geojson(self):
        return {
            "type": "Feature",
            "id": self.feature_id,
            "geometry": {"type": self.kind.value, "coordinates": self.coordinates},
            "properties": dict(self.properties),
        }


@dataclass(frozen=True)
class FeatureCollection:
    """Ordered features (draw order) plus the records skipped while parsing."""

    features: tuple = ()
    diagnostics: tuple = ()
    source_count: int = 0
    metadata: dict = field(default_factory=dict)

    def __len__(self):
        return len(self.features)

    def __iter__(self):
        return iter(self.features)

    def to_geojson(self):
        return {
            "type": "FeatureCollection",
            "features": [feature.to_geojson() for feature in self.features],
        }


# ============================================================================
# COORDINATE VALIDATION
# ============================================================================

def _position(raw):
    if not isinstance(raw, (list, tuple)) or len(raw) not in (2, 3):
        raise MalformedGeometry(f"position must be [lon, lat] or [lon, lat, alt], got {raw!r}")
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
            raise MalformedGeometry(f"position values must be finite numbers, got {raw!r}")
    lon, lat = raw[0], raw[1]
    if not -180 <= lon <= 180:
        raise MalformedGeometry(f"longitude {lon} outside [-180, 180]")
    if not -90 <= lat <= 90:
        raise MalformedGeometry(f"latitude {lat} outside [-90, 90]")
    return tuple(float(value) for value in raw)


def _sequence(raw, what):
    if not isinstance(raw, (list, tuple)):
        raise MalformedGeometry(f"{what} must be an array, got {type(raw).__name__}")
    return raw


def _positions(raw, min_length=1, what="positions"):
    items = _sequence(raw, what)
    if len(items) < min_length:
        raise MalformedGeometry(f"{what} needs at least {min_length} positions, got {len(items)}")
    return tuple(_position(item) for item in items)


def _line(raw):
    return _positions(raw, min_length=2, what="line string")


def _ring(raw):
    ring = _positions(raw, min_length=4, what="linear ring")
    if ring[0][:2] != ring[-1][:2]:
        raise MalformedGeometry("polygon ring is not closed (first position != last)")
    return ring


def _polygon(raw):
    rings = _sequence(raw, "polygon")
    if not rings:
        raise MalformedGeometry("polygon needs at least one ring")
    return tuple(_ring(ring) for ring in rings)


def _multi(parser, what):
    def parse(raw):
        items = _sequence(raw, what)
        if not items:
            raise MalformedGeometry(f"{what} has no members")
        return tuple(parser(item) for item in items)
    return parse


_COORDINATE_PARSERS = {
    GeometryKind.POINT: _position,
    GeometryKind.MULTI_POINT: _multi(_position, "multi point"),
    GeometryKind.LINE_STRING: _line,
    GeometryKind.MULTI_LINE_STRING: _multi(_line, "multi line string"),
    GeometryKind.POLYGON: _polygon,
    GeometryKind.MULTI_POLYGON: _multi(_polygon, "multi polygon"),
}

# Nesting levels above a single position
_DEPTHS = {
    GeometryKind.POINT: 0,
    GeometryKind.MULTI_POINT: 1,
    GeometryKind.LINE_STRING: 1,
    GeometryKind.MULTI_LINE_STRING: 2,
    GeometryKind.POLYGON: 2,
    GeometryKind.MULTI_POLYGON: 3,
}


# ============================================================================
# PARSING
# ============================================================================

def parse_feature(raw, index=0):
    """
    Parse one GeoJSON Feature record.

    Args:
        raw: Decoded Feature object.
        index: Position of the record in its collection.

    Returns:
        Feature

    Raises:
        MalformedGeometry: Missing geometry/type or coordinates that do not fit the kind.
        UnsupportedGeometryKind: A geometry type outside the six supported kinds.
        MalformedProperties: ``properties`` present but not an object.
    """
    if not isinstance(raw, Mapping):
        raise MalformedGeometry(f"feature record must be an object, got {type(raw).__name__}")

    geometry = raw.get("geometry")
    if not isinstance(geometry, Mapping):
        raise MalformedGeometry("feature has no geometry object")

    geom_type = geometry.get("type")
    if not geom_type or not isinstance(geom_type, str):
        raise MalformedGeometry("geometry has no type")
    try:
        kind = GeometryKind(geom_type)
    except ValueError:
        raise UnsupportedGeometryKind(f"geometry type {geom_type!r} is not supported")

    if "coordinates" not in geometry:
        raise MalformedGeometry(f"{geom_type} geometry has no coordinates")
    coordinates = _COORDINATE_PARSERS[kind](geometry["coordinates"])

    properties = raw.get("properties")
    if properties is None:
        properties = {}
    elif not isinstance(properties, Mapping):
        raise MalformedProperties(
            f"properties must be an object, got {type(properties).__name__}"
        )

    feature_id = raw.get("id")
    feature_id = f"feature-{index}" if feature_id is None else str(feature_id)

    return Feature(
        kind=kind,
        coordinates=coordinates,
        properties=dict(properties),
        feature_id=feature_id,
        index=index,
    )


def parse_feature_collection(data):
    """
    Parse a decoded GeoJSON document into a FeatureCollection.

    Malformed records are skipped and recorded in ``diagnostics``; parsing
    always continues with the next record.

    Args:
        data: A FeatureCollection object, a single Feature, or a list of Features.

    Returns:
        FeatureCollection

    Raises:
        MalformedCollection: The document itself is not a feature collection.
    """
    metadata = {}
    if isinstance(data, Mapping):
        doc_type = data.get("type")
        if doc_type == "FeatureCollection":
            records = data.get("features")
            if not isinstance(records, list):
                raise MalformedCollection("FeatureCollection 'features' must be an array")
            if isinstance(data.get("metadata"), Mapping):
                metadata = dict(data["metadata"])
        elif doc_type == "Feature":
            records = [data]
        else:
            raise MalformedCollection(f"expected a FeatureCollection, got type {doc_type!r}")
    elif isinstance(data, list):
        records = data
    else:
        raise MalformedCollection(f"expected a GeoJSON object, got {type(data).__name__}")

    features = []
    diagnostics = []
    for index, raw in enumerate(records):
        try:
            features.append(parse_feature(raw, index))
        except FeatureError as exc:
            feature_id = raw.get("id") if isinstance(raw, Mapping) else None
            feature_id = None if feature_id is None else str(feature_id)
            diagnostic = Diagnostic.from_error(index, feature_id, exc, stage="parse")
            diagnostics.append(diagnostic)
            if isinstance(exc, UnsupportedGeometryKind):
                logger.warning(f"Skipping feature: {diagnostic}")
            else:
                logger.debug(f"Skipping feature: {diagnostic}")

    logger.debug(f"Parsed {len(features)} features, {len(diagnostics)} skipped")

    return FeatureCollection(
        features=tuple(features),
        diagnostics=tuple(diagnostics),
        source_count=len(records),
        metadata=metadata,
    )


def loads(text):
    """Decode JSON text/bytes and parse it as a feature collection."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as exc:
        raise MalformedCollection(f"invalid JSON: {exc}") from exc
    return parse_feature_collection(data)

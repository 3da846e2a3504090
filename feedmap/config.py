"""
Configuration module: paths, feed settings, styling defaults, and MapConfig.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
import os
import sys

from loguru import logger

from .errors import ConfigurationError

# ============================================================================
# PROJECT PATHS (all relative to PROJECT_ROOT)
# ============================================================================

def get_project_root():
    """Auto-detect project root by checking for the feedmap/ package folder."""
    env_root = os.getenv("FEEDMAP_PROJECT_ROOT")
    if env_root:
        return Path(env_root).expanduser().resolve()

    cwd = Path.cwd()

    # If already in project root
    if (cwd / "feedmap").exists():
        return cwd

    # If in scripts/ or webmap/
    if cwd.name in ["scripts", "webmap"] and (cwd.parent / "feedmap").exists():
        return cwd.parent

    # Fallback: the checkout this module lives in
    return Path(__file__).resolve().parent.parent

PROJECT_ROOT = get_project_root()

DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
MAPS_DIR = PROJECT_ROOT / "reports" / "maps"

OUTPUT_FILES = {
    "feed_snapshot": RAW_DIR / "feed_snapshot.geojson",
    "map_html": MAPS_DIR / "feed_map.html",
}

# ============================================================================
# FEED SETTINGS
# ============================================================================

# USGS summary feed: all earthquakes, past day (GeoJSON, no auth)
DEFAULT_FEED_URL = "https://earthquake.usgs.gov/earthquakes/feed/v1.0/summary/all_day.geojson"
FEED_URL = os.getenv("FEEDMAP_FEED_URL", DEFAULT_FEED_URL)

REFRESH_INTERVAL_MS = int(os.getenv("FEEDMAP_REFRESH_MS", "0")) or None
FETCH_TIMEOUT_S = 10.0
FETCH_RETRIES = 2
FETCH_BACKOFF_S = 0.5

# ============================================================================
# GEOSPATIAL CONSTANTS
# ============================================================================

# Web mapping CRS (WGS84, GeoJSON default)
CRS_WEB = "EPSG:4326"
CRS_WEB_ALIASES = {"EPSG:4326", "urn:ogc:def:crs:OGC:1.3:CRS84", "urn:ogc:def:crs:EPSG::4326"}

MAP_CENTER = (20.0, 0.0)  # (lat, lon)
MAP_ZOOM_START = 2
MAP_TILES = "OpenStreetMap"

# ============================================================================
# STYLING DEFAULTS
# ============================================================================

STYLING_MODES = ("continuous", "classified")
PRIMITIVE_KINDS = ("marker", "circle_marker", "circle", "path")

RADIUS_PROPERTY = "mag"
DEFAULT_RADIUS = 1.0
RADIUS_BOUNDS = (1.0, 30.0)
RADIUS_SCALE = 3.0

# (bound, label, radius), evaluated highest bound first with strict '>'
DEFAULT_THRESHOLDS = (
    (4.5, "large", 10.0),
    (2.5, "medium", 5.0),
    (1.0, "small", 2.0),
)
DEFAULT_LABEL = "tiny"  # fallback bucket at or below the lowest bound

DEFAULT_COLOR = "#3186cc"

# USGS PAGER alert levels
ALERT_PALETTE = {
    "green": "#1a9641",
    "yellow": "#fdae61",
    "orange": "#f46d43",
    "red": "#d7191c",
}

DEFAULT_GEOMETRY_RENDER_MAP = {
    "Point": "circle_marker",
    "MultiPoint": "circle_marker",
    "LineString": "path",
    "MultiLineString": "path",
    "Polygon": "path",
    "MultiPolygon": "path",
}

DEFAULT_POPUP_TEMPLATE = (
    "<b>{place}</b><br>"
    "Magnitude: {mag}<br>"
    '<a href="{url}" target="_blank">Details</a>'
)

# ============================================================================
# LOGGING & VERBOSITY
# ============================================================================

LOG_LEVEL = os.getenv("FEEDMAP_LOG_LEVEL", "INFO")  # DEBUG, INFO, WARNING, ERROR


def configure_logging(level=None):
    """Route loguru output to stderr at the configured level (scripts and app only)."""
    logger.remove()
    logger.add(sys.stderr, level=(level or LOG_LEVEL).upper())


# ============================================================================
# MAP CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class ColorRule:
    """How a feature's colour is chosen.

    Attributes:
        mode: "constant" (always ``value``) or "property" (read ``key``).
        value: Colour used in constant mode.
        key: Property name read in property mode.
        palette: Optional mapping from property value to colour.
        breaks: Optional ordered ``(bound, colour)`` table for numeric values,
            looked up highest bound first with strict '>'.
        default: Colour used when the property is absent or unmappable.
    """

    mode: str = "constant"
    value: str = DEFAULT_COLOR
    key: str | None = None
    palette: dict | None = None
    breaks: tuple = ()
    default: str = DEFAULT_COLOR

    @classmethod
    def constant(cls, value):
        return cls(mode="constant", value=value, default=value)

    @classmethod
    def from_property(cls, key, palette=None, breaks=(), default=DEFAULT_COLOR):
        return cls(mode="property", key=key, palette=palette, breaks=tuple(breaks), default=default)


@dataclass(frozen=True)
class MapConfig:
    """Everything the styling, rendering and refresh layers read.

    Instances are immutable; use ``dataclasses.replace`` (or ``with_options``)
    to derive variants. Call ``validate()`` once at startup: it is the only
    place configuration errors are fatal.
    """

    styling_mode: str = "classified"
    radius_property: str = RADIUS_PROPERTY
    radius_bounds: tuple = RADIUS_BOUNDS
    radius_scale: float = RADIUS_SCALE
    default_radius: float = DEFAULT_RADIUS
    thresholds: tuple = DEFAULT_THRESHOLDS
    default_label: str = DEFAULT_LABEL
    color: ColorRule = field(default_factory=lambda: ColorRule.constant(DEFAULT_COLOR))
    stroke_color: str | None = None
    weight: float = 1.0
    fill_opacity: float = 0.6
    popup_template: object = DEFAULT_POPUP_TEMPLATE
    tooltip_template: object = None
    popup_max_width: int = 250
    refresh_interval_ms: int | None = REFRESH_INTERVAL_MS
    geometry_render_map: dict = field(default_factory=lambda: dict(DEFAULT_GEOMETRY_RENDER_MAP))
    circle_metres_per_pixel: float = 1000.0
    group_name: str = "Feed"
    center: tuple = MAP_CENTER
    zoom_start: int = MAP_ZOOM_START
    tiles: str = MAP_TILES
    fit_bounds: bool = False
    feed_url: str = FEED_URL
    timeout_s: float = FETCH_TIMEOUT_S
    retries: int = FETCH_RETRIES
    backoff_s: float = FETCH_BACKOFF_S

    def with_options(self, **changes):
        return replace(self, **changes)

    def validate(self):
        """Check the configuration and return a normalised copy.

        Thresholds come back sorted by bound, highest first.

        Raises:
            ConfigurationError: On any unusable setting.
        """
        if self.styling_mode not in STYLING_MODES:
            raise ConfigurationError(
                f"styling_mode must be one of {STYLING_MODES}, got {self.styling_mode!r}"
            )
        if not self.radius_property:
            raise ConfigurationError("radius_property is required")
        if not self.default_radius or self.default_radius <= 0:
            raise ConfigurationError(f"default_radius must be positive, got {self.default_radius!r}")

        try:
            low, high = self.radius_bounds
        except (TypeError, ValueError):
            raise ConfigurationError(f"radius_bounds must be (min, max), got {self.radius_bounds!r}")
        if low <= 0 or high < low:
            raise ConfigurationError(f"radius_bounds must satisfy 0 < min <= max, got {self.radius_bounds!r}")
        if self.radius_scale <= 0:
            raise ConfigurationError(f"radius_scale must be positive, got {self.radius_scale!r}")

        thresholds = tuple(_normalise_thresholds(self.thresholds))
        if self.styling_mode == "classified" and not thresholds:
            raise ConfigurationError("classified styling requires at least one threshold")

        if not isinstance(self.color, ColorRule):
            raise ConfigurationError("color must be a ColorRule")
        if self.color.mode not in ("constant", "property"):
            raise ConfigurationError(f"color mode must be 'constant' or 'property', got {self.color.mode!r}")
        if self.color.mode == "property" and not self.color.key:
            raise ConfigurationError("property colour rule requires a key")

        known_kinds = set(DEFAULT_GEOMETRY_RENDER_MAP)
        for kind, primitive in self.geometry_render_map.items():
            if kind not in known_kinds:
                raise ConfigurationError(f"Unknown geometry kind in geometry_render_map: {kind!r}")
            if primitive not in PRIMITIVE_KINDS:
                raise ConfigurationError(f"Unknown primitive kind for {kind}: {primitive!r}")

        if self.refresh_interval_ms is not None and self.refresh_interval_ms < 0:
            raise ConfigurationError("refresh_interval_ms must be >= 0")
        if self.popup_template is None:
            raise ConfigurationError("popup_template is required")
        from .layers import as_template
        as_template(self.popup_template)
        as_template(self.tooltip_template)
        if self.retries < 0 or self.timeout_s <= 0:
            raise ConfigurationError("retries must be >= 0 and timeout_s positive")

        return replace(self, thresholds=thresholds)


def _normalise_thresholds(thresholds):
    rows = []
    for row in thresholds:
        try:
            bound, label, radius = row
        except (TypeError, ValueError):
            raise ConfigurationError(f"Threshold rows must be (bound, label, radius), got {row!r}")
        if radius <= 0:
            raise ConfigurationError(f"Threshold radius must be positive: {row!r}")
        rows.append((float(bound), str(label), float(radius)))

    bounds = [bound for bound, _, _ in rows]
    if len(set(bounds)) != len(bounds):
        raise ConfigurationError(f"Duplicate threshold bounds: {sorted(bounds)}")

    return sorted(rows, key=lambda row: row[0], reverse=True)


def print_config(config=None):
    """Print all configuration settings."""
    config = config or MapConfig()
    print("\n" + "=" * 80)
    print("FEEDMAP CONFIGURATION")
    print("=" * 80)
    print(f"\n📁 PROJECT ROOT: {PROJECT_ROOT}")
    print(f"📂 RAW DIR: {RAW_DIR}")
    print(f"📂 MAPS DIR: {MAPS_DIR}")
    print(f"\n🌐 Feed: {config.feed_url}")
    print(f"   Refresh interval: {config.refresh_interval_ms or 'manual'} ms")
    print(f"\n🗺️  Styling:")
    print(f"   Mode: {config.styling_mode} on '{config.radius_property}'")
    print(f"   Radius bounds: {config.radius_bounds}, default {config.default_radius}")
    print(f"   CRS: {CRS_WEB}")
    print(f"\n✓ Configuration loaded successfully")
    print("=" * 80 + "\n")

"""
Live Feed Map
Package for turning GeoJSON feature feeds into styled, clickable folium layers
and keeping them refreshed on a map.
"""

__version__ = "1.0.0"

# Lazy imports to avoid pulling folium/httpx in at package import
# Import as needed in code

__all__ = [
    "config",
    "errors",
    "features",
    "styling",
    "layers",
    "render",
    "session",
    "feed",
    "refresh",
    "io",
    "qc",
]

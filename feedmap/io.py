"""
I/O module: load and save GeoJSON snapshots, convert to GeoDataFrames.
"""

import json
from pathlib import Path
import warnings

import pandas as pd
import geopandas as gpd

from .config import CRS_WEB, CRS_WEB_ALIASES
from .features import FeatureCollection, parse_feature_collection


def load_geojson(filepath):
    """
    Load a GeoJSON file into a FeatureCollection with CRS validation.

    Args:
        filepath: Path to GeoJSON file

    Returns:
        FeatureCollection
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"GeoJSON file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        data = json.load(f)

    # RFC 7946 dropped the crs member; old files may still carry one
    crs_name = None
    if isinstance(data, dict) and isinstance(data.get("crs"), dict):
        crs_name = (data["crs"].get("properties") or {}).get("name")
    if crs_name and crs_name not in CRS_WEB_ALIASES:
        warnings.warn(f"⚠️  {filepath.name} declares CRS {crs_name}. Coordinates are read as {CRS_WEB}")

    return parse_feature_collection(data)


def save_geojson(data, filepath):
    """
    Save a FeatureCollection, decoded GeoJSON dict, or GeoDataFrame to GeoJSON.

    Args:
        data: FeatureCollection, dict, or GeoDataFrame
        filepath: Output path

    Returns:
        Path to saved file
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    if isinstance(data, gpd.GeoDataFrame):
        # Ensure EPSG:4326 for web compatibility
        if data.crs != CRS_WEB:
            data = data.to_crs(CRS_WEB)
        data.to_file(filepath, driver="GeoJSON")
        return filepath

    if isinstance(data, FeatureCollection):
        data = data.to_geojson()

    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(data, f)

    return filepath


def collection_to_geodataframe(collection):
    """
    Convert a FeatureCollection to a GeoDataFrame (one row per feature).

    Args:
        collection: FeatureCollection

    Returns:
        GeoDataFrame in EPSG:4326 with properties as columns plus 'feature_id'
    """
    rows = []
    for feature in collection:
        row = {key: value for key, value in feature.properties.items() if key != "geometry"}
        row["feature_id"] = feature.feature_id
        rows.append(row)

    return gpd.GeoDataFrame(
        pd.DataFrame(rows),
        geometry=[feature.geometry for feature in collection],
        crs=CRS_WEB,
    )


def file_size_mb(filepath):
    """Get file size in MB."""
    return Path(filepath).stat().st_size / (1024 ** 2)

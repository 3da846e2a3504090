#!/usr/bin/env python3
"""
Quality assurance checks for the feed snapshot and the generated map.

Scope:
- Required files and scripts
- Snapshot readability, parse diagnostics, CRS and geometry validity
- Render accounting (rendered + skipped == records) and styling buckets
- Generated HTML map and Streamlit app readability

This script exits with code 1 if blocking errors are detected.
"""

import sys
from collections import Counter
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import geopandas as gpd

from feedmap import qc
from feedmap.config import CRS_WEB, MapConfig, OUTPUT_FILES
from feedmap.features import FeatureCollection
from feedmap.io import collection_to_geodataframe, load_geojson
from feedmap.render import render_collection

SNAPSHOT_PATH = OUTPUT_FILES["feed_snapshot"]
MAP_PATH = OUTPUT_FILES["map_html"]
SCRIPTS = PROJECT_ROOT / "scripts"


def print_header() -> None:
    print("=" * 80)
    print("WEBMAP QUALITY ASSURANCE")
    print("=" * 80)


def print_check_result(check_id: int, name: str, passed: bool) -> None:
    status = "PASS" if passed else "FAIL"
    print(f"\n[{check_id}] {name}: {status}")


def format_size(num_bytes: int) -> str:
    if num_bytes >= 1_000_000:
        return f"{num_bytes / 1_000_000:.1f} MB"
    if num_bytes >= 1_000:
        return f"{num_bytes / 1_000:.1f} KB"
    return f"{num_bytes} B"


def check_required_files(errors: list[str]) -> bool:
    required_files = {
        "Feed snapshot": SNAPSHOT_PATH,
        "HTML map": MAP_PATH,
        "Streamlit app": PROJECT_ROOT / "webmap" / "app.py",
        "Download script": SCRIPTS / "01_download_feed.py",
        "Build script": SCRIPTS / "02_build_map.py",
    }

    failed = False
    for label, path in required_files.items():
        if path.exists():
            print(f"  - {label}: FOUND ({format_size(path.stat().st_size)})")
        else:
            failed = True
            errors.append(f"Missing file: {label} at {path}")
            print(f"  - {label}: NOT FOUND")

    return not failed


def check_snapshot(
    errors: list[str], warnings: list[str]
) -> tuple[bool, FeatureCollection | None, gpd.GeoDataFrame | None]:
    try:
        collection = load_geojson(SNAPSHOT_PATH)
    except Exception as exc:
        errors.append(f"Failed to read feed snapshot: {exc}")
        return False, None, None

    print(f"  - Records: {collection.source_count}")
    print(f"  - Parsed features: {len(collection)}")
    if collection.diagnostics:
        counts = Counter(d.error for d in collection.diagnostics)
        warnings.append(f"Snapshot has {len(collection.diagnostics)} skipped records: {dict(counts)}")

    gdf = collection_to_geodataframe(collection)
    results = qc.print_qc_report([
        ("CRS", qc.check_crs, {"gdf": gdf, "expected_crs": CRS_WEB}),
        ("Unique IDs", qc.check_unique_ids, {"gdf": gdf}),
        ("Geometry validity", qc.check_geometry_validity, {"gdf": gdf}),
        ("Coordinate ranges", qc.check_coordinate_ranges, {"gdf": gdf}),
        ("Magnitude range", qc.check_property_range, {"df": gdf}),
    ])

    failed = False
    for name, status, message in results:
        if status == "fail":
            failed = True
            errors.append(f"{name}: {message}")
        elif status == "warn":
            warnings.append(f"{name}: {message}")

    return (not failed), collection, gdf


def check_render(collection: FeatureCollection | None, errors: list[str], warnings: list[str]) -> bool:
    if collection is None:
        warnings.append("Render check skipped because the snapshot could not be loaded")
        return False

    config = MapConfig().validate()
    result = render_collection(collection, config)
    try:
        print(f"  - {qc.check_render_accounting(result)}")
    except AssertionError as exc:
        errors.append(str(exc))
        return False

    buckets = Counter(member.style.class_bucket for member in result.group)
    for bound, label, radius in config.thresholds:
        print(f"  - {label:<7} (> {bound}, r={radius}): {buckets.get(label, 0)}")
    print(f"  - {config.default_label:<7} (fallback, r={config.default_radius}): "
          f"{buckets.get(config.default_label, 0)}")
    return True


def check_html_map(errors: list[str], warnings: list[str]) -> bool:
    if not MAP_PATH.exists():
        errors.append(f"Missing HTML map: {MAP_PATH}")
        return False

    content = MAP_PATH.read_text(encoding="utf-8")
    if "leaflet" not in content.lower():
        errors.append("HTML map does not load Leaflet")
        return False
    if "bindPopup" not in content:
        warnings.append("HTML map has no popups bound")

    print(f"  - HTML map is readable ({format_size(len(content.encode('utf-8')))})")
    return True


def check_streamlit_app(errors: list[str], warnings: list[str]) -> bool:
    app_path = PROJECT_ROOT / "webmap" / "app.py"
    if not app_path.exists():
        errors.append(f"Missing Streamlit app: {app_path}")
        return False

    try:
        content = app_path.read_text(encoding="utf-8")
    except Exception as exc:
        errors.append(f"Cannot read Streamlit app: {exc}")
        return False

    has_streamlit = "streamlit" in content
    has_folium = "folium" in content
    if not has_streamlit or not has_folium:
        warnings.append("webmap/app.py does not clearly contain both streamlit and folium references")

    print("  - Streamlit app file is readable")
    return True


def print_summary(total_checks: int, passed_checks: int, errors: list[str], warnings: list[str]) -> None:
    print("\n" + "=" * 80)
    print("SUMMARY")
    print("=" * 80)
    print(f"\nChecks passed: {passed_checks}/{total_checks}")
    print(f"Warnings: {len(warnings)}")
    print(f"Errors: {len(errors)}")

    if errors:
        print(f"\nERRORS ({len(errors)}):")
        for message in errors:
            print(f"  - {message}")
        print("\nStatus: FAIL")
        print("Action required: resolve blocking errors before launching the webmap.")
        sys.exit(1)

    if warnings:
        print(f"\nWARNINGS ({len(warnings)}):")
        for message in warnings:
            print(f"  - {message}")
        print("\nStatus: PASS WITH WARNINGS")
    else:
        print("\nNo warnings detected.")
        print("Status: PASS")

    print("\nSuggested commands:")
    print("  python scripts/01_download_feed.py")
    print("  python scripts/02_build_map.py")
    print("  streamlit run webmap/app.py")


def main() -> None:
    print_header()

    errors: list[str] = []
    warnings: list[str] = []
    total_checks = 5
    passed_checks = 0

    file_check = check_required_files(errors)
    print_check_result(1, "Required files", file_check)
    if file_check:
        passed_checks += 1

    snapshot_check, collection, _ = check_snapshot(errors, warnings)
    print_check_result(2, "Feed snapshot", snapshot_check)
    if snapshot_check:
        passed_checks += 1

    render_check = check_render(collection, errors, warnings)
    print_check_result(3, "Render accounting", render_check)
    if render_check:
        passed_checks += 1

    html_check = check_html_map(errors, warnings)
    print_check_result(4, "HTML map", html_check)
    if html_check:
        passed_checks += 1

    app_check = check_streamlit_app(errors, warnings)
    print_check_result(5, "Streamlit app", app_check)
    if app_check:
        passed_checks += 1

    print_summary(total_checks, passed_checks, errors, warnings)


if __name__ == "__main__":
    main()

"""
Quality Control (QC) module: Assertions and data quality checks on feeds and renders.
"""

import pandas as pd


def check_unique_ids(gdf, id_col='feature_id'):
    """Assert IDs are unique (no duplicates)."""
    assert gdf[id_col].duplicated().sum() == 0, f"Duplicate {id_col} values found!"
    assert gdf[id_col].isnull().sum() == 0, f"Null {id_col} values found!"
    return f"✓ {id_col} is unique (n={len(gdf)})"


def check_geometry_validity(gdf):
    """Assert all geometries are valid."""
    assert (~gdf.geometry.is_valid).sum() == 0, "Found invalid geometries!"
    assert gdf.geometry.is_empty.sum() == 0, "Found empty geometries!"
    return f"✓ All {len(gdf)} geometries are valid"


def check_crs(gdf, expected_crs='EPSG:4326'):
    """Assert CRS matches expected."""
    assert gdf.crs == expected_crs, f"CRS mismatch: {gdf.crs} != {expected_crs}"
    return f"✓ CRS is {expected_crs}"


def check_coordinate_ranges(gdf):
    """Assert all coordinates lie within lon [-180, 180] and lat [-90, 90]."""
    if len(gdf) == 0:
        return "⚠️  No features to check"
    minx, miny, maxx, maxy = gdf.total_bounds
    assert -180 <= minx and maxx <= 180, f"Longitude out of range: [{minx}, {maxx}]"
    assert -90 <= miny and maxy <= 90, f"Latitude out of range: [{miny}, {maxy}]"
    return f"✓ Bounds lon [{minx:.2f}, {maxx:.2f}], lat [{miny:.2f}, {maxy:.2f}]"


def check_property_range(df, col='mag', min_value=-2, max_value=10):
    """Check a numeric property is in the expected range (reports outliers)."""
    if col not in df.columns:
        return f"⚠️  {col} column not found"

    values = pd.to_numeric(df[col], errors='coerce')
    missing = values.isna().sum()
    outliers_low = (values < min_value).sum()
    outliers_high = (values > max_value).sum()

    if outliers_low > 0 or outliers_high > 0:
        return f"⚠️  {col} outliers: <{min_value}: {outliers_low}, >{max_value}: {outliers_high}"
    if missing > 0:
        return f"⚠️  {missing} missing/non-numeric {col} values (rendered with default radius)"

    return f"✓ {col} in range {min_value} to {max_value}"


def check_render_accounting(result):
    """Assert every source record was either rendered or diagnosed."""
    total = result.rendered_count + result.skipped_count
    assert total == result.source_count, (
        f"Render accounting mismatch: {result.rendered_count} rendered + "
        f"{result.skipped_count} skipped != {result.source_count} records"
    )
    return f"✓ {result.rendered_count} rendered, {result.skipped_count} skipped of {result.source_count}"


def print_qc_report(checks):
    """
    Print formatted QC report.

    Args:
        checks: List of (name, check_func, kwargs) tuples

    Returns:
        List of (name, status, message) with status 'pass', 'fail' or 'warn'
    """
    print("\n" + "=" * 80)
    print("QUALITY CONTROL REPORT")
    print("=" * 80)

    results = []
    for name, check_func, kwargs in checks:
        try:
            result = check_func(**kwargs)
            status = "warn" if result.startswith("⚠️") else "pass"
            print(f"\n{name}")
            print(f"  {result}")
        except AssertionError as e:
            status, result = "fail", str(e)
            print(f"\n❌ {name}")
            print(f"  ERROR: {e}")
        except Exception as e:
            status, result = "warn", str(e)
            print(f"\n⚠️  {name}")
            print(f"  WARNING: {e}")
        results.append((name, status, result))

    print("\n" + "=" * 80)
    return results

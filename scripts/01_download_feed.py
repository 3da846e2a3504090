#!/usr/bin/env python
"""
01_download_feed.py
- Download the live GeoJSON feed (FEEDMAP_FEED_URL, default USGS past-day quakes)
- Save the raw document into data/raw/feed_snapshot.geojson
"""

import asyncio
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from feedmap.config import MapConfig, OUTPUT_FILES, configure_logging
from feedmap.errors import FetchFailure
from feedmap.feed import FeedClient
from feedmap.io import file_size_mb, save_geojson


def main():
    configure_logging()
    config = MapConfig().validate()
    snapshot_path = OUTPUT_FILES["feed_snapshot"]

    print("=" * 80)
    print("DOWNLOADING FEED")
    print("=" * 80)
    print(f"\nSource: {config.feed_url}")

    try:
        document = asyncio.run(FeedClient.from_config(config).fetch())
    except FetchFailure as e:
        print(f"  ✗ Download failed: {e}")
        sys.exit(1)

    save_geojson(document, snapshot_path)
    n_features = len(document.get("features", [])) if isinstance(document, dict) else 0

    print(f"  ✓ Saved: {snapshot_path}")
    print(f"    Features: {n_features}")
    print(f"    Size: {file_size_mb(snapshot_path):.2f} MB")


if __name__ == "__main__":
    main()

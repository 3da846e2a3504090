#!/usr/bin/env python
"""
Build the feed map as a standalone HTML page
============================================

Renders data/raw/feed_snapshot.geojson (or the live feed when no snapshot
exists) through the refresh pipeline and writes reports/maps/feed_map.html.

Set FEEDMAP_STYLING=continuous for proportional symbols instead of the
default magnitude classes.
"""

import asyncio
import os
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from feedmap.config import ALERT_PALETTE, ColorRule, MapConfig, OUTPUT_FILES, configure_logging
from feedmap.feed import FeedClient, FileSource
from feedmap.refresh import RefreshController
from feedmap.session import MapSession


def build_config():
    return MapConfig(
        styling_mode=os.getenv("FEEDMAP_STYLING", "classified"),
        color=ColorRule.from_property("alert", palette=ALERT_PALETTE),
        tooltip_template="M{mag} {place}",
        fit_bounds=True,
    ).validate()


async def build(config, fetcher):
    session = MapSession(config)
    controller = RefreshController(session, fetcher)
    outcome = await controller.refresh()
    return session, outcome


def main():
    configure_logging()
    config = build_config()
    snapshot_path = OUTPUT_FILES["feed_snapshot"]
    map_path = OUTPUT_FILES["map_html"]

    print("=" * 80)
    print("BUILDING FEED MAP")
    print("=" * 80)

    if snapshot_path.exists():
        print(f"\nSource: snapshot {snapshot_path}")
        fetcher = FileSource(snapshot_path)
    else:
        print(f"\nSource: live feed {config.feed_url}")
        print("  ⚠ No snapshot found; run scripts/01_download_feed.py to pin the input")
        fetcher = FeedClient.from_config(config)

    session, outcome = asyncio.run(build(config, fetcher))

    if not outcome.attached:
        print(f"  ✗ Refresh failed: {outcome.error}")
        sys.exit(1)

    result = outcome.result
    session.save(map_path)

    print(f"  ✓ Rendered {result.rendered_count} layers ({config.styling_mode} styling)")
    print(f"  ✓ Saved: {map_path}")
    if result.diagnostics:
        print(f"\n  ⚠ {result.skipped_count} records skipped:")
        for diagnostic in result.diagnostics[:20]:
            print(f"    - {diagnostic}")
        if result.skipped_count > 20:
            print(f"    ... and {result.skipped_count - 20} more")


if __name__ == "__main__":
    main()

#!/usr/bin/env python
"""
Interactive web map for a live GeoJSON feed (default: USGS earthquakes).

Purpose
-------
Show every feature of the feed as a styled, clickable layer and keep the map
current: the last good render stays visible while a refresh is in flight,
and a failed refresh never blanks the map.

Expected inputs
---------------
- FEEDMAP_FEED_URL (optional; defaults to the USGS past-day summary feed)

Output
------
Rendered Streamlit interface (no file writes).
"""

import asyncio
from pathlib import Path
import sys

import streamlit as st
from streamlit_folium import st_folium

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from feedmap.config import (
    ALERT_PALETTE,
    ColorRule,
    DEFAULT_COLOR,
    FEED_URL,
    MapConfig,
    configure_logging,
)
from feedmap.feed import FeedClient
from feedmap.refresh import RefreshController
from feedmap.session import MapSession

# ============================================================================
# SETUP
# ============================================================================
st.set_page_config(page_title="Live Feed Map", layout="wide")
st.markdown("# Live Feed Map")
st.markdown("Each feature of the feed drawn as a styled, clickable layer.")

configure_logging()

USGS_FEEDS = {
    "Past hour": "https://earthquake.usgs.gov/earthquakes/feed/v1.0/summary/all_hour.geojson",
    "Past day": "https://earthquake.usgs.gov/earthquakes/feed/v1.0/summary/all_day.geojson",
    "Past 7 days, M2.5+": "https://earthquake.usgs.gov/earthquakes/feed/v1.0/summary/2.5_week.geojson",
}

# ============================================================================
# SIDEBAR CONTROLS
# ============================================================================
st.sidebar.markdown("## Feed")

feed_choice = st.sidebar.selectbox(
    "Source",
    ["Configured (FEEDMAP_FEED_URL)"] + list(USGS_FEEDS),
    index=0,
)
feed_url = FEED_URL if feed_choice not in USGS_FEEDS else USGS_FEEDS[feed_choice]

st.sidebar.markdown("## Styling")

styling_mode = st.sidebar.radio(
    "Symbol size",
    ("classified", "continuous"),
    format_func=lambda mode: {
        "classified": "Magnitude classes",
        "continuous": "Proportional to magnitude",
    }[mode],
)

color_by_alert = st.sidebar.checkbox("Colour by PAGER alert level", value=True)

radius_scale = st.sidebar.slider(
    "Proportional scale (pixels per unit)",
    1.0, 10.0,
    3.0,
    step=0.5,
    disabled=styling_mode != "continuous",
)

config = MapConfig(
    styling_mode=styling_mode,
    radius_scale=radius_scale,
    color=(
        ColorRule.from_property("alert", palette=ALERT_PALETTE, default=DEFAULT_COLOR)
        if color_by_alert
        else ColorRule.constant(DEFAULT_COLOR)
    ),
    tooltip_template="M{mag} {place}",
    feed_url=feed_url,
).validate()

# ============================================================================
# SESSION (one map + controller per configuration)
# ============================================================================
session_key = (feed_url, styling_mode, radius_scale, color_by_alert)

if st.session_state.get("session_key") != session_key:
    session = MapSession(config)
    st.session_state["session_key"] = session_key
    st.session_state["session"] = session
    st.session_state["controller"] = RefreshController(session, FeedClient.from_config(config))
    st.session_state["needs_refresh"] = True

session = st.session_state["session"]
controller = st.session_state["controller"]

if st.sidebar.button("Refresh now"):
    st.session_state["needs_refresh"] = True

if st.session_state.get("needs_refresh"):
    with st.spinner("Fetching feed..."):
        outcome = asyncio.run(controller.refresh())
    st.session_state["needs_refresh"] = False
    if not outcome.attached:
        st.error(f"Refresh failed: {outcome.error}. Showing the last successful render.")

# ============================================================================
# MAP DISPLAY
# ============================================================================
st.markdown("### Map")
with session.locked() as folium_map:
    st_folium(folium_map, width=1400, height=600, returned_objects=[])

# ============================================================================
# SUMMARY
# ============================================================================
st.markdown("---")
result = controller.last_result

col1, col2, col3 = st.columns(3)

with col1:
    st.markdown("### Layers")
    st.metric("Rendered", session.layer_count())
    if result is not None:
        st.metric("Skipped", result.skipped_count)

with col2:
    st.markdown("### Legend")
    if styling_mode == "classified":
        lines = [f"- **{label}**: magnitude > {bound} (radius {radius:g}px)"
                 for bound, label, radius in config.thresholds]
        lines.append(f"- **{config.default_label}**: everything else (radius {config.default_radius:g}px)")
        st.write("\n".join(lines))
    else:
        st.write(f"Radius = magnitude x {radius_scale:g}, clamped to "
                 f"{config.radius_bounds[0]:g}-{config.radius_bounds[1]:g}px; "
                 f"missing magnitudes use {config.default_radius:g}px.")

with col3:
    st.markdown("### Refresh status")
    st.write(f"State: **{controller.state.value}**")
    if controller.last_error is not None:
        st.write(f"Last error: {controller.last_error}")

if result is not None and result.diagnostics:
    with st.expander(f"Skipped records ({result.skipped_count})"):
        for diagnostic in result.diagnostics:
            st.write(str(diagnostic))

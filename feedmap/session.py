"""
Session module: MapSession, the single owner of the folium map surface.

At most one LayerGroup is attached at a time. Attaching a new group detaches
the previous one inside the same critical section, and rendering the map
takes that lock too, so no observer ever sees zero or two feed groups.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
import threading

import folium
from loguru import logger

from .config import MapConfig
from .errors import SessionError


@dataclass(frozen=True)
class Viewport:
    center: tuple  # (lat, lon)
    zoom: int
    bounds: list | None = None


class MapSession:
    """Explicit map state passed to the renderer and refresh controller."""

    def __init__(self, config=None, folium_map=None):
        self.config = (config or MapConfig()).validate()
        if folium_map is None:
            folium_map = folium.Map(
                location=list(self.config.center),
                zoom_start=self.config.zoom_start,
                tiles=self.config.tiles,
            )
        self.map = folium_map
        self._lock = threading.RLock()
        self._current = None
        self._fit = None
        self._viewport = Viewport(center=tuple(self.config.center), zoom=self.config.zoom_start)

    @property
    def current_group(self):
        with self._lock:
            return self._current

    @contextmanager
    def locked(self):
        """Hold the surface lock, e.g. while handing ``self.map`` to a renderer."""
        with self._lock:
            yield self.map

    def _remove_child(self, element):
        # folium has no public removal API; children are keyed by element name
        self.map._children.pop(element.get_name(), None)
        element._parent = None

    def attach(self, group):
        """
        Make ``group`` the attached group, detaching the previous one.

        Returns:
            The previously attached LayerGroup, or None.

        Raises:
            SessionError: ``group`` is attached to another session.
        """
        with self._lock:
            if group.attached_to is self:
                return None
            if group.attached_to is not None:
                raise SessionError(f"{group!r} is already attached to another session")

            previous = self._current
            if previous is not None:
                self._detach_locked(previous)

            self.map.add_child(group.feature_group)
            group.attached_to = self
            self._current = group

            if self.config.fit_bounds:
                self._fit_locked(group)

        logger.debug(f"Attached {group!r} (replaced {previous!r})")
        return previous

    swap = attach

    def detach(self, group):
        """Detach ``group`` if it is the attached one. Returns True if removed."""
        with self._lock:
            if self._current is not group:
                return False
            self._detach_locked(group)
            return True

    def _detach_locked(self, group):
        self._remove_child(group.feature_group)
        group.attached_to = None
        if self._current is group:
            self._current = None

    def _fit_locked(self, group):
        bounds = group.bounds()
        if bounds is None:
            return
        if self._fit is not None:
            self._remove_child(self._fit)
        self._fit = folium.FitBounds(bounds)
        self.map.add_child(self._fit)
        self._viewport = Viewport(
            center=((bounds[0][0] + bounds[1][0]) / 2, (bounds[0][1] + bounds[1][1]) / 2),
            zoom=self._viewport.zoom,
            bounds=bounds,
        )

    def fit_to_current(self):
        with self._lock:
            if self._current is not None:
                self._fit_locked(self._current)

    def current_viewport(self):
        with self._lock:
            return self._viewport

    def layer_count(self):
        with self._lock:
            return 0 if self._current is None else len(self._current)

    def snapshot_html(self):
        """Render the whole map page as HTML under the surface lock."""
        with self._lock:
            return self.map.get_root().render()

    def save(self, path):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        html = self.snapshot_html()
        path.write_text(html, encoding="utf-8")
        return path

"""
Styling module: map a feature's properties to visual parameters.

Two interchangeable radius strategies, picked by ``MapConfig.styling_mode``:

- continuous: radius scales with a numeric property, clamped to bounds
- classified: radius and bucket label come from an ordered threshold table

Every function here is pure. Missing or unusable property values degrade
to configured defaults; nothing raises for a parsed Feature.
"""

from dataclasses import dataclass
from typing import NamedTuple
import re

import numpy as np
import pandas as pd


class Threshold(NamedTuple):
    bound: float
    label: str
    radius: float


@dataclass(frozen=True)
class StyleSpec:
    radius: float
    stroke_color: str
    fill_color: str
    class_bucket: str | None = None
    weight: float = 1.0
    fill_opacity: float = 0.6

    def as_dict(self):
        return {
            "radius": self.radius,
            "stroke_color": self.stroke_color,
            "fill_color": self.fill_color,
            "class_bucket": self.class_bucket,
            "weight": self.weight,
            "fill_opacity": self.fill_opacity,
        }


# ============================================================================
# PROPERTY ACCESS
# ============================================================================

def parse_number(val):
    """
    Parse a property value as a finite float.

    Numbers pass through. Strings are stripped of currency symbols, spaces and
    NBSP; the LAST separator (comma or dot) is taken as the decimal point, so
    both '1,234.5' and '1.234,5' parse.

    Returns:
        float, or None for booleans, NaN/inf, empty or non-numeric values
    """
    if val is None or isinstance(val, bool) or not isinstance(val, (int, float, str)):
        return None

    if isinstance(val, str):
        val_str = re.sub(r'[$€£\s\xa0]', '', val)
        if not re.fullmatch(r'[+-]?[\d.,]*\d[\d.,]*(?:[eE][+-]?\d+)?', val_str):
            return None

        last_comma_idx = val_str.rfind(',')
        last_dot_idx = val_str.rfind('.')
        if last_comma_idx > last_dot_idx:
            val_str = val_str.replace('.', '').replace(',', '.')
        elif last_dot_idx > last_comma_idx:
            val_str = val_str.replace(',', '')
        val = val_str

    number = pd.to_numeric(val, errors="coerce")
    if pd.isna(number) or not np.isfinite(number):
        return None
    return float(number)


def numeric_property(feature, key):
    """Numeric value of ``feature.properties[key]``, or None."""
    return parse_number(feature.properties.get(key))


# ============================================================================
# RADIUS STRATEGIES
# ============================================================================

def lookup(value, table, default):
    """
    Generic ordered-threshold lookup.

    ``table`` rows start with a bound and are evaluated highest bound first;
    the first row whose bound ``value`` is strictly greater than wins. A value
    equal to a bound falls through to the next lower row.

    Args:
        value: Number to classify, or None.
        table: Iterable of rows ``(bound, ...)``.
        default: Returned for None or for values at/below the lowest bound.
    """
    if value is None:
        return default
    for row in sorted(table, key=lambda row: row[0], reverse=True):
        if value > row[0]:
            return row
    return default


def classify(value, thresholds, default_radius, default_label=None):
    """
    Pick the bucket for ``value``.

    Returns:
        (label, radius)
    """
    fallback = Threshold(float("-inf"), default_label, default_radius)
    row = Threshold(*lookup(value, thresholds, fallback))
    return row.label, row.radius


def continuous_radius(value, bounds, default_radius, scale=1.0):
    """
    Radius proportional to ``value``.

    Missing, non-numeric or non-positive values give ``default_radius``;
    anything else is scaled then clamped to ``bounds``.
    """
    if value is None or value <= 0:
        return default_radius
    low, high = bounds
    return float(np.clip(value * scale, low, high))


# ============================================================================
# COLOUR
# ============================================================================

def resolve_color(feature, rule):
    """Colour for ``feature`` under ``rule`` (a ColorRule); falls back to rule.default."""
    if rule.mode == "constant":
        return rule.value

    raw = feature.properties.get(rule.key)
    if raw is None or isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        return rule.default

    if rule.palette:
        return rule.palette.get(raw, rule.default)

    if rule.breaks:
        row = lookup(parse_number(raw), rule.breaks, None)
        return rule.default if row is None else row[1]

    # Property holds the colour itself
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return rule.default


# ============================================================================
# RESOLVER
# ============================================================================

def resolve_style(feature, config):
    """
    Resolve the full StyleSpec for one feature.

    Args:
        feature: Parsed Feature.
        config: Validated MapConfig.

    Returns:
        StyleSpec
    """
    value = numeric_property(feature, config.radius_property)

    if config.styling_mode == "classified":
        class_bucket, radius = classify(
            value, config.thresholds, config.default_radius, config.default_label
        )
    else:
        class_bucket = None
        radius = continuous_radius(
            value, config.radius_bounds, config.default_radius, config.radius_scale
        )

    fill_color = resolve_color(feature, config.color)

    return StyleSpec(
        radius=radius,
        stroke_color=config.stroke_color or fill_color,
        fill_color=fill_color,
        class_bucket=class_bucket,
        weight=config.weight,
        fill_opacity=config.fill_opacity,
    )

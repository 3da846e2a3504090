"""
Errors module: exception taxonomy and per-feature diagnostics.

Feature-local errors (MalformedGeometry, MalformedProperties,
UnsupportedGeometryKind) skip one feature. Cycle-local errors
(FetchFailure, MalformedCollection) fail one refresh. Only
ConfigurationError is fatal, and only at startup.
"""

from dataclasses import dataclass


class FeedMapError(Exception):
    """Base class for all feedmap errors."""


class FeatureError(FeedMapError):
    """A single feature could not be parsed or rendered."""


class MalformedGeometry(FeatureError):
    pass


class MalformedProperties(FeatureError):
    pass


class UnsupportedGeometryKind(FeatureError):
    pass


class TemplateError(FeatureError):
    """A popup/tooltip callable failed for one feature."""


class MalformedCollection(FeedMapError):
    """The document as a whole is not a feature collection."""


class FetchFailure(FeedMapError):
    """Network or HTTP-level failure while fetching the feed."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(FeedMapError):
    pass


class SessionError(FeedMapError):
    """Misuse of the map surface (e.g. attaching a group twice)."""


@dataclass(frozen=True)
class Diagnostic:
    """Why one input record is missing from the rendered group."""

    index: int
    feature_id: str | None
    error: str
    reason: str
    stage: str  # "parse" or "render"

    @classmethod
    def from_error(cls, index, feature_id, exc, stage):
        return cls(
            index=index,
            feature_id=feature_id,
            error=type(exc).__name__,
            reason=str(exc),
            stage=stage,
        )

    def __str__(self):
        label = self.feature_id or f"#{self.index}"
        return f"[{self.stage}] {label}: {self.error}: {self.reason}"

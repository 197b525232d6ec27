from __future__ import annotations

from typing import Iterable, List


class GeostreamError(Exception):
    """Base class for errors raised by the geostream services."""


class ValidationError(GeostreamError, ValueError):
    """Malformed or out-of-range caller input. Carries every violation found."""

    def __init__(self, violations: Iterable[str]) -> None:
        self.violations: List[str] = list(violations)
        super().__init__("; ".join(self.violations) or "invalid input")


class ConfigurationError(GeostreamError, ValueError):
    """A required parameter combination is missing."""


class TransientFetchError(GeostreamError):
    """A single tile request failed and may succeed in a later round."""


class ReprojectionError(GeostreamError):
    """Coordinate transformation between projections failed."""

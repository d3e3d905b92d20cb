"""Region identifiers and resolution inputs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Region(str, Enum):
    """Which backend store serves a request."""

    CN = "cn"
    GLOBAL = "global"

    @property
    def secondary(self) -> Region:
        """The other region, used for best-effort mirroring."""
        return Region.GLOBAL if self is Region.CN else Region.CN

    @classmethod
    def from_deployment(cls, value: str | None) -> Region | None:
        """Map a deployment setting (``CN`` / ``INTL``, or a region value) to a Region.

        Returns None for unset or unrecognised values so the caller can fall
        through to the next signal.
        """
        if not value:
            return None
        normalized = value.strip().lower()
        if normalized in ("cn", "china", "domestic"):
            return cls.CN
        if normalized in ("intl", "global", "international"):
            return cls.GLOBAL
        return None


@dataclass(frozen=True)
class RegionContext:
    """Signals available when choosing a region, in priority order."""

    configured_region: str | None = None
    force_global: bool = False
    host: str | None = None
    client_ip: str | None = None


@dataclass(frozen=True)
class RegionDecision:
    """A resolved region and the signal that decided it."""

    region: Region
    source: str
    country_code: str | None = None

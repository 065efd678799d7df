"""Execution profiles trading fidelity against speed for batch runs.

Profiles only change how images reach and leave the pipeline (downsizing,
transport re-encoding, tiling). They never change stage math:

- **quality**: full resolution, whole-image passes
- **balanced**: long edge capped at 4096 px, 512-row tiles
- **preview**: long edge capped at 2048 px, JPEG transport at quality 85

Example Usage
-------------

    from photometric_pipeline import EXECUTION_PROFILES

    profile = EXECUTION_PROFILES["preview"]
    profile.resolve_max_side(None)      # -> 2048
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class ExecutionProfile:
    """Configuration for a batch run.

    Attributes:
        name: Profile identifier.
        max_side: Default long-edge limit in pixels (None keeps source size).
        transport_quality: JPEG quality used to re-encode decoded input before
            processing (None skips re-encoding).
        tile_rows: Row tile height for the buffer adapter (None processes
            the whole image at once).
    """

    name: str
    max_side: Optional[int]
    transport_quality: Optional[int]
    tile_rows: Optional[int]

    def resolve_max_side(self, requested: Optional[int]) -> Optional[int]:
        """Prefer an explicit request, otherwise fall back to the profile."""

        return requested if requested is not None else self.max_side

    def resolve_tile_rows(self, requested: Optional[int]) -> Optional[int]:
        return requested if requested is not None else self.tile_rows


DEFAULT_PROFILE_NAME = "quality"

EXECUTION_PROFILES: Dict[str, ExecutionProfile] = {
    "quality": ExecutionProfile(
        name="quality",
        max_side=None,
        transport_quality=None,
        tile_rows=None,
    ),
    "balanced": ExecutionProfile(
        name="balanced",
        max_side=4096,
        transport_quality=None,
        tile_rows=512,
    ),
    "preview": ExecutionProfile(
        name="preview",
        max_side=2048,
        transport_quality=85,
        tile_rows=256,
    ),
}


__all__ = [
    "DEFAULT_PROFILE_NAME",
    "EXECUTION_PROFILES",
    "ExecutionProfile",
]

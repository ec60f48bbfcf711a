"""Fit tolerance model: asymmetric per-fabric tolerances.

Tolerances are percentages of the user's own measurement. A garment may be
smaller than the body by up to the tight bound and larger by up to the loose
bound, each split by primary/secondary measurement.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from config import DEFAULT_FABRIC, FABRIC_TOLERANCES


class FabricCategory(str, Enum):
    STRETCHY = "stretchy"
    NORMAL = "normal"
    RIGID = "rigid"


@dataclass(frozen=True)
class ToleranceProfile:
    tight_primary_pct: float
    tight_secondary_pct: float
    loose_primary_pct: float
    loose_secondary_pct: float

    def bound(self, is_primary: bool, is_tight: bool) -> float:
        if is_tight:
            return self.tight_primary_pct if is_primary else self.tight_secondary_pct
        return self.loose_primary_pct if is_primary else self.loose_secondary_pct


def parse_fabric_category(value: Union[str, FabricCategory, None]) -> FabricCategory:
    """Case-insensitive parse; anything unrecognized is treated as normal."""
    if isinstance(value, FabricCategory):
        return value
    try:
        return FabricCategory(str(value or "").strip().lower())
    except ValueError:
        return FabricCategory(DEFAULT_FABRIC)


def tolerance_for(fabric: Union[str, FabricCategory, None]) -> ToleranceProfile:
    row = FABRIC_TOLERANCES[parse_fabric_category(fabric).value]
    return ToleranceProfile(
        tight_primary_pct=row["tight_primary"],
        tight_secondary_pct=row["tight_secondary"],
        loose_primary_pct=row["loose_primary"],
        loose_secondary_pct=row["loose_secondary"],
    )

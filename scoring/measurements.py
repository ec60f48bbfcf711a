"""Measurement relevance model: which body measurements matter for a garment.

Each garment type splits its measurements into primary (critical to fit) and
secondary (nice to have). Unknown garment types fall back to a default set
instead of failing. Relevance rows live in config.py.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping

from config import (
    DEFAULT_PRIMARY,
    DEFAULT_RELEVANT,
    GARMENT_ALIASES,
    GARMENT_MEASUREMENTS,
    MEASUREMENT_LABELS,
    UNIVERSAL_MEASUREMENTS,
)


class Measurement(str, Enum):
    """Known canonical measurement names.

    Size charts are keyed by ``Measurement.<X>.value``; keys outside this set
    are kept in charts but only scored if a profile supplies them too.
    """

    HEIGHT = "height"
    WEIGHT = "weight"
    CHEST = "chest"
    WAIST = "waist"
    HIP = "hip"
    SHOULDER = "shoulder"
    ARM_LENGTH = "armLength"
    LEG_LENGTH = "legLength"
    INSEAM = "inseam"
    THIGH_CIRCUMFERENCE = "thighCircumference"
    GARMENT_LENGTH = "garmentLength"


def _check_relevance_table() -> None:
    for garment, row in GARMENT_MEASUREMENTS.items():
        overlap = set(row["primary"]) & set(row["secondary"])
        if overlap:
            raise ValueError(f"{garment}: measurements both primary and secondary: {sorted(overlap)}")
        for name in row["primary"] + row["secondary"]:
            Measurement(name)


_check_relevance_table()


def normalize_garment_type(garment_type: str) -> str:
    key = (garment_type or "").strip().lower()
    return GARMENT_ALIASES.get(key, key)


def primary_measurements(garment_type: str) -> List[Measurement]:
    row = GARMENT_MEASUREMENTS.get(normalize_garment_type(garment_type))
    if row is None:
        return [Measurement(m) for m in DEFAULT_PRIMARY]
    return [Measurement(m) for m in row["primary"]]


def secondary_measurements(garment_type: str) -> List[Measurement]:
    row = GARMENT_MEASUREMENTS.get(normalize_garment_type(garment_type))
    if row is None:
        primary = set(DEFAULT_PRIMARY)
        return [Measurement(m) for m in DEFAULT_RELEVANT if m not in primary]
    return [Measurement(m) for m in row["secondary"]]


def relevant_measurements(garment_type: str) -> List[Measurement]:
    """Primary measurements first, then secondary, in table order."""
    return primary_measurements(garment_type) + secondary_measurements(garment_type)


def project_profile(profile: Any, garment_type: str) -> Dict[str, float]:
    """Reduce a body profile to the measurements relevant for a garment.

    Height and weight are always kept when present. ``profile`` may be a
    BodyProfile or any mapping of canonical names to numbers; absent or
    non-positive values are skipped, never defaulted.
    """
    values: Mapping[str, Any] = profile.measurements() if hasattr(profile, "measurements") else profile
    names = UNIVERSAL_MEASUREMENTS + [m.value for m in relevant_measurements(garment_type)]

    projected: Dict[str, float] = {}
    for name in names:
        value = values.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if value > 0:
            projected[name] = float(value)
    return projected


def measurement_label(name: str) -> str:
    key = name.value if isinstance(name, Measurement) else name
    return MEASUREMENT_LABELS.get(key, key)


def measurement_unit(name: str) -> str:
    key = name.value if isinstance(name, Measurement) else name
    return "kg" if key == Measurement.WEIGHT.value else "cm"

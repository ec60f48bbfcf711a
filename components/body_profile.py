from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


# ── Field → canonical measurement name ───────────────────────────────
# Profile fields are snake_case; size charts use the canonical camelCase
# names from scoring.measurements.Measurement.
PROFILE_FIELDS: Dict[str, str] = {
    "height": "height",
    "weight": "weight",
    "chest": "chest",
    "waist": "waist",
    "hip": "hip",
    "shoulder": "shoulder",
    "arm_length": "armLength",
    "leg_length": "legLength",
    "thigh_circumference": "thighCircumference",
    "inseam": "inseam",
}


@dataclass(frozen=True)
class BodyProfile:
    """Body measurements in cm (weight in kg). Read-only for scoring."""

    height: Optional[float] = None
    weight: Optional[float] = None
    chest: Optional[float] = None
    waist: Optional[float] = None
    hip: Optional[float] = None
    shoulder: Optional[float] = None
    arm_length: Optional[float] = None
    leg_length: Optional[float] = None
    thigh_circumference: Optional[float] = None
    inseam: Optional[float] = None
    gender: Optional[str] = None
    profile_id: Optional[str] = None

    def measurements(self) -> Dict[str, float]:
        """Positive measurements keyed by canonical name."""
        out: Dict[str, float] = {}
        for attr, name in PROFILE_FIELDS.items():
            value = getattr(self, attr)
            if value is not None and value > 0:
                out[name] = float(value)
        return out


def _as_measurement(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def build_body_profile(data: Mapping[str, Any]) -> BodyProfile:
    # Accept both the snake_case field names and the camelCase keys used by
    # stored profiles and size charts ("armLength", "thighCircumference").
    values: Dict[str, Any] = {}
    for attr, name in PROFILE_FIELDS.items():
        raw = data.get(attr, data.get(name))
        values[attr] = _as_measurement(raw)

    gender = data.get("gender")
    profile_id = data.get("profile_id", data.get("profileId", data.get("id")))

    return BodyProfile(
        gender=str(gender) if gender else None,
        profile_id=str(profile_id) if profile_id is not None else None,
        **values,
    )

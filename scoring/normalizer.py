"""Measurement normalizer: turns raw extracted size charts into scoreable ones.

Raw charts come from OCR/vision extraction and are noisy: headers arrive in
several spellings (including Arabic), cells may hold ranges like
"83.8 - 86.4", and unreadable cells show up as strings, nulls or zeros.
Normalization maps headers to canonical names, resolves ranges to their
maximum (the garment has to fit the largest part of the body), and drops
anything that is not a positive number.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from config import MEASUREMENT_SYNONYMS, PROGRESSION_MEASUREMENTS, SIZE_ORDER

logger = logging.getLogger(__name__)

SizeChart = Dict[str, Dict[str, float]]

_NUMBER = r"[0-9]+(?:\.[0-9]+)?"
_SINGLE_RE = re.compile(rf"^\s*({_NUMBER})\s*(?:cm)?\s*$", re.IGNORECASE)
_RANGE_RE = re.compile(
    rf"^\s*({_NUMBER})\s*(?:cm)?\s*(?:-|–|—|~|to)\s*({_NUMBER})\s*(?:cm)?\s*$",
    re.IGNORECASE,
)


def canonical_measurement_key(key: str) -> str:
    """Map a header to its canonical name; unmapped headers are returned as-is."""
    return MEASUREMENT_SYNONYMS.get(str(key).strip().lower(), key)


def _positive(value: Optional[float]) -> Optional[float]:
    if value is None or math.isnan(value) or math.isinf(value) or value <= 0:
        return None
    return value


def resolve_measurement_value(value: Any) -> Optional[float]:
    """Resolve a raw cell to a positive float, or None if unusable.

    Accepts numbers, numeric strings (optional "cm" suffix), closed ranges as
    strings, two-element lists/tuples, or {"min": .., "max": ..} mappings.
    Ranges resolve to their maximum.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _positive(float(value))
    if isinstance(value, str):
        m = _SINGLE_RE.match(value)
        if m:
            return _positive(float(m.group(1)))
        m = _RANGE_RE.match(value)
        if m:
            return _positive(max(float(m.group(1)), float(m.group(2))))
        return None
    if isinstance(value, (list, tuple)) and len(value) == 2:
        bounds = [resolve_measurement_value(v) for v in value]
        if None in bounds:
            return None
        return max(bounds)
    if isinstance(value, Mapping) and "max" in value:
        return resolve_measurement_value(value["max"])
    return None


def normalize_size_chart(raw: Mapping[str, Any]) -> SizeChart:
    """Normalize a raw size chart.

    Every size label in the input is preserved, even when all of its cells
    are dropped. Normalizing an already-normalized chart returns an equal
    chart.
    """
    normalized: SizeChart = {}
    for size, measurements in (raw or {}).items():
        label = str(size).strip()
        entry = normalized.setdefault(label, {})
        if not isinstance(measurements, Mapping):
            logger.debug("Size %s has no measurement mapping; keeping it empty", label)
            continue
        for key, value in measurements.items():
            resolved = resolve_measurement_value(value)
            if resolved is None:
                logger.debug("Dropping %s/%s: unusable value %r", label, key, value)
                continue
            entry[canonical_measurement_key(key)] = resolved
    return normalized


def size_sort_key(label: str, position: int = 0) -> Tuple[int, float, int]:
    """Sort key for canonical small-to-large order.

    Letter sizes come first by SIZE_ORDER, then numeric labels ascending,
    then anything else in its original position.
    """
    token = str(label).strip().upper()
    if token in SIZE_ORDER:
        return (0, float(SIZE_ORDER[token]), position)
    try:
        return (1, float(token), position)
    except ValueError:
        return (2, 0.0, position)


def ordered_sizes(labels: List[str]) -> List[str]:
    indexed = list(enumerate(labels))
    indexed.sort(key=lambda pair: size_sort_key(pair[1], pair[0]))
    return [label for _, label in indexed]


def check_size_progression(chart: SizeChart) -> List[str]:
    """Report sizes that do not grow on any of chest/waist/hip.

    A chart whose sizes shrink usually means the OCR swapped columns or rows.
    This is a diagnostic only; scoring carries on regardless.
    """
    warnings: List[str] = []
    sizes = ordered_sizes(list(chart))
    for prev, curr in zip(sizes, sizes[1:]):
        prev_m, curr_m = chart[prev], chart[curr]
        if not curr_m:
            continue
        comparable = [k for k in PROGRESSION_MEASUREMENTS if k in prev_m and k in curr_m]
        if not comparable:
            continue
        if not any(curr_m[k] > prev_m[k] for k in comparable):
            warnings.append(
                f"Size progression issue: {prev} -> {curr} does not increase on "
                f"{', '.join(comparable)}"
            )
    for w in warnings:
        logger.warning(w)
    return warnings

"""Fit scoring engine: picks a garment size from a normalized size chart.

For every size the user's relevant measurements are compared against the
chart under the fabric's asymmetric tolerances (garment smaller than body =
tight, larger = loose). Primary measurements weigh twice as much as
secondary ones. Selection walks sizes small to large and takes the first one
that physically accommodates every primary measurement; when none does, the
largest size is returned as a flagged fallback.

The engine is pure: it takes immutable inputs and returns a fresh
RecommendationResult, so it is safe to call from any thread.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import (
    ALTERNATIVE_MIN_SCORE,
    CONFIDENCE_GOOD_MIN,
    CONFIDENCE_PERFECT_MIN,
    MAX_ALTERNATIVES,
    OUT_OF_TOLERANCE_DECAY,
    PERFECT_SCORE,
    PRIMARY_WEIGHT,
    SCORE_BAND_DEFAULT,
    SCORE_BAND_PARTIAL,
    SCORE_BANDS,
    SCORE_NORMALIZER,
    SECONDARY_WEIGHT,
    STRETCH_TIGHT_BONUS,
    WITHIN_TOLERANCE_FLOOR,
)
from scoring.measurements import (
    measurement_label,
    normalize_garment_type,
    primary_measurements,
    project_profile,
    secondary_measurements,
)
from scoring.normalizer import SizeChart, check_size_progression, size_sort_key
from scoring.tolerance import FabricCategory, ToleranceProfile, parse_fabric_category, tolerance_for

logger = logging.getLogger(__name__)


class EmptyChartError(ValueError):
    """No size in the chart has a measurement that can be compared."""


class Confidence(str, Enum):
    PERFECT = "Perfect"
    GOOD = "Good"
    LOOSE = "Loose"


@dataclass(frozen=True)
class MeasurementMatch:
    user: float
    chart: float
    difference: float  # chart - user; negative means the garment is smaller
    pct_diff: float
    within_tolerance: bool
    is_primary: bool
    score: float


@dataclass
class SizeScore:
    size: str
    score: float = 0.0
    matches: Dict[str, MeasurementMatch] = field(default_factory=dict)
    primary_match_count: int = 0
    total_match_count: int = 0
    all_primary_within_tolerance: bool = True
    measurement_count: int = 0


@dataclass(frozen=True)
class ExceededMeasurement:
    name: str
    user_value: float
    chart_value: float
    excess: float


@dataclass(frozen=True)
class RecommendationResult:
    recommended_size: str
    confidence: Confidence
    match_score: int
    rationale: str
    normalized_size_chart: SizeChart
    is_fallback: bool = False
    exceeded_measurements: Tuple[ExceededMeasurement, ...] = ()
    missing_measurements: Tuple[str, ...] = ()
    size_scores: Tuple[Tuple[str, float], ...] = ()
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendedSize": self.recommended_size,
            "confidence": self.confidence.value,
            "matchScore": self.match_score,
            "analysis": self.rationale,
            "extractedSizes": self.normalized_size_chart,
            "isFallback": self.is_fallback,
            "exceededMeasurements": [asdict(e) for e in self.exceeded_measurements],
            "missingMeasurements": list(self.missing_measurements),
            "sizeScores": {size: round(score, 2) for size, score in self.size_scores},
            "warnings": list(self.warnings),
        }


# ── Per-measurement scoring ───────────────────────────────────────────


def measurement_score(pct_diff: float, bound: float, is_tight: bool, fabric: FabricCategory) -> float:
    """Score a single measurement comparison on a 0-100 scale.

    Within tolerance the score falls linearly from 100 to 80 as the
    difference approaches the bound; stretchy fabric gets a bonus when the
    garment is smaller than the body. Outside tolerance it decays from 80 by
    20 points per 10 percentage points of excess, floored at 0.
    """
    if pct_diff == 0:
        return PERFECT_SCORE
    if pct_diff <= bound:
        score = PERFECT_SCORE - (pct_diff / bound) * (PERFECT_SCORE - WITHIN_TOLERANCE_FLOOR)
        if fabric is FabricCategory.STRETCHY and is_tight:
            score = min(PERFECT_SCORE, score + STRETCH_TIGHT_BONUS)
        return score
    excess = pct_diff - bound
    return max(0.0, WITHIN_TOLERANCE_FLOOR - (excess / 10.0) * OUT_OF_TOLERANCE_DECAY)


def available_measurements(chart: SizeChart) -> set[str]:
    """Measurements with a positive value in at least one size."""
    found = set()
    for measurements in chart.values():
        for name, value in measurements.items():
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
                found.add(name)
    return found


def available_primary_measurements(user: Dict[str, float], chart: SizeChart, garment_type: str) -> List[str]:
    """Garment primaries the user supplied that at least one size also lists."""
    in_chart = available_measurements(chart)
    return [m.value for m in primary_measurements(garment_type) if m.value in user and m.value in in_chart]


def percent(score: float) -> int:
    """Round half up and clamp to 0..100 for display."""
    return max(0, min(100, int(math.floor(score + 0.5))))


def _score_size(
    size: str,
    chart_measurements: Dict[str, float],
    user: Dict[str, float],
    available_primary: Sequence[str],
    tolerance: ToleranceProfile,
    fabric: FabricCategory,
) -> SizeScore:
    result = SizeScore(size=size)
    weighted_sum = 0.0

    for name, user_value in user.items():
        chart_value = chart_measurements.get(name)
        if isinstance(chart_value, bool) or not isinstance(chart_value, (int, float)) or chart_value <= 0:
            continue

        signed = chart_value - user_value
        pct = abs(signed) / user_value * 100.0
        is_primary = name in available_primary
        is_tight = signed < 0
        bound = tolerance.bound(is_primary, is_tight)
        within = pct <= bound
        score = measurement_score(pct, bound, is_tight, fabric)

        result.matches[name] = MeasurementMatch(
            user=user_value,
            chart=float(chart_value),
            difference=signed,
            pct_diff=pct,
            within_tolerance=within,
            is_primary=is_primary,
            score=score,
        )
        result.measurement_count += 1
        weighted_sum += score * (PRIMARY_WEIGHT if is_primary else SECONDARY_WEIGHT)

        if within:
            result.total_match_count += 1
            if is_primary:
                result.primary_match_count += 1
        elif is_primary:
            result.all_primary_within_tolerance = False

    if result.measurement_count:
        result.score = weighted_sum / (result.measurement_count * SCORE_NORMALIZER)
    return result


def score_sizes(
    profile: Any,
    chart: SizeChart,
    garment_type: str,
    fabric: Any = None,
) -> List[SizeScore]:
    """Score every size in the chart, returned in canonical small-to-large order."""
    fabric_cat = parse_fabric_category(fabric)
    tolerance = tolerance_for(fabric_cat)
    user = project_profile(profile, garment_type)
    available_primary = available_primary_measurements(user, chart, garment_type)

    scores = [
        _score_size(size, measurements, user, available_primary, tolerance, fabric_cat)
        for size, measurements in chart.items()
    ]
    positions = {s.size: i for i, s in enumerate(scores)}
    scores.sort(key=lambda s: size_sort_key(s.size, positions[s.size]))
    return scores


# ── Selection ─────────────────────────────────────────────────────────


def _accommodates(size_score: SizeScore, available_primary: Sequence[str], tolerance: ToleranceProfile) -> bool:
    for name in available_primary:
        match = size_score.matches.get(name)
        if match is None:
            continue
        allowance = tolerance.loose_primary_pct / 100.0 * match.user
        if match.user > match.chart + allowance:
            return False
    return True


def _exceeded(size_score: SizeScore, available_primary: Sequence[str]) -> List[ExceededMeasurement]:
    exceeded = []
    for name in available_primary:
        match = size_score.matches.get(name)
        if match is not None and match.user > match.chart:
            exceeded.append(ExceededMeasurement(
                name=name,
                user_value=match.user,
                chart_value=match.chart,
                excess=match.user - match.chart,
            ))
    return exceeded


def _confidence(best: SizeScore, available_primary: Sequence[str], is_fallback: bool) -> Confidence:
    if is_fallback:
        return Confidence.LOOSE
    all_primary = bool(available_primary) and best.primary_match_count == len(available_primary)
    if all_primary and best.score >= CONFIDENCE_PERFECT_MIN:
        return Confidence.PERFECT
    if all_primary and best.score >= CONFIDENCE_GOOD_MIN:
        return Confidence.GOOD
    return Confidence.LOOSE


def recommend_size(
    profile: Any,
    chart: SizeChart,
    garment_type: str,
    fabric: Any = None,
) -> RecommendationResult:
    """Recommend a size from an already-normalized chart.

    Raises:
        EmptyChartError: if no size has a measurement comparable with the profile.
    """
    fabric_cat = parse_fabric_category(fabric)
    tolerance = tolerance_for(fabric_cat)
    available = available_measurements(chart)
    user = project_profile(profile, garment_type)

    primary = [m.value for m in primary_measurements(garment_type)]
    secondary = [m.value for m in secondary_measurements(garment_type)]
    available_primary = available_primary_measurements(user, chart, garment_type)
    missing = [m for m in primary + secondary if m not in available]
    not_provided = [m for m in primary if m in available and m not in user]

    logger.info("Size chart contains measurements: %s", sorted(available))
    if any(m in missing for m in primary):
        logger.warning(
            "Size chart is missing primary measurements for %s: %s",
            garment_type, [m for m in primary if m in missing],
        )

    warnings = check_size_progression(chart)
    scores = score_sizes(profile, chart, garment_type, fabric_cat)
    candidates = [s for s in scores if s.measurement_count > 0]
    if not candidates:
        raise EmptyChartError("No size chart data available for comparison.")

    best: Optional[SizeScore] = None
    for size_score in candidates:
        if _accommodates(size_score, available_primary, tolerance):
            best = size_score
            break

    is_fallback = best is None
    exceeded: List[ExceededMeasurement] = []
    if best is None:
        best = candidates[-1]
        exceeded = _exceeded(best, available_primary)
        logger.warning("No size fits all primary measurements; falling back to largest size %s", best.size)

    confidence = _confidence(best, available_primary, is_fallback)
    ranked = sorted(candidates, key=lambda s: s.score, reverse=True)

    rationale = build_rationale(
        best=best,
        garment_type=garment_type,
        fabric=fabric_cat,
        tolerance=tolerance,
        available_primary=available_primary,
        missing=missing,
        not_provided=not_provided,
        ranked=ranked,
        is_fallback=is_fallback,
        exceeded=exceeded,
    )

    logger.info(
        "Recommended size %s (%s fit, score %.1f, fallback=%s)",
        best.size, confidence.value, best.score, is_fallback,
    )
    return RecommendationResult(
        recommended_size=best.size,
        confidence=confidence,
        match_score=percent(best.score),
        rationale=rationale,
        normalized_size_chart={size: dict(m) for size, m in chart.items()},
        is_fallback=is_fallback,
        exceeded_measurements=tuple(exceeded),
        missing_measurements=tuple(missing),
        size_scores=tuple((s.size, s.score) for s in ranked),
        warnings=tuple(warnings),
    )


# ── Rationale ─────────────────────────────────────────────────────────


def _fabric_note(fabric: FabricCategory, tolerance: ToleranceProfile) -> str:
    if fabric is FabricCategory.STRETCHY:
        return (
            f"- Stretchy fabrics can accommodate slightly tighter measurements "
            f"(up to {tolerance.tight_primary_pct:g}% tolerance)"
        )
    if fabric is FabricCategory.RIGID:
        return (
            "- Rigid fabrics have minimal stretch, so we recommend a size that fits "
            "comfortably without being too tight"
        )
    return (
        f"- Normal fabrics have standard fit with moderate tolerance "
        f"({tolerance.loose_primary_pct:g}% for primary measurements)"
    )


def _score_band(score: float, partial: bool = False) -> str:
    if partial and score >= SCORE_BANDS[0][0]:
        return SCORE_BAND_PARTIAL
    for threshold, text in SCORE_BANDS:
        if score >= threshold:
            return text
    return SCORE_BAND_DEFAULT


def build_rationale(
    best: SizeScore,
    garment_type: str,
    fabric: FabricCategory,
    tolerance: ToleranceProfile,
    available_primary: Sequence[str],
    missing: Sequence[str],
    not_provided: Sequence[str],
    ranked: Sequence[SizeScore],
    is_fallback: bool,
    exceeded: Sequence[ExceededMeasurement],
) -> str:
    lines: List[str] = []
    garment = normalize_garment_type(garment_type) or "garment"

    if is_fallback:
        lines.append("⚠️ **Important Notice:** Your measurements exceed the largest available size in this size chart.")
        lines.append("")
        lines.append(f"We recommend **Size {best.size}** as it is the largest available size, but please note:")
        lines.append("")
        if exceeded:
            lines.append("**Measurements that exceed the largest size:**")
            for e in exceeded:
                lines.append(
                    f"- **{measurement_label(e.name)}**: Your {e.user_value:g}cm exceeds Size {best.size} "
                    f"({e.chart_value:g}cm) by {e.excess:.1f}cm"
                )
            lines.append("")
        lines.append(
            "*Consider looking for this item in a store with larger size options, "
            "or check if the brand offers extended sizes.*"
        )
        lines.append("")
    else:
        lines.append(
            f"Based on your measurements and the size chart, we recommend **Size {best.size}** for this {garment}."
        )
        lines.append("")

    compared = [m for m in available_primary if m in best.matches]
    unlisted = [m for m in available_primary if m not in best.matches]
    if compared or unlisted or not_provided:
        exceeded_names = {e.name for e in exceeded}
        lines.append("**Primary Measurements Analysis:**")
        for name in compared:
            match = best.matches[name]
            if name in exceeded_names:
                status = "❌"
            else:
                status = "✓" if match.within_tolerance else "⚠"
            if match.difference > 0:
                diff_text = f"{match.difference:.1f}cm larger"
            elif match.difference < 0:
                diff_text = f"{abs(match.difference):.1f}cm smaller"
            else:
                diff_text = "perfect match"
            lines.append(
                f"- {measurement_label(name)}: {status} Your {match.user:g}cm vs Size {best.size} "
                f"{match.chart:g}cm ({diff_text})"
            )
        for name in unlisted:
            lines.append(f"- {measurement_label(name)}: not listed for Size {best.size}")
        for name in not_provided:
            lines.append(f"- {measurement_label(name)}: not in your measurements, so it was not compared")
        lines.append("")

    if missing:
        lines.append("**Note:** The following measurements were not available in this size chart:")
        for name in missing:
            lines.append(f"- {measurement_label(name)} (not included in size chart)")
        lines.append("")

    lines.append(f"**Fabric Type: {fabric.value.capitalize()}**")
    lines.append(_fabric_note(fabric, tolerance))

    if not is_fallback:
        lines.append("")
        lines.append(f"**Overall Match Score: {percent(best.score)}%**")
        lines.append(_score_band(best.score, partial=bool(unlisted)))

        alternatives = [
            s for s in ranked if s.size != best.size and s.score >= ALTERNATIVE_MIN_SCORE
        ][:MAX_ALTERNATIVES]
        if alternatives:
            lines.append("")
            lines.append("**Alternative Sizes to Consider:**")
            for alt in alternatives:
                lines.append(f"- Size {alt.size}: {percent(alt.score)}% match")

    return "\n".join(lines)

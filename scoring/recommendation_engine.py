"""Recommendation engine: the synchronous entry point for size recommendations.

A size chart supplied directly (typed in, or already extracted) is normalized
and scored in one call. Image-based requests go through
components.job_queue instead, which ends in the same two steps.
"""
from __future__ import annotations

from typing import Any, Mapping

from scoring.fit_engine import RecommendationResult, recommend_size
from scoring.normalizer import normalize_size_chart


def recommend_from_chart(
    profile: Any,
    raw_chart: Mapping[str, Any],
    garment_type: str,
    fabric: Any = None,
) -> RecommendationResult:
    chart = normalize_size_chart(raw_chart)
    return recommend_size(profile, chart, garment_type, fabric)


def combine_analysis(extraction_notes: str, recommendation: RecommendationResult) -> str:
    """Join what the vision model saw in the chart with the engine's rationale."""
    notes = (extraction_notes or "").strip() or "Size chart data successfully extracted from image."
    return (
        f"**AI-Extracted Size Chart Analysis:**\n\n{notes}\n\n---\n\n"
        f"**Smart Recommendation Calculation:**\n\n{recommendation.rationale}"
    )

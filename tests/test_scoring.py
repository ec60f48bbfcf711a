"""Unit tests for scoring modules: measurements, tolerance, fit_engine, recommendation_engine."""
from __future__ import annotations

import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from components.body_profile import BodyProfile
from config import GARMENT_MEASUREMENTS
from scoring.fit_engine import (
    Confidence,
    EmptyChartError,
    measurement_score,
    percent,
    recommend_size,
    score_sizes,
)
from scoring.measurements import (
    Measurement,
    measurement_label,
    measurement_unit,
    primary_measurements,
    project_profile,
    relevant_measurements,
    secondary_measurements,
)
from scoring.recommendation_engine import combine_analysis, recommend_from_chart
from scoring.tolerance import FabricCategory, parse_fabric_category, tolerance_for


# ══════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════

@pytest.fixture
def pants_profile():
    return BodyProfile(height=175, weight=70, chest=96, waist=80, hip=100)


@pytest.fixture
def pants_chart():
    """M fails the waist accommodation check, L is the first size that fits."""
    return {
        "S": {"waist": 70.0, "hip": 90.0},
        "M": {"waist": 76.0, "hip": 98.0},
        "L": {"waist": 81.0, "hip": 101.0},
    }


@pytest.fixture
def small_chart():
    return {
        "S": {"waist": 90.0, "hip": 95.0},
        "M": {"waist": 100.0, "hip": 105.0},
        "L": {"waist": 110.0, "hip": 115.0},
    }


# ══════════════════════════════════════════════════════════════════════
# Measurement relevance
# ══════════════════════════════════════════════════════════════════════

class TestMeasurementRelevance:
    def test_pants_primary(self):
        assert primary_measurements("pants") == [Measurement.WAIST, Measurement.HIP, Measurement.INSEAM]

    def test_relevant_is_primary_then_secondary(self):
        assert relevant_measurements("pants") == [
            Measurement.WAIST, Measurement.HIP, Measurement.INSEAM, Measurement.THIGH_CIRCUMFERENCE,
        ]

    def test_unknown_garment_defaults(self):
        assert primary_measurements("poncho") == [Measurement.CHEST, Measurement.WAIST, Measurement.HIP]
        assert Measurement.SHOULDER in secondary_measurements("poncho")

    def test_garment_lookup_is_case_insensitive_with_aliases(self):
        assert primary_measurements("Jeans") == primary_measurements("pants")
        assert primary_measurements("  T-SHIRT ") == primary_measurements("t-shirt")

    def test_primary_and_secondary_disjoint(self):
        for garment in GARMENT_MEASUREMENTS:
            assert not set(primary_measurements(garment)) & set(secondary_measurements(garment)), garment

    def test_projection_keeps_height_weight_and_relevant_only(self, pants_profile):
        projected = project_profile(pants_profile, "pants")
        assert projected == {"height": 175.0, "weight": 70.0, "waist": 80.0, "hip": 100.0}
        assert "chest" not in projected

    def test_projection_accepts_plain_mapping(self):
        projected = project_profile({"chest": 100, "waist": 0, "shoulder": "wide"}, "t-shirt")
        assert projected == {"chest": 100.0}

    def test_labels_and_units(self):
        assert measurement_label("thighCircumference") == "Thigh Circumference"
        assert measurement_label("Neck") == "Neck"
        assert measurement_unit(Measurement.WEIGHT) == "kg"
        assert measurement_unit("waist") == "cm"


# ══════════════════════════════════════════════════════════════════════
# Fabric tolerance
# ══════════════════════════════════════════════════════════════════════

class TestTolerance:
    def test_stretchy_is_asymmetric(self):
        tol = tolerance_for("stretchy")
        assert tol.tight_primary_pct == 8.0
        assert tol.loose_primary_pct == 3.0

    def test_unknown_fabric_falls_back_to_normal(self):
        assert tolerance_for("silk") == tolerance_for("normal")
        assert parse_fabric_category(None) is FabricCategory.NORMAL

    def test_parse_is_case_insensitive(self):
        assert parse_fabric_category(" RIGID ") is FabricCategory.RIGID

    def test_bound_selection(self):
        tol = tolerance_for("rigid")
        assert tol.bound(is_primary=True, is_tight=True) == 2.0
        assert tol.bound(is_primary=False, is_tight=False) == 5.0


# ══════════════════════════════════════════════════════════════════════
# Per-measurement score
# ══════════════════════════════════════════════════════════════════════

class TestMeasurementScore:
    def test_exact_match_is_perfect(self):
        assert measurement_score(0.0, 3.0, False, FabricCategory.NORMAL) == 100.0

    def test_within_tolerance_interpolates_to_80(self):
        assert measurement_score(1.5, 3.0, False, FabricCategory.NORMAL) == pytest.approx(90.0)
        assert measurement_score(3.0, 3.0, False, FabricCategory.NORMAL) == pytest.approx(80.0)

    def test_stretchy_tight_bonus_is_capped(self):
        assert measurement_score(4.0, 8.0, True, FabricCategory.STRETCHY) == pytest.approx(100.0)
        assert measurement_score(8.0, 8.0, True, FabricCategory.STRETCHY) == pytest.approx(90.0)
        # no bonus when the garment is larger than the body
        assert measurement_score(1.5, 3.0, False, FabricCategory.STRETCHY) == pytest.approx(90.0)

    def test_outside_tolerance_decays_and_floors(self):
        assert measurement_score(13.0, 3.0, False, FabricCategory.NORMAL) == pytest.approx(60.0)
        assert measurement_score(100.0, 3.0, False, FabricCategory.NORMAL) == 0.0

    @pytest.mark.parametrize("score,expected", [
        (92.5, 93), (92.49, 92), (0.5, 1), (-4.0, 0), (133.3, 100),
    ])
    def test_percent_rounds_half_up_and_clamps(self, score, expected):
        assert percent(score) == expected

    @pytest.mark.parametrize("fabric", list(FabricCategory))
    @pytest.mark.parametrize("is_tight", [True, False])
    def test_monotonic_in_pct_diff(self, fabric, is_tight):
        tol = tolerance_for(fabric)
        bound = tol.bound(is_primary=True, is_tight=is_tight)
        pcts = [i * 0.25 for i in range(0, 241)]
        scores = [measurement_score(p, bound, is_tight, fabric) for p in pcts]
        assert all(a >= b for a, b in zip(scores, scores[1:]))


# ══════════════════════════════════════════════════════════════════════
# Size scoring and selection
# ══════════════════════════════════════════════════════════════════════

class TestScoreSizes:
    def test_sizes_in_canonical_order(self, pants_profile):
        chart = {"XL": {"waist": 90.0}, "S": {"waist": 70.0}, "M": {"waist": 80.0}}
        assert [s.size for s in score_sizes(pants_profile, chart, "pants")] == ["S", "M", "XL"]

    def test_weighted_score(self, pants_profile, pants_chart):
        scores = {s.size: s for s in score_sizes(pants_profile, pants_chart, "pants", "normal")}
        large = scores["L"]
        assert large.matches["waist"].within_tolerance
        assert large.matches["waist"].difference == pytest.approx(1.0)
        assert large.primary_match_count == 2
        # (2 * 91.67 + 2 * 93.33) / (2 * 1.5)
        assert large.score == pytest.approx(370.0 / 3.0)

    def test_size_without_comparable_measurements_scores_zero(self, pants_profile):
        scores = score_sizes(pants_profile, {"S": {}, "M": {"waist": 80.0}}, "pants")
        empty = next(s for s in scores if s.size == "S")
        assert empty.score == 0
        assert empty.measurement_count == 0

    def test_unknown_chart_keys_are_not_scored(self, pants_profile):
        scores = score_sizes(pants_profile, {"M": {"waist": 80.0, "Neck": 38.0}}, "pants")
        assert set(scores[0].matches) == {"waist"}


class TestRecommendSize:
    def test_first_accommodating_size_wins(self, pants_profile, pants_chart):
        result = recommend_size(pants_profile, pants_chart, "pants", "normal")
        assert result.recommended_size == "L"
        assert result.confidence is Confidence.PERFECT
        assert result.match_score == 100
        assert not result.is_fallback

    def test_rationale_lists_primary_measurements(self, pants_profile, pants_chart):
        text = recommend_size(pants_profile, pants_chart, "pants", "normal").rationale
        assert "we recommend **Size L** for this pants" in text
        assert "Waist Circumference: ✓ Your 80cm vs Size L 81cm (1.0cm larger)" in text
        assert "Hip Circumference: ✓ Your 100cm vs Size L 101cm (1.0cm larger)" in text
        assert "- Inseam (not included in size chart)" in text
        assert "**Fabric Type: Normal**" in text
        assert "excellent fit" in text

    def test_alternatives_exclude_winner_in_score_order(self, pants_profile, pants_chart):
        result = recommend_size(pants_profile, pants_chart, "pants", "normal")
        text = result.rationale
        alt_section = text.split("**Alternative Sizes to Consider:**")[1]
        assert "Size L" not in alt_section
        assert alt_section.index("Size M") < alt_section.index("Size S")
        assert [size for size, _ in result.size_scores] == ["L", "M", "S"]

    def test_fallback_to_largest_size(self, small_chart):
        profile = BodyProfile(waist=130, hip=110)
        result = recommend_size(profile, small_chart, "pants", "normal")
        assert result.recommended_size == "L"
        assert result.is_fallback
        assert result.confidence is Confidence.LOOSE
        assert len(result.exceeded_measurements) == 1
        exceeded = result.exceeded_measurements[0]
        assert (exceeded.name, exceeded.user_value, exceeded.chart_value, exceeded.excess) == (
            "waist", 130.0, 110.0, 20.0,
        )

    def test_fallback_rationale(self, small_chart):
        text = recommend_size(BodyProfile(waist=130, hip=110), small_chart, "pants").rationale
        assert text.startswith("⚠️ **Important Notice:**")
        assert "Your 130cm exceeds Size L (110cm) by 20.0cm" in text
        assert "Waist Circumference: ❌" in text
        assert "Overall Match Score" not in text
        assert "Alternative Sizes" not in text

    def test_fallback_picks_largest_even_when_unordered(self):
        chart = {"XL": {"chest": 110.0}, "S": {"chest": 90.0}, "M": {"chest": 100.0}}
        result = recommend_size(BodyProfile(chest=140), chart, "t-shirt")
        assert result.recommended_size == "XL"
        assert result.is_fallback

    def test_every_exceeded_primary_is_reported(self, small_chart):
        result = recommend_size(BodyProfile(waist=130, hip=130), small_chart, "pants")
        names = {e.name: e for e in result.exceeded_measurements}
        assert set(names) == {"waist", "hip"}
        assert all(e.excess == e.user_value - e.chart_value > 0 for e in names.values())

    def test_good_confidence_when_secondary_is_off(self):
        profile = BodyProfile(waist=80, hip=100, thigh_circumference=60)
        chart = {"M": {"waist": 80.0, "hip": 100.0, "thighCircumference": 90.0}}
        result = recommend_size(profile, chart, "pants")
        assert result.confidence is Confidence.GOOD
        assert result.match_score == 89
        assert "good fit" in result.rationale

    def test_loose_when_primary_outside_tolerance(self):
        profile = BodyProfile(waist=80, hip=100)
        result = recommend_size(profile, {"XL": {"waist": 100.0, "hip": 120.0}}, "pants")
        assert result.recommended_size == "XL"
        assert not result.is_fallback
        assert result.confidence is Confidence.LOOSE
        assert "closest available size" in result.rationale
        assert "Waist Circumference: ⚠" in result.rationale

    def test_size_missing_a_primary_is_still_a_candidate(self):
        profile = BodyProfile(waist=80, hip=100)
        chart = {"S": {"waist": 70.0}, "M": {"waist": 82.0, "hip": 102.0}}
        assert recommend_size(profile, chart, "pants").recommended_size == "M"

    def test_missing_primary_is_noted_not_invented(self):
        profile = BodyProfile(waist=80, hip=100)
        result = recommend_size(profile, {"M": {"waist": 80.0}}, "pants")
        assert result.missing_measurements == ("hip", "inseam", "thighCircumference")
        assert "hip" not in result.normalized_size_chart["M"]
        assert "Hip Circumference (not included in size chart)" in result.rationale

    def test_profile_with_some_primaries_can_be_perfect(self):
        result = recommend_size(BodyProfile(waist=80), {"M": {"waist": 80.0, "hip": 100.0}}, "pants")
        assert result.confidence is Confidence.PERFECT
        assert result.match_score == 100
        assert "Hip Circumference: not in your measurements" in result.rationale

    def test_primaries_without_user_value_are_not_scored_as_primary(self):
        scores = score_sizes(BodyProfile(waist=80), {"M": {"waist": 80.0, "hip": 100.0}}, "pants")
        assert set(scores[0].matches) == {"waist"}
        assert scores[0].primary_match_count == 1

    def test_primary_absent_from_chosen_size_is_called_out(self):
        profile = BodyProfile(waist=70, hip=100)
        chart = {"S": {"waist": 70.0}, "M": {"waist": 82.0, "hip": 102.0}}
        result = recommend_size(profile, chart, "pants")
        assert result.recommended_size == "S"
        assert result.confidence is Confidence.LOOSE
        assert "- Hip Circumference: not listed for Size S" in result.rationale
        assert "all critical measurements" not in result.rationale
        assert "does not give every critical measurement" in result.rationale

    def test_stretchy_fabric_note(self, pants_profile, pants_chart):
        text = recommend_size(pants_profile, pants_chart, "pants", "STRETCHY").rationale
        assert "**Fabric Type: Stretchy**" in text
        assert "up to 8% tolerance" in text

    def test_empty_chart_fails(self, pants_profile):
        with pytest.raises(EmptyChartError):
            recommend_size(pants_profile, {}, "pants")

    def test_chart_without_comparable_measurements_fails(self, pants_profile):
        with pytest.raises(EmptyChartError):
            recommend_size(pants_profile, {"S": {}, "M": {"garmentLength": 100.0}}, "pants")

    def test_deterministic(self, pants_profile, pants_chart):
        first = recommend_size(pants_profile, pants_chart, "pants", "rigid")
        second = recommend_size(pants_profile, pants_chart, "pants", "rigid")
        assert first == second

    def test_progression_warnings_are_returned(self, pants_profile):
        chart = {"S": {"waist": 82.0, "hip": 102.0}, "M": {"waist": 80.0, "hip": 100.0}}
        result = recommend_size(pants_profile, chart, "pants")
        assert len(result.warnings) == 1

    @pytest.mark.parametrize("fabric", ["stretchy", "normal", "rigid"])
    @pytest.mark.parametrize("waist", [60, 75, 80, 84, 95, 130])
    def test_confidence_ordering(self, small_chart, pants_chart, fabric, waist):
        profile = BodyProfile(waist=waist, hip=100, thigh_circumference=58)
        for chart in (small_chart, pants_chart):
            result = recommend_size(profile, chart, "pants", fabric)
            best = dict(result.size_scores)[result.recommended_size]
            if result.confidence is Confidence.PERFECT:
                assert best >= 95
            if result.confidence in (Confidence.PERFECT, Confidence.GOOD):
                assert best >= 75
                assert not result.is_fallback
            if result.is_fallback:
                assert result.confidence is Confidence.LOOSE

    def test_to_dict_shape(self, pants_profile, pants_chart):
        out = recommend_size(pants_profile, pants_chart, "pants").to_dict()
        assert out["recommendedSize"] == "L"
        assert out["confidence"] == "Perfect"
        assert out["extractedSizes"] == pants_chart
        assert out["exceededMeasurements"] == []


# ══════════════════════════════════════════════════════════════════════
# Recommendation engine facade
# ══════════════════════════════════════════════════════════════════════

class TestRecommendationEngine:
    def test_raw_chart_is_normalized_before_scoring(self, pants_profile):
        raw = {
            "S": {"Waist": "68-70", "Hips": 90},
            "M": {"حزام بطول": "74 - 76", "محيط الورك": 98},
            "L": {"belt length": 81, "hip": "99–101"},
        }
        result = recommend_from_chart(pants_profile, raw, "pants", "normal")
        assert result.recommended_size == "L"
        assert result.normalized_size_chart["M"] == {"waist": 76.0, "hip": 98.0}

    def test_combine_analysis(self, pants_profile, pants_chart):
        rec = recommend_size(pants_profile, pants_chart, "pants")
        text = combine_analysis("Three sizes, cm.", rec)
        assert text.startswith("**AI-Extracted Size Chart Analysis:**\n\nThree sizes, cm.")
        assert rec.rationale in text

    def test_combine_analysis_without_notes(self, pants_profile, pants_chart):
        rec = recommend_size(pants_profile, pants_chart, "pants")
        assert "successfully extracted" in combine_analysis("", rec)

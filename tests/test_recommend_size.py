"""Tests for the body profile builder and the recommend_size CLI."""
from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import patch

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from components.body_profile import BodyProfile, build_body_profile
from components.job_queue import AnalysisJobQueue
from tools.recommend_size import main, run_chart, run_image

PROFILE = {"id": "user-7", "waist": 80, "hip": 100, "gender": "female"}
CHART = {
    "S": {"Waist": 70, "Hips": 90},
    "M": {"Waist": 76, "Hips": 98},
    "L": {"Waist": 81, "Hips": 101},
}


# ══════════════════════════════════════════════════════════════════════
# Body profile
# ══════════════════════════════════════════════════════════════════════

class TestBodyProfile:
    def test_snake_and_camel_case_keys(self):
        profile = build_body_profile({"arm_length": 60, "thighCircumference": "55", "profileId": 3})
        assert profile.arm_length == 60.0
        assert profile.thigh_circumference == 55.0
        assert profile.profile_id == "3"

    def test_invalid_values_are_absent(self):
        profile = build_body_profile({"waist": 0, "hip": "n/a", "chest": True, "height": -170})
        assert profile.measurements() == {}

    def test_measurements_use_canonical_names(self):
        profile = BodyProfile(chest=96, arm_length=61, weight=70)
        assert profile.measurements() == {"weight": 70.0, "chest": 96.0, "armLength": 61.0}

    def test_profile_is_read_only(self):
        profile = BodyProfile(waist=80)
        with pytest.raises(AttributeError):
            profile.waist = 90


# ══════════════════════════════════════════════════════════════════════
# CLI
# ══════════════════════════════════════════════════════════════════════

@pytest.fixture
def profile_file(tmp_path):
    path = tmp_path / "profile.json"
    path.write_text(json.dumps(PROFILE), encoding="utf-8")
    return path


class TestRecommendSizeCli:
    def test_run_chart(self):
        out = run_chart(PROFILE, CHART, "jeans", "normal")
        assert out["recommendedSize"] == "L"
        assert out["confidence"] == "Perfect"
        assert out["extractedSizes"]["M"] == {"waist": 76.0, "hip": 98.0}

    def test_main_with_chart_to_stdout(self, tmp_path, profile_file, capsys):
        chart_file = tmp_path / "chart.json"
        chart_file.write_text(json.dumps(CHART), encoding="utf-8")

        code = main(["--profile", str(profile_file), "--chart", str(chart_file), "--garment", "pants"])

        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["recommendedSize"] == "L"
        assert out["isFallback"] is False

    def test_main_writes_output_file(self, tmp_path, profile_file):
        chart_file = tmp_path / "chart.json"
        chart_file.write_text(json.dumps({"S": {"waist": 60}}), encoding="utf-8")
        out_path = tmp_path / "out" / "result.json"

        main([
            "--profile", str(profile_file), "--chart", str(chart_file),
            "--garment", "pants", "--fabric", "rigid", "--output", str(out_path),
        ])

        result = json.loads(out_path.read_text(encoding="utf-8"))
        assert result["isFallback"] is True
        assert result["confidence"] == "Loose"
        assert "Fabric Type: Rigid" in result["analysis"]

    def test_main_requires_a_source(self, profile_file):
        with pytest.raises(SystemExit):
            main(["--profile", str(profile_file), "--garment", "pants"])

    def test_missing_profile_file(self, tmp_path, capsys):
        code = main(["--profile", str(tmp_path / "nope.json"), "--chart", "x.json", "--garment", "pants"])
        assert code == 1
        assert "File not found" in capsys.readouterr().err

    def test_unusable_chart_exits_non_zero(self, tmp_path, profile_file, capsys):
        chart_file = tmp_path / "chart.json"
        chart_file.write_text(json.dumps({"S": {"waist": "n/a"}}), encoding="utf-8")

        code = main(["--profile", str(profile_file), "--chart", str(chart_file), "--garment", "pants"])

        captured = capsys.readouterr()
        assert code == 1
        assert captured.out == ""
        assert "Error: No size chart data available for comparison." in captured.err

    def test_failed_image_job_exits_non_zero(self, profile_file, capsys):
        def failing_run_image(*args, **kwargs):
            raise RuntimeError("Unable to analyze the size chart image (blurry).")

        with patch("tools.recommend_size.run_image", failing_run_image):
            code = main(["--profile", str(profile_file), "--image", "data:image/png;base64,AAAA",
                         "--garment", "pants"])

        assert code == 1
        assert "Unable to analyze the size chart image" in capsys.readouterr().err

    def test_run_image_polls_job_to_completion(self):
        def extractor(payload, profile, garment_type, fabric):
            assert payload.startswith("data:image/png")
            return CHART

        with AnalysisJobQueue(extractor, start_sweeper=False) as queue:
            out = run_image(PROFILE, "data:image/png;base64,AAAA", "pants", "stretchy",
                            poll_interval=0.01, queue=queue)

        assert out["recommendedSize"] == "L"
        assert out["profileId"] == "user-7"
        assert out["fabricType"] == "stretchy"
        assert "AI-Extracted Size Chart Analysis" in out["analysis"]

    def test_run_image_surfaces_job_failure(self):
        def extractor(payload, profile, garment_type, fabric):
            raise RuntimeError("Vision API request timed out.")

        with AnalysisJobQueue(extractor, start_sweeper=False) as queue:
            with pytest.raises(RuntimeError, match="timed out"):
                run_image(PROFILE, "data:image/png;base64,AAAA", "pants", "normal",
                          poll_interval=0.01, queue=queue)

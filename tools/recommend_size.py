from __future__ import annotations

import argparse
import json
import logging
import sys
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

from components.body_profile import build_body_profile
from components.job_queue import AnalysisJobQueue, AnalysisRequest, JobStatus
from config import FABRIC_DESCRIPTIONS, GARMENT_MEASUREMENTS
from extraction.size_chart_vision import extract_size_chart
from scoring.recommendation_engine import recommend_from_chart


def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object.")
    return data


def _read_image_payload(image: str) -> Any:
    if image.startswith(("http://", "https://", "data:")):
        return image
    path = Path(image)
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")
    return path.read_bytes()


def run_chart(profile_data: Dict[str, Any], chart: Dict[str, Any], garment: str, fabric: str) -> Dict[str, Any]:
    profile = build_body_profile(profile_data)
    return recommend_from_chart(profile, chart, garment, fabric).to_dict()


def run_image(
    profile_data: Dict[str, Any],
    image: str,
    garment: str,
    fabric: str,
    poll_interval: float = 1.0,
    queue: Optional[AnalysisJobQueue] = None,
) -> Dict[str, Any]:
    """Submit an image analysis job and poll it to completion."""
    profile = build_body_profile(profile_data)
    request = AnalysisRequest(
        payload=_read_image_payload(image),
        profile=profile,
        garment_type=garment,
        fabric=fabric,
    )

    owns_queue = queue is None
    if queue is None:
        queue = AnalysisJobQueue(extract_size_chart, start_sweeper=False)
    try:
        job_id = str(uuid.uuid4())
        job = queue.submit(job_id, request)
        last_progress = -1
        while not job.is_terminal:
            if job.progress != last_progress:
                print(f"  job {job_id}: {job.status.value} ({job.progress}%)", file=sys.stderr)
                last_progress = job.progress
            time.sleep(poll_interval)
            job = queue.get(job_id)
            if job is None:
                raise RuntimeError(f"Job {job_id} expired before completion.")
    finally:
        if owns_queue:
            queue.shutdown()

    if job.status is JobStatus.FAILED:
        raise RuntimeError(job.error or "Analysis failed")
    return job.result.to_dict()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Recommend a garment size from a size chart.")
    parser.add_argument("--profile", required=True, help="JSON file with body measurements")
    parser.add_argument("--garment", required=True, help=f"Garment type, e.g. {', '.join(GARMENT_MEASUREMENTS)}")
    fabric_help = "; ".join(f"{name}: {text}" for name, text in FABRIC_DESCRIPTIONS.items())
    parser.add_argument("--fabric", default="normal", help=f"Fabric category ({fabric_help})")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--chart", help="JSON file with the size chart")
    source.add_argument("--image", help="Size chart image: file path, http(s) URL or data URL")
    parser.add_argument("--output", help="Write the result JSON here instead of stdout")
    parser.add_argument("--poll-interval", type=float, default=1.0)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    load_dotenv(PROJECT_ROOT / ".env")
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        profile_data = _load_json(Path(args.profile))
        if args.chart:
            result = run_chart(profile_data, _load_json(Path(args.chart)), args.garment, args.fabric)
        else:
            result = run_image(profile_data, args.image, args.garment, args.fabric, args.poll_interval)
    except (OSError, ValueError, RuntimeError) as exc:
        # EmptyChartError is a ValueError; ExtractionError and failed jobs are RuntimeErrors.
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    text = json.dumps(result, indent=2, ensure_ascii=False)
    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())

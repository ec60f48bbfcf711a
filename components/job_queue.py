"""Async analysis jobs: run the slow size-chart extraction off the caller's path.

A job moves pending -> processing -> completed | failed. Callers submit a
job, get an id-addressed snapshot back immediately, and poll with get().
Each job runs extraction on its own daemon thread; on success the raw chart
is normalized and scored, and the job carries the final recommendation.

Jobs live in memory only. A sweeper thread evicts every job older than the
retention window whatever its status, so callers must poll within that
window. There is no cancellation and no orchestrator-level timeout: a hung
extraction keeps its job in processing until it resolves or ages out.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Set

from config import (
    JOB_MAX_AGE_SECONDS,
    JOB_SWEEP_INTERVAL_SECONDS,
    PROGRESS_DONE,
    PROGRESS_EXTRACTING,
    PROGRESS_STARTED,
)
from scoring.fit_engine import RecommendationResult
from scoring.recommendation_engine import combine_analysis, recommend_from_chart
from scoring.tolerance import parse_fabric_category

logger = logging.getLogger(__name__)

# (payload, profile, garment_type, fabric) -> ExtractionOutput or raw size mapping
Extractor = Callable[[Any, Any, str, str], Any]


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DuplicateJobError(ValueError):
    pass


@dataclass(frozen=True)
class AnalysisRequest:
    payload: Any
    profile: Any
    garment_type: str
    fabric: str = "normal"


@dataclass(frozen=True)
class JobResult:
    extraction: Any
    recommendation: RecommendationResult
    garment_type: str
    fabric: str
    profile_id: Optional[str] = None

    @property
    def analysis(self) -> str:
        return combine_analysis(getattr(self.extraction, "notes", ""), self.recommendation)

    def to_dict(self) -> Dict[str, Any]:
        out = self.recommendation.to_dict()
        out["analysis"] = self.analysis
        out.update({
            "profileId": self.profile_id,
            "clothingType": self.garment_type,
            "fabricType": self.fabric,
        })
        return out


@dataclass
class AnalysisJob:
    id: str
    status: JobStatus
    progress: int
    created_at: datetime
    updated_at: datetime
    result: Optional[JobResult] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _raw_sizes(extraction: Any) -> Mapping[str, Any]:
    sizes = getattr(extraction, "sizes", extraction)
    if not isinstance(sizes, Mapping):
        raise TypeError(f"Extractor returned {type(extraction).__name__}, expected a size chart")
    return sizes


class AnalysisJobQueue:
    """Owns the job registry, the pending-input registry and the job threads.

    Both registries are guarded by one lock; extraction itself runs outside
    it on one thread per job, so a slow or hung extraction never delays
    another job.
    """

    def __init__(
        self,
        extractor: Extractor,
        *,
        max_age: timedelta = timedelta(seconds=JOB_MAX_AGE_SECONDS),
        sweep_interval: timedelta = timedelta(seconds=JOB_SWEEP_INTERVAL_SECONDS),
        clock: Callable[[], datetime] = _utcnow,
        start_sweeper: bool = True,
    ) -> None:
        self._extractor = extractor
        self._max_age = max_age
        self._sweep_interval = sweep_interval
        self._clock = clock

        self._lock = threading.Lock()
        self._jobs: Dict[str, AnalysisJob] = {}
        self._pending: Dict[str, AnalysisRequest] = {}

        self._threads: Set[threading.Thread] = set()
        self._closed = False
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        if start_sweeper:
            self._sweeper = threading.Thread(target=self._sweep_loop, name="analysis-job-sweeper", daemon=True)
            self._sweeper.start()

    # ── Public API ──────────────────────────────────────────────────────

    def submit(self, job_id: str, request: AnalysisRequest) -> AnalysisJob:
        """Register a job and schedule its processing; returns the pending snapshot."""
        now = self._clock()
        with self._lock:
            if self._closed:
                raise RuntimeError("Analysis job queue is shut down")
            if job_id in self._jobs:
                raise DuplicateJobError(f"Job {job_id} already exists")
            job = AnalysisJob(
                id=job_id,
                status=JobStatus.PENDING,
                progress=0,
                created_at=now,
                updated_at=now,
            )
            self._jobs[job_id] = job
            self._pending[job_id] = request
            snapshot = replace(job)

            thread = threading.Thread(
                target=self._run, args=(job_id,), name=f"analysis-job-{job_id}", daemon=True
            )
            self._threads.add(thread)
            thread.start()
        logger.info("Created analysis job %s (%s, %s)", job_id, request.garment_type, request.fabric)
        return snapshot

    def get(self, job_id: str) -> Optional[AnalysisJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job is not None else None

    def sweep(self) -> int:
        """Evict jobs older than the retention window. Returns how many were removed."""
        cutoff = self._clock() - self._max_age
        with self._lock:
            expired = [job_id for job_id, job in self._jobs.items() if job.created_at < cutoff]
            for job_id in expired:
                del self._jobs[job_id]
                self._pending.pop(job_id, None)
        if expired:
            logger.info("Evicted %d expired analysis jobs", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def has_pending_input(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._pending

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Refuse new jobs and stop the sweeper; with wait, join the live job threads."""
        with self._lock:
            self._closed = True
            threads = list(self._threads)
        self._stop.set()
        if not wait:
            return
        if self._sweeper is not None:
            self._sweeper.join(timeout=self._sweep_interval.total_seconds())
        for thread in threads:
            thread.join(timeout)

    def __enter__(self) -> "AnalysisJobQueue":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    # ── Internals ───────────────────────────────────────────────────────

    def _sweep_loop(self) -> None:
        interval = self._sweep_interval.total_seconds()
        while not self._stop.wait(interval):
            self.sweep()

    def _update(self, job: AnalysisJob, **changes: Any) -> bool:
        """Apply changes to a live job; False if it was evicted meanwhile."""
        with self._lock:
            # An evicted id may have been resubmitted; never touch the newer job.
            if self._jobs.get(job.id) is not job:
                return False
            for key, value in changes.items():
                setattr(job, key, value)
            job.updated_at = self._clock()
            if job.is_terminal:
                self._pending.pop(job.id, None)
            return True

    def _run(self, job_id: str) -> None:
        try:
            self._process(job_id)
        finally:
            with self._lock:
                self._threads.discard(threading.current_thread())

    def _process(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            request = self._pending.get(job_id)
        if job is None or request is None:
            return

        if not self._update(job, status=JobStatus.PROCESSING, progress=PROGRESS_STARTED):
            logger.info("Analysis job %s expired before processing started", job_id)
            return
        fabric = parse_fabric_category(request.fabric).value

        try:
            if not self._update(job, progress=PROGRESS_EXTRACTING):
                return
            extraction = self._extractor(request.payload, request.profile, request.garment_type, fabric)
            recommendation = recommend_from_chart(
                request.profile, _raw_sizes(extraction), request.garment_type, fabric
            )
        except Exception as exc:
            logger.exception("Analysis job %s failed", job_id)
            self._update(job, status=JobStatus.FAILED, error=str(exc) or "Analysis failed")
            return

        result = JobResult(
            extraction=extraction,
            recommendation=recommendation,
            garment_type=request.garment_type,
            fabric=fabric,
            profile_id=getattr(request.profile, "profile_id", None),
        )
        self._update(job, status=JobStatus.COMPLETED, progress=PROGRESS_DONE, result=result)
        logger.info(
            "Analysis job %s completed: size %s (%s fit, %d%% match)",
            job_id, recommendation.recommended_size, recommendation.confidence.value, recommendation.match_score,
        )

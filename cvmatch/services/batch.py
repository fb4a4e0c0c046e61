import shutil
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from cvmatch.config import MatchSettings
from cvmatch.models.models import CandidateRecord
from cvmatch.models.response import BatchReport, FailedItem
from cvmatch.models.schemas import JobPosting, MatchRecord
from cvmatch.services.matching import candidate_payload
from cvmatch.utils.exceptions import CVMatchError, FileReadError
from cvmatch.utils.logging_config import PerformanceMonitor, get_logger

logger = get_logger(__name__)

REPORT_COLUMNS = [
    "candidate_id", "candidate_name", "job_id", "job_title", "company", "score",
    "skills_score", "experience_score", "education_score", "overall_score",
]


class BatchExtractor:
    """Runs every PDF in a folder through the extraction pipeline"""

    def __init__(self, pipeline, upload_dir: str):
        self.pipeline = pipeline
        self.upload_dir = Path(upload_dir)

    async def process_folder(self, folder) -> BatchReport:
        src = Path(folder)
        if not src.is_dir():
            raise FileReadError(f"Folder not found: {src}", file_path=src)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

        files = sorted(p for p in src.iterdir() if p.is_file() and p.suffix.lower() == ".pdf")
        logger.info(f"Found {len(files)} PDF file(s) in {src}")
        report = BatchReport()

        for i, path in enumerate(files, start=1):
            # the pipeline deletes its input, so it works on a copy
            staged = self.upload_dir / f"{uuid.uuid4().hex}_{path.name}"
            try:
                shutil.copyfile(path, staged)
                record = await self.pipeline.run(staged, path.name)
                report.succeeded.append(record.candidate_id)
                logger.info(f"[{i}/{len(files)}] {path.name} -> {record.candidate_id} ({record.extraction_method})")
            except (CVMatchError, OSError) as e:
                message = e.message if isinstance(e, CVMatchError) else str(e)
                logger.error(f"[{i}/{len(files)}] {path.name} failed: {message}")
                report.failed.append(FailedItem(file=path.name, error=message))
                staged.unlink(missing_ok=True)

        logger.info(f"Batch extraction finished: {len(report.succeeded)} succeeded, {len(report.failed)} failed")
        return report


class BatchScorer:
    """Scores candidates against several jobs per model request"""

    def __init__(self, candidates, jobs, matches, extractor, settings: Optional[MatchSettings] = None):
        self.candidates = candidates
        self.jobs = jobs
        self.matches = matches
        self.extractor = extractor
        self.settings = settings or MatchSettings()

    async def score_candidate(self, candidate: CandidateRecord, jobs: List[JobPosting]) -> List[MatchRecord]:
        by_id = {j.job_id: j for j in jobs}
        size = self.settings.batch_size
        payload = candidate_payload(candidate)
        stored = []

        for start in range(0, len(jobs), size):
            chunk = jobs[start:start + size]
            job_payloads = [{"jobId": j.job_id, **j.scoring_payload()} for j in chunk]
            try:
                results = await self.extractor.score_match_batch(payload, job_payloads)
            except CVMatchError as e:
                logger.error(f"Batch scoring failed for {candidate.candidate_id}, jobs {start}-{start + len(chunk)}: {e.message}")
                continue

            for result in results:
                job = by_id.get(result.job_id)
                if job is None:
                    logger.debug(f"Ignoring score for unknown job id {result.job_id!r}")
                    continue
                record = MatchRecord(
                    candidate_id=candidate.candidate_id,
                    job_id=job.job_id,
                    score=result.score,
                    details=result.details,
                    recommendations=result.recommendations,
                    cv_version=candidate.modified_at,
                    job_version=job.modified_at,
                    cache_time=self.settings.cache_ttl_seconds,
                )
                stored.append(await self.matches.upsert(record))
        return stored

    async def score_all(self, reset: bool = False) -> List[Dict[str, Any]]:
        if reset:
            deleted = await self.matches.delete_all()
            logger.info(f"Reset {deleted} existing match record(s)")

        candidates = await self.candidates.all()
        jobs = await self.jobs.all_active()
        by_id = {j.job_id: j for j in jobs}
        logger.info(f"Scoring {len(candidates)} candidate(s) against {len(jobs)} active job(s)")

        rows = []
        with PerformanceMonitor("batch scoring", logger, threshold_ms=600000):
            for i, candidate in enumerate(candidates, start=1):
                try:
                    records = await self.score_candidate(candidate, jobs)
                except CVMatchError as e:
                    logger.error(f"[{i}/{len(candidates)}] {candidate.candidate_id} failed: {e.message}")
                    continue
                logger.info(f"[{i}/{len(candidates)}] {candidate.personal_info.name or candidate.candidate_id}: "
                            f"{len(records)} match(es)")
                rows.extend(self._row(candidate, by_id[r.job_id], r) for r in records)
        return rows

    @staticmethod
    def _row(candidate: CandidateRecord, job: JobPosting, record: MatchRecord) -> Dict[str, Any]:
        return {
            "candidate_id": candidate.candidate_id,
            "candidate_name": candidate.personal_info.name,
            "job_id": job.job_id,
            "job_title": job.title,
            "company": job.company,
            "score": round(record.score, 2),
            "skills_score": round(record.details.skills.score, 2),
            "experience_score": round(record.details.experience.score, 2),
            "education_score": round(record.details.education.score, 2),
            "overall_score": round(record.details.overall.score, 2),
        }

    @staticmethod
    def write_report(rows: List[Dict[str, Any]], path) -> str:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        df = pd.DataFrame(rows, columns=REPORT_COLUMNS)
        if len(df):
            df.sort_values("score", ascending=False).to_csv(out, index=False)
        else:
            df.to_csv(out, index=False)  # empty file with headers
        logger.info(f"Wrote {len(df)} row(s) to {out}")
        return str(out)

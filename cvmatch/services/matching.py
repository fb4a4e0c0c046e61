import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from cvmatch.config import MatchSettings
from cvmatch.models.models import CandidateRecord
from cvmatch.models.response import CandidateMatch, JobMatch
from cvmatch.models.schemas import JobPosting, MatchRecord, MatchResult
from cvmatch.utils.exceptions import CVMatchError, DatabaseError, NotFoundError, ValidationError
from cvmatch.utils.logging_config import get_logger
from cvmatch.utils.utils import utcnow

logger = get_logger(__name__)


def candidate_payload(candidate: CandidateRecord) -> Dict[str, Any]:
    """Fields the scoring model sees for a candidate"""
    return {
        "skills": [g.model_dump(exclude_none=True) for g in candidate.skills],
        "experience": [e.model_dump(exclude_none=True) for e in candidate.experience],
        "education": [e.model_dump(exclude_none=True, exclude={"gpa_value"}) for e in candidate.education],
        "summary": candidate.personal_info.summary or "",
    }


class MatchingService:
    """Candidate/job compatibility scores with a version- and TTL-checked cache"""

    def __init__(self, candidates, jobs, matches, extractor, settings: Optional[MatchSettings] = None):
        self.candidates = candidates
        self.jobs = jobs
        self.matches = matches
        self.extractor = extractor
        self.settings = settings or MatchSettings()

    @staticmethod
    def is_cache_valid(record: Optional[MatchRecord], candidate: CandidateRecord, job: JobPosting,
                       now: Optional[datetime] = None) -> bool:
        if record is None:
            return False
        if record.cv_version < candidate.modified_at:
            return False
        if record.job_version < job.modified_at:
            return False
        now = now or utcnow()
        return now < record.updated_at + timedelta(seconds=record.cache_time)

    async def compute_match(self, candidate: CandidateRecord, job: JobPosting) -> MatchResult:
        try:
            existing = await self.matches.get(candidate.candidate_id, job.job_id)
        except DatabaseError as e:
            logger.warning(f"Match cache lookup failed, computing fresh: {e.message}")
            existing = None

        if self.is_cache_valid(existing, candidate, job):
            logger.info(f"Using cached match for candidate {candidate.candidate_id} / job {job.job_id}")
            return existing.to_result(from_cache=True)

        logger.info(f"Computing match for candidate {candidate.candidate_id} / job {job.job_id}")
        scored = await self.extractor.score_match(candidate_payload(candidate), job.scoring_payload())
        record = MatchRecord(
            candidate_id=candidate.candidate_id,
            job_id=job.job_id,
            score=scored.score,
            details=scored.details,
            recommendations=scored.recommendations,
            cv_version=candidate.modified_at,
            job_version=job.modified_at,
            cache_time=self.settings.cache_ttl_seconds,
        )
        try:
            await self.matches.upsert(record)
        except DatabaseError as e:
            logger.warning(f"Could not cache match for {candidate.candidate_id} / {job.job_id}: {e.message}")
        return record.to_result(from_cache=False)

    def _resolve_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.settings.default_limit
        if limit < 1:
            raise ValidationError("limit must be at least 1", field="limit", value=limit)
        return limit

    async def _get_candidate(self, candidate_id: str) -> CandidateRecord:
        candidate = await self.candidates.get(candidate_id)
        if candidate is None:
            raise NotFoundError(f"CV not found: {candidate_id}", resource="candidate", resource_id=candidate_id)
        return candidate

    async def _get_active_job(self, job_id: str) -> JobPosting:
        job = await self.jobs.get(job_id)
        if job is None or not job.active:
            raise NotFoundError(f"Job not found: {job_id}", resource="job", resource_id=job_id)
        return job

    async def compute_match_by_id(self, candidate_id: str, job_id: str) -> MatchResult:
        candidate = await self._get_candidate(candidate_id)
        job = await self._get_active_job(job_id)
        return await self.compute_match(candidate, job)

    async def _fan_out(self, pairs: List[Tuple[CandidateRecord, JobPosting]]) -> List[Tuple[CandidateRecord, JobPosting, MatchResult]]:
        semaphore = asyncio.Semaphore(self.settings.max_concurrent)

        async def one(candidate, job):
            async with semaphore:
                try:
                    return candidate, job, await self.compute_match(candidate, job)
                except CVMatchError as e:
                    logger.error(f"Match failed for candidate {candidate.candidate_id} / job {job.job_id}: {e.message}")
                    return None

        results = await asyncio.gather(*(one(c, j) for c, j in pairs))
        done = [r for r in results if r is not None]
        if len(done) < len(pairs):
            logger.warning(f"{len(pairs) - len(done)} of {len(pairs)} match computations failed")
        return done

    async def _cached_records(self, fetch) -> List[MatchRecord]:
        try:
            return await fetch
        except DatabaseError as e:
            logger.warning(f"Match cache lookup failed, recomputing: {e.message}")
            return []

    async def find_top_matches_for_job(self, job_id: str, limit: Optional[int] = None,
                                       force_refresh: bool = False) -> List[CandidateMatch]:
        """Best candidates for a job.

        Unless `force_refresh` is set, if at least `limit` still-valid cached
        matches exist they are returned as-is and nothing is recomputed, even
        though other candidates' stale entries might have ranked higher after a
        refresh.
        """
        limit = self._resolve_limit(limit)
        job = await self._get_active_job(job_id)
        candidates = await self.candidates.all()
        by_id = {c.candidate_id: c for c in candidates}

        if not force_refresh:
            now = utcnow()
            cached = [
                (by_id[r.candidate_id], r)
                for r in await self._cached_records(self.matches.for_job(job_id))
                if r.candidate_id in by_id and self.is_cache_valid(r, by_id[r.candidate_id], job, now)
            ]
            if len(cached) >= limit:
                logger.info(f"Returning {limit} cached match(es) for job {job_id}")
                cached.sort(key=lambda pair: pair[1].score, reverse=True)
                return [self._candidate_match(c, r.to_result(from_cache=True)) for c, r in cached[:limit]]

        computed = await self._fan_out([(c, job) for c in candidates])
        computed.sort(key=lambda t: t[2].score, reverse=True)
        logger.info(f"Ranked {len(computed)} candidate(s) for job {job_id}")
        return [self._candidate_match(c, result) for c, _, result in computed[:limit]]

    async def find_best_matches_for_candidate(self, candidate_id: str, limit: Optional[int] = None,
                                              force_refresh: bool = False) -> List[JobMatch]:
        """Best active jobs for a candidate; same cache short-circuit as find_top_matches_for_job"""
        limit = self._resolve_limit(limit)
        candidate = await self._get_candidate(candidate_id)
        jobs = await self.jobs.all_active()
        by_id = {j.job_id: j for j in jobs}

        if not force_refresh:
            now = utcnow()
            cached = [
                (by_id[r.job_id], r)
                for r in await self._cached_records(self.matches.for_candidate(candidate_id))
                if r.job_id in by_id and self.is_cache_valid(r, candidate, by_id[r.job_id], now)
            ]
            if len(cached) >= limit:
                logger.info(f"Returning {limit} cached match(es) for candidate {candidate_id}")
                cached.sort(key=lambda pair: pair[1].score, reverse=True)
                return [self._job_match(j, r.to_result(from_cache=True)) for j, r in cached[:limit]]

        computed = await self._fan_out([(candidate, j) for j in jobs])
        computed.sort(key=lambda t: t[2].score, reverse=True)
        logger.info(f"Ranked {len(computed)} job(s) for candidate {candidate_id}")
        return [self._job_match(j, result) for _, j, result in computed[:limit]]

    async def get_job_matches(self, candidate_id: str, limit: Optional[int] = None) -> List[JobMatch]:
        """Stored matches for a candidate, best first; never recomputes"""
        limit = self._resolve_limit(limit)
        await self._get_candidate(candidate_id)
        records = await self.matches.for_candidate(candidate_id)
        active = {j.job_id: j for j in await self.jobs.all_active()}
        joined = [(active[r.job_id], r) for r in records if r.job_id in active]
        joined.sort(key=lambda pair: pair[1].score, reverse=True)
        return [self._job_match(j, r.to_result(from_cache=True)) for j, r in joined[:limit]]

    async def reset_matches(self) -> int:
        deleted = await self.matches.delete_all()
        logger.info(f"Deleted {deleted} match record(s)")
        return deleted

    @staticmethod
    def _candidate_match(candidate: CandidateRecord, result: MatchResult) -> CandidateMatch:
        return CandidateMatch(candidate=candidate.summary_view(), **result.model_dump())

    @staticmethod
    def _job_match(job: JobPosting, result: MatchResult) -> JobMatch:
        return JobMatch(job=job.summary_view(), **result.model_dump())

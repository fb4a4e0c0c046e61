import pandas as pd
import pytest

from cvmatch.config import ExtractionSettings, MatchSettings
from cvmatch.models.schemas import BatchMatchResult, MatchRecord
from cvmatch.services.batch import REPORT_COLUMNS, BatchExtractor, BatchScorer
from cvmatch.services.pipeline import ExtractionPipeline
from cvmatch.utils.exceptions import ExternalServiceError, FileReadError

from conftest import (
    FakeCandidateRepository,
    FakeEmbedder,
    FakeExtractor,
    FakeJobRepository,
    FakeMatchRepository,
    FakeRenderer,
    make_candidate,
    make_job,
)

GOOD_TEXT = "Andi Pratama, Data Engineer at Gojek. Python, Spark, Airflow, BigQuery. ITB 2019."


class PickyRenderer(FakeRenderer):
    """Fails on any file whose name mentions 'broken'"""

    def to_text(self, path):
        if "broken" in str(path):
            raise FileReadError(f"Could not read PDF {path}", file_path=path)
        return super().to_text(path)


class FlakyExtractor(FakeExtractor):
    """First batch request fails, later ones succeed"""

    async def score_match_batch(self, candidate, jobs):
        self.score_calls += 1
        if self.score_calls == 1:
            raise ExternalServiceError("batch match scoring timed out")
        return await super().score_match_batch(candidate, jobs)


class TestBatchExtractor:
    @pytest.fixture
    def folder(self, tmp_path):
        src = tmp_path / "cvs"
        src.mkdir()
        for name in ("a.pdf", "b.PDF", "broken.pdf"):
            (src / name).write_bytes(b"%PDF-1.4")
        (src / "notes.txt").write_text("ignore me")
        return src

    def make_extractor(self, tmp_path, repo):
        pipeline = ExtractionPipeline(PickyRenderer(text=GOOD_TEXT), FakeExtractor(), FakeEmbedder(), repo,
                                      ExtractionSettings())
        return BatchExtractor(pipeline, str(tmp_path / "staging"))

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, tmp_path, folder):
        repo = FakeCandidateRepository()
        report = await self.make_extractor(tmp_path, repo).process_folder(folder)

        assert report.total == 3
        assert len(report.succeeded) == 2
        assert [f.file for f in report.failed] == ["broken.pdf"]
        assert "Could not read PDF" in report.failed[0].error
        assert set(report.succeeded) == set(repo.store)
        assert {c.file_name for c in repo.store.values()} == {"a.pdf", "b.PDF"}

    @pytest.mark.asyncio
    async def test_sources_kept_and_staging_emptied(self, tmp_path, folder):
        await self.make_extractor(tmp_path, FakeCandidateRepository()).process_folder(folder)

        assert sorted(p.name for p in folder.iterdir()) == ["a.pdf", "b.PDF", "broken.pdf", "notes.txt"]
        assert list((tmp_path / "staging").iterdir()) == []

    @pytest.mark.asyncio
    async def test_missing_folder(self, tmp_path):
        with pytest.raises(FileReadError):
            await self.make_extractor(tmp_path, FakeCandidateRepository()).process_folder(tmp_path / "nope")


class TestBatchScorer:
    @pytest.fixture
    def stores(self):
        return FakeCandidateRepository(), FakeJobRepository(), FakeMatchRepository()

    def make_scorer(self, stores, extractor, batch_size=2):
        candidates, jobs, matches = stores
        return BatchScorer(candidates, jobs, matches, extractor, MatchSettings(batch_size=batch_size))

    @pytest.mark.asyncio
    async def test_jobs_are_chunked(self, stores):
        extractor = FakeExtractor(scorer=lambda c, j: 60.0)
        jobs = [make_job(title=f"Job {i}") for i in range(5)]
        candidate = make_candidate()

        records = await self.make_scorer(stores, extractor).score_candidate(candidate, jobs)

        assert extractor.score_calls == 3
        assert {r.job_id for r in records} == {j.job_id for j in jobs}
        assert all(r.cv_version == candidate.modified_at for r in records)
        assert await stores[2].count() == 5

    @pytest.mark.asyncio
    async def test_failed_chunk_does_not_stop_the_rest(self, stores):
        jobs = [make_job(title=f"Job {i}") for i in range(4)]
        records = await self.make_scorer(stores, FlakyExtractor()).score_candidate(make_candidate(), jobs)

        assert [r.job_id for r in records] == [j.job_id for j in jobs[2:]]

    @pytest.mark.asyncio
    async def test_unknown_job_ids_are_ignored(self, stores):
        class EchoingExtractor(FakeExtractor):
            async def score_match_batch(self, candidate, jobs):
                return [BatchMatchResult(job_id="invented", score=99.0),
                        BatchMatchResult(job_id=jobs[0]["jobId"], score=10.0)]

        job = make_job()
        records = await self.make_scorer(stores, EchoingExtractor()).score_candidate(make_candidate(), [job])
        assert [(r.job_id, r.score) for r in records] == [(job.job_id, 10.0)]

    @pytest.mark.asyncio
    async def test_score_all_with_reset(self, stores):
        candidates, jobs, matches = stores
        extractor = FakeExtractor(scorer=lambda c, j: {"Open": 70.0, "Other": 30.0}[j["title"]])
        for job in (make_job(title="Open"), make_job(title="Other"), make_job(title="Closed")):
            await jobs.insert(job)
        closed = next(j for j in jobs.store.values() if j.title == "Closed")
        await jobs.soft_delete(closed.job_id)
        await candidates.insert(make_candidate(name="Ana"))
        await candidates.insert(make_candidate(name="Budi"))
        stale = make_candidate(name="Gone")
        await matches.upsert(MatchRecord(candidate_id=stale.candidate_id, job_id=closed.job_id, score=1.0,
                                         cv_version=stale.modified_at, job_version=closed.modified_at))

        rows = await self.make_scorer(stores, extractor).score_all(reset=True)

        assert len(rows) == 4
        assert {r["job_title"] for r in rows} == {"Open", "Other"}
        assert {r["candidate_name"] for r in rows} == {"Ana", "Budi"}
        assert await matches.count() == 4

    def test_write_report(self, tmp_path):
        rows = [
            {"candidate_id": "c1", "candidate_name": "Ana", "job_id": "j1", "job_title": "Low", "company": "X",
             "score": 20.0, "skills_score": 0, "experience_score": 0, "education_score": 0, "overall_score": 0},
            {"candidate_id": "c2", "candidate_name": "Budi", "job_id": "j1", "job_title": "High", "company": "X",
             "score": 80.0, "skills_score": 0, "experience_score": 0, "education_score": 0, "overall_score": 0},
        ]
        path = BatchScorer.write_report(rows, tmp_path / "reports" / "scores.csv")

        df = pd.read_csv(path)
        assert list(df.columns) == REPORT_COLUMNS
        assert list(df["job_title"]) == ["High", "Low"]

    def test_write_empty_report(self, tmp_path):
        path = BatchScorer.write_report([], tmp_path / "empty.csv")
        assert list(pd.read_csv(path).columns) == REPORT_COLUMNS

"""
Shared fixtures: in-memory repositories and scripted model clients that stand
in for MongoDB and Ollama.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from cvmatch.config import ExtractionSettings, Settings
from cvmatch.dependencies import build_container
from cvmatch.models.models import CandidateRecord, CVData
from cvmatch.models.schemas import BatchMatchResult, ChatTurn, JobPosting, MatchDetails, MatchRecord, MatchResult
from cvmatch.utils.exceptions import EmbeddingError
from cvmatch.utils.utils import utcnow


# -------- builders --------
def make_cv(name="Jane Doe", email="jane@example.com", institution=None, gpa=None,
            company=None, position="Engineer", skills=None, summary="Experienced engineer") -> CVData:
    data: Dict[str, Any] = {
        "personalInfo": {"name": name, "email": email, "summary": summary},
        "education": [],
        "experience": [],
        "skills": [],
    }
    if institution or gpa:
        data["education"].append({"institution": institution, "degree": "BSc", "gpa": gpa})
    if company:
        data["experience"].append({"company": company, "position": position})
    if skills:
        data["skills"].append({"category": "Technical", "skills": list(skills)})
    return CVData.model_validate(data)


def make_candidate(embedding=(1.0, 0.0, 0.0), **kwargs) -> CandidateRecord:
    cv = make_cv(**kwargs)
    record = CandidateRecord(**cv.model_dump(), embedding=list(embedding) if embedding is not None else None)
    record.refresh_searchable_text()
    return record


def make_job(title="Backend Engineer", company="Acme", skills=("Python",), **kwargs) -> JobPosting:
    return JobPosting(title=title, company=company, description=f"{title} role at {company}",
                      skills=list(skills), **kwargs)


# -------- repositories --------
class FakeCandidateRepository:
    def __init__(self):
        self.store: Dict[str, CandidateRecord] = {}

    async def insert(self, record):
        self.store[record.candidate_id] = record
        return record

    async def get(self, candidate_id):
        return self.store.get(candidate_id)

    async def find_by_name(self, name):
        needle = name.lower()
        return next((c for c in self.store.values()
                     if c.personal_info.name and needle in c.personal_info.name.lower()), None)

    def _search(self, search):
        items = list(self.store.values())
        if search:
            s = search.lower()
            items = [c for c in items if s in (c.personal_info.name or "").lower()
                     or s in c.personal_info.email.lower() or s in (c.file_name or "").lower()]
        return items

    async def list_page(self, search=None, skip=0, limit=10):
        items = sorted(self._search(search), key=lambda c: c.extracted_at, reverse=True)
        return items[skip:skip + limit]

    async def count(self, search=None):
        return len(self._search(search))

    async def find_by_predicate(self, predicate):
        return [c for c in self.store.values() if predicate.matches(c)]

    async def all(self):
        return list(self.store.values())

    async def update(self, record):
        record.updated_at = utcnow()
        record.refresh_searchable_text()
        self.store[record.candidate_id] = record
        return record


class FakeJobRepository:
    def __init__(self):
        self.store: Dict[str, JobPosting] = {}

    async def insert(self, job):
        self.store[job.job_id] = job
        return job

    async def insert_many(self, jobs):
        for job in jobs:
            self.store[job.job_id] = job
        return len(jobs)

    async def get(self, job_id):
        return self.store.get(job_id)

    async def update(self, job_id, fields):
        job = self.store.get(job_id)
        if job is None or not job.active:
            return None
        updated = job.model_copy(update={**fields, "updated_at": utcnow()})
        self.store[job_id] = updated
        return updated

    async def soft_delete(self, job_id):
        job = self.store.get(job_id)
        if job is None or not job.active:
            return False
        self.store[job_id] = job.model_copy(update={"active": False, "updated_at": utcnow()})
        return True

    def _active(self, search=None):
        items = [j for j in self.store.values() if j.active]
        if search:
            s = search.lower()
            items = [j for j in items if s in j.title.lower() or s in j.company.lower()
                     or s in j.description.lower() or any(s in k.lower() for k in j.skills)]
        return items

    async def list_active(self, search=None, skip=0, limit=10):
        items = sorted(self._active(search), key=lambda j: j.created_at, reverse=True)
        return items[skip:skip + limit]

    async def count_active(self, search=None):
        return len(self._active(search))

    async def all_active(self):
        return self._active()

    async def count(self):
        return len(self.store)

    async def delete_all(self):
        deleted = len(self.store)
        self.store.clear()
        return deleted


class FakeMatchRepository:
    """Keyed on the (candidate_id, job_id) pair, like the unique index"""

    def __init__(self):
        self.store: Dict[tuple, MatchRecord] = {}
        self.upserts = 0

    async def get(self, candidate_id, job_id):
        return self.store.get((candidate_id, job_id))

    async def for_job(self, job_id):
        return [r for (_, j), r in self.store.items() if j == job_id]

    async def for_candidate(self, candidate_id):
        return [r for (c, _), r in self.store.items() if c == candidate_id]

    async def upsert(self, record):
        self.upserts += 1
        record.updated_at = utcnow()
        key = (record.candidate_id, record.job_id)
        if key in self.store:
            record.created_at = self.store[key].created_at
        self.store[key] = record
        return record

    async def count(self):
        return len(self.store)

    async def delete_all(self):
        deleted = len(self.store)
        self.store.clear()
        return deleted


class FakeChatRepository:
    def __init__(self):
        self.turns: List[ChatTurn] = []

    async def insert(self, turn):
        self.turns.append(turn)
        return turn

    async def recent(self, candidate_id=None, limit=5):
        scoped = [t for t in self.turns if t.candidate_id == candidate_id]
        return sorted(scoped, key=lambda t: t.created_at)[-limit:]

    def _history(self, candidate_id=None, start=None, end=None):
        items = self.turns
        if candidate_id:
            items = [t for t in items if t.candidate_id == candidate_id]
        if start:
            items = [t for t in items if t.created_at >= start]
        if end:
            items = [t for t in items if t.created_at <= end]
        return items

    async def list_page(self, candidate_id=None, start=None, end=None, skip=0, limit=20):
        items = sorted(self._history(candidate_id, start, end), key=lambda t: t.created_at, reverse=True)
        return items[skip:skip + limit]

    async def count(self, candidate_id=None, start=None, end=None):
        return len(self._history(candidate_id, start, end))

    async def delete_all(self):
        deleted = len(self.turns)
        self.turns.clear()
        return deleted


# -------- model clients --------
class FakeEmbedder:
    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, default=(1.0, 0.0, 0.0), fail=False):
        self.vectors = vectors or {}
        self.default = list(default)
        self.fail = fail
        self.calls: List[str] = []

    async def embed(self, text, timeout=None):
        self.calls.append(text)
        if self.fail or not text.strip():
            raise EmbeddingError("embedding unavailable", model_name="fake")
        return list(self.vectors.get(text, self.default))


class FakeExtractor:
    def __init__(self, cv: Optional[CVData] = None, vision_cv: Optional[CVData] = None,
                 vision_error: Optional[Exception] = None,
                 scorer: Optional[Callable[[Dict[str, Any], Dict[str, Any]], float]] = None):
        self.cv = cv or make_cv()
        self.vision_cv = vision_cv or self.cv
        self.vision_error = vision_error
        self.scorer = scorer or (lambda candidate, job: 50.0)
        self.text_calls: List[str] = []
        self.vision_calls = 0
        self.score_calls = 0

    async def extract_from_text(self, text):
        self.text_calls.append(text)
        return self.cv

    async def extract_from_images(self, images):
        self.vision_calls += 1
        if self.vision_error:
            raise self.vision_error
        return self.vision_cv

    async def score_match(self, candidate, job):
        self.score_calls += 1
        await asyncio.sleep(0)
        score = self.scorer(candidate, job)
        return MatchResult(score=score, details=MatchDetails(), recommendations=[f"Scored {score}"])

    async def score_match_batch(self, candidate, jobs):
        self.score_calls += 1
        return [BatchMatchResult(job_id=j["jobId"], score=self.scorer(candidate, j)) for j in jobs]


class FakeRenderer:
    def __init__(self, text="", images=(b"page-1",), text_error=None, image_error=None):
        self.text = text
        self.images = list(images)
        self.text_error = text_error
        self.image_error = image_error

    def to_text(self, path):
        if self.text_error:
            raise self.text_error
        return self.text

    def to_images(self, path):
        if self.image_error:
            raise self.image_error
        return self.images


class FakeChatModel:
    """Replays scripted assistant messages in order"""

    def __init__(self, replies: Optional[List[Dict[str, Any]]] = None):
        self.replies = list(replies or [{"role": "assistant", "content": "Hello!"}])
        self.requests: List[Dict[str, Any]] = []

    async def chat(self, messages, tools=None):
        self.requests.append({"messages": list(messages), "tools": tools})
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


# -------- fixtures --------
@pytest.fixture
def settings(tmp_path):
    return Settings(extraction=ExtractionSettings(upload_dir=str(tmp_path / "uploads")))


@pytest.fixture
def candidate_repo():
    return FakeCandidateRepository()


@pytest.fixture
def job_repo():
    return FakeJobRepository()


@pytest.fixture
def match_repo():
    return FakeMatchRepository()


@pytest.fixture
def chat_repo():
    return FakeChatRepository()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def chat_model():
    return FakeChatModel()


@pytest.fixture
def renderer():
    return FakeRenderer(text="Jane Doe, Senior Engineer. Python, FastAPI, MongoDB. " * 3)


@pytest.fixture
def container(settings, candidate_repo, job_repo, match_repo, chat_repo, embedder, extractor, chat_model, renderer):
    return build_container(
        settings,
        candidate_repo=candidate_repo,
        job_repo=job_repo,
        match_repo=match_repo,
        chat_repo=chat_repo,
        embedder=embedder,
        extractor=extractor,
        chat_model=chat_model,
        renderer=renderer,
    )

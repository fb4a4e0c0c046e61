"""
Service wiring. Every service receives its collaborators explicitly; the HTTP
layer and the CLI build one container and hand it around.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from cvmatch.config import Settings, load_settings
from cvmatch.helpers.parsing import PdfRenderer
from cvmatch.services.batch import BatchExtractor, BatchScorer
from cvmatch.services.candidates import CandidateService
from cvmatch.services.chat import ChatService
from cvmatch.services.db import (
    CandidateRepository,
    ChatRepository,
    JobRepository,
    MatchRepository,
    get_database,
)
from cvmatch.services.embedding import EmbeddingClient
from cvmatch.services.jobs import JobService
from cvmatch.services.llm import ChatModelClient, ExtractionClient
from cvmatch.services.matching import MatchingService
from cvmatch.services.pipeline import ExtractionPipeline
from cvmatch.services.search import HybridSearchEngine


@dataclass
class ServiceContainer:
    settings: Settings
    candidates: CandidateService
    jobs: JobService
    search: HybridSearchEngine
    pipeline: ExtractionPipeline
    matching: MatchingService
    chat: ChatService
    batch_extractor: BatchExtractor
    batch_scorer: BatchScorer
    db: Optional[object] = None

    def close(self) -> None:
        if self.db is not None:
            self.db.client.close()


def build_container(settings: Optional[Settings] = None, db=None, *, candidate_repo=None, job_repo=None,
                    match_repo=None, chat_repo=None, embedder=None, extractor=None, chat_model=None,
                    renderer=None) -> ServiceContainer:
    """Assemble the services; any collaborator passed in replaces the default one"""
    settings = settings or load_settings()
    if db is None and None in (candidate_repo, job_repo, match_repo, chat_repo):
        db = get_database(settings)

    candidate_repo = candidate_repo or CandidateRepository(db)
    job_repo = job_repo or JobRepository(db)
    match_repo = match_repo or MatchRepository(db)
    chat_repo = chat_repo or ChatRepository(db)
    embedder = embedder or EmbeddingClient(settings.embedding)
    extractor = extractor or ExtractionClient(settings.llm)
    chat_model = chat_model or ChatModelClient(settings.llm)
    renderer = renderer or PdfRenderer(settings.extraction.render_zoom, settings.extraction.max_pages)

    candidates = CandidateService(candidate_repo)
    search = HybridSearchEngine(candidate_repo, embedder, settings.search)
    pipeline = ExtractionPipeline(renderer, extractor, embedder, candidate_repo, settings.extraction)
    matching = MatchingService(candidate_repo, job_repo, match_repo, extractor, settings.matching)

    return ServiceContainer(
        settings=settings,
        candidates=candidates,
        jobs=JobService(job_repo),
        search=search,
        pipeline=pipeline,
        matching=matching,
        chat=ChatService(chat_model, search, candidates, matching, chat_repo),
        batch_extractor=BatchExtractor(pipeline, settings.extraction.upload_dir),
        batch_scorer=BatchScorer(candidate_repo, job_repo, match_repo, extractor, settings.matching),
        db=db,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container

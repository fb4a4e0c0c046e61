import re
from typing import Any, Dict, List, Optional

from cvmatch.config import SearchSettings
from cvmatch.models.models import CandidateRecord
from cvmatch.models.response import SearchHit
from cvmatch.services.embedding import cosine_similarity
from cvmatch.services.query_parser import ParsedQuery, parse_query
from cvmatch.utils.exceptions import EmbeddingError, ValidationError
from cvmatch.utils.logging_config import get_logger

logger = get_logger(__name__)

MATCH_FILTER = "filter"
MATCH_HYBRID = "hybrid"


def _contains(needle: str, haystack: Optional[str]) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


class CandidatePredicate:
    """Structured filters over candidate records.

    `to_query` renders the Mongo filter document; `matches` evaluates the same
    conditions against an in-memory record. Only records with an embedding are
    ever eligible.
    """

    def __init__(self, min_gpa: Optional[float] = None, employer: Optional[str] = None,
                 institution: Optional[str] = None, skills: Optional[List[str]] = None):
        self.min_gpa = min_gpa
        self.employer = employer
        self.institution = institution
        self.skills = list(skills or [])

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {"embedding.0": {"$exists": True}}
        if self.min_gpa is not None:
            query["education.gpa_value"] = {"$gte": self.min_gpa}
        if self.employer:
            query["experience.company"] = {"$regex": re.escape(self.employer), "$options": "i"}
        if self.institution:
            query["education.institution"] = {"$regex": re.escape(self.institution), "$options": "i"}
        if self.skills:
            query["skills.skills"] = {"$in": [re.compile(re.escape(s), re.IGNORECASE) for s in self.skills]}
        return query

    def matches(self, record: CandidateRecord) -> bool:
        if not record.has_embedding:
            return False
        if self.min_gpa is not None and not any(
            e.gpa_value is not None and e.gpa_value >= self.min_gpa for e in record.education
        ):
            return False
        if self.employer and not any(_contains(self.employer, e.company) for e in record.experience):
            return False
        if self.institution and not any(_contains(self.institution, e.institution) for e in record.education):
            return False
        if self.skills:
            stored = record.all_skills()
            if not any(_contains(term, s) for term in self.skills for s in stored):
                return False
        return True

    def __repr__(self):
        return (f"CandidatePredicate(min_gpa={self.min_gpa!r}, employer={self.employer!r}, "
                f"institution={self.institution!r}, skills={self.skills!r})")


def build_predicate(parsed: ParsedQuery) -> CandidatePredicate:
    return CandidatePredicate(
        min_gpa=parsed.gpa,
        employer=parsed.employer,
        institution=parsed.institution,
        skills=parsed.skills,
    )


class HybridSearchEngine:
    """Filter with the parsed predicate, then rank by embedding similarity"""

    def __init__(self, candidates, embedder, settings: Optional[SearchSettings] = None):
        self.candidates = candidates
        self.embedder = embedder
        self.settings = settings or SearchSettings()

    async def search(self, query: str, limit: Optional[int] = None) -> List[SearchHit]:
        if limit is None:
            limit = self.settings.default_limit
        if limit < 1:
            raise ValidationError("limit must be at least 1", field="limit", value=limit)

        logger.info(f"Starting hybrid CV search: query={query!r}, limit={limit}")
        parsed = parse_query(query)
        predicate = build_predicate(parsed)
        logger.info(f"Parsed search query: {predicate!r}, semantic={parsed.semantic_query!r}")

        filtered = await self.candidates.find_by_predicate(predicate)
        logger.info(f"Database filtering completed: {len(filtered)} candidate(s)")

        semantic = parsed.semantic_query
        if len(semantic) < self.settings.min_semantic_length or not filtered:
            return self._filter_only(filtered, limit)

        try:
            query_vector = await self.embedder.embed(semantic)
        except EmbeddingError as e:
            logger.warning(f"Query embedding failed, returning filter-only results: {e.message}")
            return self._filter_only(filtered, limit)

        scored = [(c, cosine_similarity(query_vector, c.embedding)) for c in filtered]
        # stable: ties keep filtered order
        scored.sort(key=lambda pair: pair[1], reverse=True)
        hits = [
            SearchHit(candidate=c.public_view(), score=max(0.0, min(1.0, sim)), match_type=MATCH_HYBRID)
            for c, sim in scored[:limit]
        ]
        if hits:
            avg = sum(h.score for h in hits) / len(hits)
            logger.info(f"Hybrid search completed: {len(hits)} result(s), average score {avg:.3f}")
        return hits

    @staticmethod
    def _filter_only(filtered: List[CandidateRecord], limit: int) -> List[SearchHit]:
        hits = [SearchHit(candidate=c.public_view(), score=1.0, match_type=MATCH_FILTER) for c in filtered[:limit]]
        logger.info(f"Filter-only search completed: {len(hits)} result(s)")
        return hits

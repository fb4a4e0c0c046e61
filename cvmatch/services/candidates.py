from typing import List, Optional, Tuple

from cvmatch.models.models import CandidateRecord
from cvmatch.models.response import Pagination
from cvmatch.utils.exceptions import NotFoundError, ValidationError
from cvmatch.utils.logging_config import get_logger

logger = get_logger(__name__)


class CandidateService:
    """Read access to stored CVs"""

    def __init__(self, candidates):
        self.candidates = candidates

    async def get(self, candidate_id: str) -> CandidateRecord:
        candidate = await self.candidates.get(candidate_id)
        if candidate is None:
            raise NotFoundError(f"CV not found: {candidate_id}", resource="candidate", resource_id=candidate_id)
        return candidate

    async def get_details(self, identifier: str) -> CandidateRecord:
        """Look up by id first, then by (case-insensitive, partial) name"""
        if not identifier or not identifier.strip():
            raise ValidationError("CV identifier is required", field="identifier")
        identifier = identifier.strip()
        candidate = await self.candidates.get(identifier)
        if candidate is None:
            candidate = await self.candidates.find_by_name(identifier)
        if candidate is None:
            raise NotFoundError(f"CV not found for identifier: {identifier}", resource="candidate",
                                resource_id=identifier)
        logger.info(f"CV details retrieved for {identifier!r}: {candidate.candidate_id}")
        return candidate

    async def list(self, page: int = 1, limit: int = 10, search: Optional[str] = None) -> Tuple[List[CandidateRecord], Pagination]:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive", field="page" if page < 1 else "limit")
        total = await self.candidates.count(search)
        items = await self.candidates.list_page(search=search, skip=(page - 1) * limit, limit=limit)
        return items, Pagination.build(total, page, limit)

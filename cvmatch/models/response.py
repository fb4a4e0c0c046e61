# models/response.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
import math

from cvmatch.models.schemas import MatchDetails


class SearchHit(BaseModel):
    candidate: Dict[str, Any]
    score: float = Field(ge=0, le=1)
    match_type: str  # "filter" | "hybrid"


class CandidateMatch(BaseModel):
    candidate: Dict[str, Any]
    score: float
    details: MatchDetails = Field(default_factory=MatchDetails)
    recommendations: List[str] = Field(default_factory=list)
    from_cache: bool = False


class JobMatch(BaseModel):
    job: Dict[str, Any]
    score: float
    details: MatchDetails = Field(default_factory=MatchDetails)
    recommendations: List[str] = Field(default_factory=list)
    from_cache: bool = False


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class FailedItem(BaseModel):
    file: str
    error: str


class BatchReport(BaseModel):
    succeeded: List[str] = Field(default_factory=list)
    failed: List[FailedItem] = Field(default_factory=list)
    report_path: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


def envelope(message: str, data: Any = None, **extra) -> Dict[str, Any]:
    """Standard success body: {success, message, data}"""
    body = {"success": True, "message": message, "data": data}
    body.update(extra)
    return body

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from typing import Annotated, Any, Dict, List, Optional
from datetime import datetime
from enum import Enum
import uuid

from cvmatch.models.models import StrList
from cvmatch.utils.utils import utcnow

DEFAULT_CACHE_TIME = 604800  # 7 days in seconds


def _salary_text(x: Any) -> Optional[str]:
    if x is None or isinstance(x, str):
        return x
    if isinstance(x, dict):
        low, high = x.get("min"), x.get("max")
        currency = x.get("currency", "")
        if low is not None and high is not None:
            return f"{currency} {low:,}-{high:,}".strip()
        return f"{currency} {low or high or ''}".strip() or None
    return str(x)


def _dedupe(values: List[str]) -> List[str]:
    seen, out = set(), []
    for v in values:
        key = v.lower()
        if key not in seen:
            seen.add(key)
            out.append(v)
    return out


class JobType(str, Enum):
    FULL_TIME = "Full-time"
    PART_TIME = "Part-time"
    CONTRACT = "Contract"
    INTERNSHIP = "Internship"
    REMOTE = "Remote"


class ExperienceLevel(str, Enum):
    ENTRY = "Entry-level"
    MID = "Mid-level"
    SENIOR = "Senior"
    EXECUTIVE = "Executive"


class EducationLevel(str, Enum):
    HIGH_SCHOOL = "High School"
    ASSOCIATE = "Associate"
    BACHELOR = "Bachelor"
    MASTER = "Master"
    PHD = "PhD"
    NOT_SPECIFIED = "Not Specified"


Salary = Annotated[Optional[str], BeforeValidator(_salary_text)]


# -------- Jobs --------
class JobCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    title: str = Field(min_length=1)
    company: str = Field(min_length=1)
    description: str = Field(min_length=1)
    requirements: StrList = Field(default_factory=list)
    skills: StrList = Field(default_factory=list)
    responsibilities: StrList = Field(default_factory=list)
    location: Optional[str] = None
    salary: Salary = None
    job_type: JobType = Field(default=JobType.FULL_TIME, validate_default=True)
    industry: Optional[str] = None
    experience_level: ExperienceLevel = Field(default=ExperienceLevel.MID, validate_default=True)
    education_level: EducationLevel = Field(default=EducationLevel.NOT_SPECIFIED, validate_default=True)
    raw_description: Optional[str] = None

    @field_validator("title", "company", "location", "industry")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("skills")
    @classmethod
    def unique_skills(cls, v):
        return _dedupe(v)


class JobPosting(JobCreate):
    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = Field(default_factory=utcnow)

    @property
    def modified_at(self) -> datetime:
        return self.updated_at or self.created_at

    def to_document(self) -> dict:
        return self.model_dump()

    def summary_view(self) -> dict:
        return {"id": self.job_id, "title": self.title, "company": self.company}

    def scoring_payload(self) -> Dict[str, Any]:
        """Fields the scoring model sees for this job"""
        return {
            "title": self.title,
            "company": self.company,
            "description": self.description,
            "skills": self.skills,
            "requirements": self.requirements,
            "responsibilities": self.responsibilities,
            "experienceLevel": self.experience_level,
            "educationLevel": self.education_level,
        }


class JobUpdate(BaseModel):
    """Partial update; only fields explicitly set are written"""
    model_config = ConfigDict(use_enum_values=True)

    title: Optional[str] = None
    company: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[StrList] = None
    skills: Optional[StrList] = None
    responsibilities: Optional[StrList] = None
    location: Optional[str] = None
    salary: Salary = None
    job_type: Optional[JobType] = None
    industry: Optional[str] = None
    experience_level: Optional[ExperienceLevel] = None
    education_level: Optional[EducationLevel] = None
    raw_description: Optional[str] = None

    @field_validator("skills")
    @classmethod
    def unique_skills(cls, v):
        return _dedupe(v) if v is not None else v


# -------- Matches --------
class MatchDetail(BaseModel):
    score: float = 0.0
    analysis: str = ""


class MatchDetails(BaseModel):
    skills: MatchDetail = Field(default_factory=MatchDetail)
    experience: MatchDetail = Field(default_factory=MatchDetail)
    education: MatchDetail = Field(default_factory=MatchDetail)
    overall: MatchDetail = Field(default_factory=MatchDetail)


class MatchResult(BaseModel):
    score: float = Field(ge=0, le=100)
    details: MatchDetails = Field(default_factory=MatchDetails)
    recommendations: List[str] = Field(default_factory=list)
    from_cache: bool = False


class BatchMatchResult(MatchResult):
    job_id: Optional[str] = None


class MatchRecord(BaseModel):
    """Cached score for one (candidate_id, job_id) pair"""
    candidate_id: str
    job_id: str
    score: float = Field(ge=0, le=100)
    details: MatchDetails = Field(default_factory=MatchDetails)
    recommendations: List[str] = Field(default_factory=list)
    cv_version: datetime
    job_version: datetime
    cache_time: int = DEFAULT_CACHE_TIME
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_result(self, from_cache: bool = True) -> MatchResult:
        return MatchResult(
            score=self.score,
            details=self.details,
            recommendations=self.recommendations,
            from_cache=from_cache,
        )


# -------- Chat --------
class FunctionCall(BaseModel):
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None


class ChatTurn(BaseModel):
    turn_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    message: str
    response: str
    candidate_id: Optional[str] = None
    function_calls: List[FunctionCall] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

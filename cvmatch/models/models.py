"""
Structured CV schema and the persisted candidate record.

The extraction model is untrusted input: everything it returns is validated
against `CVData` before it can reach the store. Keys are accepted in either
camelCase (as the model emits them) or snake_case (as they are persisted).
"""
import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from cvmatch.utils.utils import utcnow

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
GPA_PATTERN = re.compile(r"\d+(?:\.\d+)?")


def _as_text(x: Any) -> Optional[str]:
    if x is None:
        return None
    if isinstance(x, str):
        return x
    if isinstance(x, bool):
        return "true" if x else "false"
    if isinstance(x, (int, float)):
        return str(x)
    if isinstance(x, list) and all(isinstance(t, (str, int, float)) for t in x):
        # join list of sentences or tokens into one paragraph
        return " ".join(str(t).strip() for t in x if str(t).strip())
    raise ValueError(f"expected a string, got {type(x).__name__}")


def _as_list(x: Any) -> List[str]:
    if x is None:
        return []
    if isinstance(x, str):
        return [x] if x.strip() else []
    if isinstance(x, list):
        out = []
        for t in x:
            if t is None:
                continue
            if isinstance(t, (dict, list)):
                raise ValueError("expected a list of strings")
            if str(t).strip():
                out.append(str(t).strip())
        return out
    raise ValueError(f"expected a list of strings, got {type(x).__name__}")


def _none_to_list(x: Any) -> Any:
    return [] if x is None else x


Text = Annotated[Optional[str], BeforeValidator(_as_text)]
StrList = Annotated[List[str], BeforeValidator(_as_list)]


class CVModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PersonalInfo(CVModel):
    name: Text = None
    email: str = ""
    phone: Text = None
    location: Text = None
    linkedin: Text = None
    website: Text = None
    summary: Text = None

    @field_validator("email", mode="before")
    @classmethod
    def coerce_email(cls, v):
        # an implausible email is dropped, never fatal for the record
        if not isinstance(v, str):
            return ""
        cleaned = v.strip()
        return cleaned if EMAIL_PATTERN.match(cleaned) else ""


class Education(CVModel):
    institution: Text = None
    degree: Text = None
    field: Text = None
    start_date: Text = None
    end_date: Text = None
    gpa: Text = None
    gpa_value: Optional[float] = None
    description: Text = None

    @model_validator(mode="after")
    def parse_gpa(self):
        if self.gpa_value is None and self.gpa:
            m = GPA_PATTERN.search(self.gpa)
            if m:
                self.gpa_value = float(m.group(0))
        return self


class Experience(CVModel):
    company: Text = None
    position: Text = None
    start_date: Text = None
    end_date: Text = None
    location: Text = None
    description: Text = None
    achievements: StrList = Field(default_factory=list)


class SkillGroup(CVModel):
    category: Text = None
    skills: StrList = Field(default_factory=list)


class Certification(CVModel):
    name: Text = None
    issuer: Text = None
    date: Text = None
    expires: Optional[bool] = None
    expiration_date: Text = None


class Language(CVModel):
    language: Text = None
    proficiency: Text = None


class Project(CVModel):
    name: Text = None
    description: Text = None
    start_date: Text = None
    end_date: Text = None
    technologies: StrList = Field(default_factory=list)
    url: Text = None


class Publication(CVModel):
    title: Text = None
    publisher: Text = None
    date: Text = None
    authors: StrList = Field(default_factory=list)
    url: Text = None


class Award(CVModel):
    title: Text = None
    issuer: Text = None
    date: Text = None
    description: Text = None


class Reference(CVModel):
    name: Text = None
    position: Text = None
    company: Text = None
    contact: Text = None
    relationship: Text = None


def _section(item_type):
    return Annotated[List[item_type], BeforeValidator(_none_to_list)]


class CVData(CVModel):
    """Fields extracted from one CV"""
    personal_info: PersonalInfo
    education: _section(Education) = Field(default_factory=list)
    experience: _section(Experience) = Field(default_factory=list)
    skills: _section(SkillGroup) = Field(default_factory=list)
    certifications: _section(Certification) = Field(default_factory=list)
    languages: _section(Language) = Field(default_factory=list)
    projects: _section(Project) = Field(default_factory=list)
    publications: _section(Publication) = Field(default_factory=list)
    awards: _section(Award) = Field(default_factory=list)
    references: _section(Reference) = Field(default_factory=list)

    def all_skills(self) -> List[str]:
        return [s for group in self.skills for s in group.skills if s]


class ExtractionMethod(str, Enum):
    TEXT = "text"
    VISION = "vision"
    TEXT_FALLBACK = "text_fallback"


class CandidateRecord(CVData):
    """Persisted CV. `embedding` is only set once the pipeline has completed."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    candidate_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    file_name: Optional[str] = None
    extracted_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    extraction_method: ExtractionMethod = Field(default=ExtractionMethod.TEXT, validate_default=True)
    raw_text: Optional[str] = None
    searchable_text: str = ""
    embedding: Optional[List[float]] = None

    @property
    def modified_at(self) -> datetime:
        return self.updated_at or self.extracted_at

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def generate_searchable_text(self) -> str:
        def s(x):
            return x or ""

        parts = [
            s(self.personal_info.summary),
            " ".join(f"{s(e.position)} at {s(e.company)}: {s(e.description)}" for e in self.experience),
            " ".join(" ".join(g.skills) for g in self.skills),
            " ".join(f"{s(e.degree)} in {s(e.field)} at {s(e.institution)}" for e in self.education),
            " ".join(f"{s(c.name)} from {s(c.issuer)}" for c in self.certifications),
            " ".join(f"{s(p.name)}: {s(p.description)}" for p in self.projects),
            " ".join(f"{s(p.title)} by {', '.join(p.authors)}" for p in self.publications),
        ]
        return " ".join(p.strip() for p in parts if p and p.strip())

    def refresh_searchable_text(self) -> str:
        self.searchable_text = self.generate_searchable_text()
        return self.searchable_text

    def to_document(self) -> dict:
        return self.model_dump()

    def public_view(self) -> dict:
        """JSON-ready record without the embedding and raw text"""
        return self.model_dump(mode="json", exclude={"embedding", "raw_text"})

    def summary_view(self) -> dict:
        """Compact representation used in ranked listings"""
        return {
            "id": self.candidate_id,
            "name": self.personal_info.name,
            "email": self.personal_info.email,
        }

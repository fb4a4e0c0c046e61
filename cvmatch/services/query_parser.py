"""
Natural-language search query parsing.

A query such as "candidates from UI with GPA above 3.2 who worked at Traveloka"
is decomposed into structured filters plus whatever text is left over (the
semantic query). Every pattern runs against the residual text, and each match
consumes its span, so the residual never matches a pattern again.
"""
import re
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from cvmatch.utils.logging_config import get_logger

logger = get_logger(__name__)

GPA_RE = re.compile(r"\bgpa\s+(?:above|over|greater than|>)\s+(\d+(?:\.\d+)?)", re.IGNORECASE)
EMPLOYER_RE = re.compile(r"\bwork(?:ed)?\s+(?:in|at|for)\s+(\w+)", re.IGNORECASE)
INSTITUTION_RE = re.compile(r"\bfrom\s+(\w+(?:\s+\w+)*?)(?:\s+with\b|\s+and\b|$)", re.IGNORECASE)
SKILL_RES = (
    re.compile(r"(?:experience in|skilled in|knows|familiar with)\s+([^,.]+)", re.IGNORECASE),
    re.compile(r"(\w+(?:\s+\w+)*?)\s+(?:developer|engineer|specialist)s?\b", re.IGNORECASE),
)


class GpaFilter(BaseModel):
    kind: Literal["gpa"] = "gpa"
    min_gpa: float


class EmployerFilter(BaseModel):
    kind: Literal["employer"] = "employer"
    company: str


class InstitutionFilter(BaseModel):
    kind: Literal["institution"] = "institution"
    institution: str


class SkillsFilter(BaseModel):
    kind: Literal["skills"] = "skills"
    skills: List[str] = Field(default_factory=list)


QueryFilter = Annotated[
    Union[GpaFilter, EmployerFilter, InstitutionFilter, SkillsFilter],
    Field(discriminator="kind"),
]


class ParsedQuery(BaseModel):
    filters: List[QueryFilter] = Field(default_factory=list)
    semantic_query: str = ""

    def _first(self, kind: str):
        return next((f for f in self.filters if f.kind == kind), None)

    @property
    def gpa(self) -> Optional[float]:
        f = self._first("gpa")
        return f.min_gpa if f else None

    @property
    def employer(self) -> Optional[str]:
        f = self._first("employer")
        return f.company if f else None

    @property
    def institution(self) -> Optional[str]:
        f = self._first("institution")
        return f.institution if f else None

    @property
    def skills(self) -> List[str]:
        f = self._first("skills")
        return list(f.skills) if f else []

    @property
    def has_filters(self) -> bool:
        return bool(self.filters)


def _consume(text: str, match: re.Match) -> str:
    return _collapse(f"{text[:match.start()]} {text[match.end():]}")


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def parse_query(query: str) -> ParsedQuery:
    residual = query or ""
    gpa = employer = institution = None
    skills: List[str] = []

    # repeat until no pattern matches; single-valued filters keep the first value seen
    while True:
        matched = False

        m = GPA_RE.search(residual)
        if m:
            if gpa is None:
                gpa = float(m.group(1))
            residual, matched = _consume(residual, m), True

        m = EMPLOYER_RE.search(residual)
        if m:
            if employer is None:
                employer = m.group(1)
            residual, matched = _consume(residual, m), True

        m = INSTITUTION_RE.search(residual)
        if m:
            if institution is None:
                institution = m.group(1).strip()
            residual, matched = _consume(residual, m), True

        for pattern in SKILL_RES:
            m = pattern.search(residual)
            while m:
                phrase = m.group(1).strip()
                if phrase and phrase.lower() not in (s.lower() for s in skills):
                    skills.append(phrase)
                residual, matched = _consume(residual, m), True
                m = pattern.search(residual)

        if not matched:
            break

    filters: List[QueryFilter] = []
    if gpa is not None:
        filters.append(GpaFilter(min_gpa=gpa))
    if employer:
        filters.append(EmployerFilter(company=employer))
    if institution:
        filters.append(InstitutionFilter(institution=institution))
    if skills:
        filters.append(SkillsFilter(skills=skills))

    parsed = ParsedQuery(filters=filters, semantic_query=_collapse(residual))
    logger.debug(f"Parsed query {query!r}: filters={[f.kind for f in filters]}, semantic={parsed.semantic_query!r}")
    return parsed

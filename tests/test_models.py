from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from cvmatch.config import ENV_MAPPING, load_settings
from cvmatch.models.models import CandidateRecord, CVData, Education, ExtractionMethod, PersonalInfo
from cvmatch.models.response import Pagination, envelope
from cvmatch.models.schemas import JobCreate, JobPosting, JobUpdate, MatchRecord
from cvmatch.utils.exceptions import ConfigurationError

from conftest import make_candidate


class TestCVModels:
    @pytest.mark.parametrize("email,expected", [
        ("jane@example.com", "jane@example.com"),
        ("  jane@example.co.id ", "jane@example.co.id"),
        ("jane at example dot com", ""),
        ("jane@localhost", ""),
        (None, ""),
        (42, ""),
    ])
    def test_email_coercion(self, email, expected):
        assert PersonalInfo(email=email).email == expected

    @pytest.mark.parametrize("gpa,expected", [
        ("3.75", 3.75),
        ("3.4/4.0", 3.4),
        ("GPA: 3.9 out of 4", 3.9),
        (3.2, 3.2),
        ("cum laude", None),
        (None, None),
    ])
    def test_gpa_value(self, gpa, expected):
        assert Education(gpa=gpa).gpa_value == expected

    def test_accepts_camel_and_snake_keys(self):
        camel = CVData.model_validate({"personalInfo": {"name": "A"}, "experience": [{"startDate": "2021"}]})
        snake = CVData.model_validate({"personal_info": {"name": "A"}, "experience": [{"start_date": "2021"}]})
        assert camel == snake

    def test_personal_info_is_required(self):
        with pytest.raises(PydanticValidationError):
            CVData.model_validate({"skills": []})

    def test_all_skills_flattens_groups(self):
        cv = CVData.model_validate({
            "personalInfo": {},
            "skills": [{"category": "Languages", "skills": ["Go", ""]}, {"category": "Tools", "skills": "Docker"}],
        })
        assert cv.all_skills() == ["Go", "Docker"]


class TestCandidateRecord:
    def test_defaults(self):
        record = CandidateRecord(personal_info={"name": "A"})

        assert record.candidate_id
        assert record.extraction_method == ExtractionMethod.TEXT.value
        assert record.modified_at == record.extracted_at
        assert not record.has_embedding

    def test_modified_at_follows_updates(self):
        record = make_candidate()
        record.updated_at = record.extracted_at + timedelta(days=1)
        assert record.modified_at == record.updated_at

    def test_searchable_text(self):
        record = make_candidate(summary="Seasoned engineer", company="Acme", position="Lead",
                                institution="ITB", skills=["Kotlin"])
        text = record.generate_searchable_text()

        assert text.startswith("Seasoned engineer")
        assert "Lead at Acme" in text
        assert "Kotlin" in text
        assert "at ITB" in text

    def test_views(self):
        record = make_candidate(name="Ana", email="ana@example.com")
        record.raw_text = "raw"

        public = record.public_view()
        assert "embedding" not in public and "raw_text" not in public
        assert public["candidate_id"] == record.candidate_id
        assert record.summary_view() == {"id": record.candidate_id, "name": "Ana", "email": "ana@example.com"}

    def test_document_round_trip(self):
        record = make_candidate(institution="UI", gpa="3.5")
        restored = CandidateRecord(**record.to_document())
        assert restored == record


class TestJobModels:
    def test_job_defaults_and_salary(self):
        job = JobCreate(title=" Data Engineer ", company="Acme", description="Pipelines",
                        salary={"min": 90000, "max": 120000, "currency": "USD"})

        assert job.title == "Data Engineer"
        assert job.salary == "USD 90,000-120,000"
        assert job.job_type == "Full-time"
        assert job.experience_level == "Mid-level"
        assert job.education_level == "Not Specified"

    @pytest.mark.parametrize("salary,expected", [
        ({"min": 50000}, "50000"),
        ("Competitive", "Competitive"),
        (None, None),
    ])
    def test_salary_forms(self, salary, expected):
        assert JobCreate(title="T", company="C", description="D", salary=salary).salary == expected

    def test_skills_deduplicated_case_insensitively(self):
        job = JobCreate(title="T", company="C", description="D", skills=["Python", "python", "SQL", "PYTHON"])
        assert job.skills == ["Python", "SQL"]

    @pytest.mark.parametrize("field", ["title", "company", "description"])
    def test_required_text(self, field):
        data = {"title": "T", "company": "C", "description": "D", field: ""}
        with pytest.raises(PydanticValidationError):
            JobCreate(**data)

    def test_invalid_enum(self):
        with pytest.raises(PydanticValidationError):
            JobCreate(title="T", company="C", description="D", job_type="Gig")

    def test_posting(self):
        job = JobPosting(title="T", company="C", description="D", experience_level="Senior")

        assert job.active is True
        assert job.modified_at == job.updated_at
        assert job.summary_view() == {"id": job.job_id, "title": "T", "company": "C"}
        assert job.scoring_payload()["experienceLevel"] == "Senior"

    def test_update_only_carries_set_fields(self):
        update = JobUpdate(location="Jakarta", skills=["Go", "go"])
        assert update.model_dump(exclude_unset=True) == {"location": "Jakarta", "skills": ["Go"]}

    def test_match_record_result(self):
        job, candidate = JobPosting(title="T", company="C", description="D"), make_candidate()
        record = MatchRecord(candidate_id=candidate.candidate_id, job_id=job.job_id, score=66.6,
                             cv_version=candidate.modified_at, job_version=job.modified_at)
        result = record.to_result()

        assert record.cache_time == 604800
        assert result.score == 66.6
        assert result.from_cache is True
        assert record.to_result(from_cache=False).from_cache is False

    def test_match_score_bounds(self):
        with pytest.raises(PydanticValidationError):
            MatchRecord(candidate_id="c", job_id="j", score=101,
                        cv_version=make_candidate().modified_at, job_version=make_candidate().modified_at)


class TestResponses:
    @pytest.mark.parametrize("total,page,limit,pages,has_next,has_prev", [
        (0, 1, 10, 0, False, False),
        (25, 1, 10, 3, True, False),
        (25, 3, 10, 3, False, True),
        (10, 1, 10, 1, False, False),
    ])
    def test_pagination(self, total, page, limit, pages, has_next, has_prev):
        p = Pagination.build(total, page, limit)
        assert (p.total_pages, p.has_next, p.has_prev) == (pages, has_next, has_prev)

    def test_envelope(self):
        assert envelope("ok", [1], count=1) == {"success": True, "message": "ok", "data": [1], "count": 1}


class TestSettings:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for key in list(ENV_MAPPING) + ["OLLAMA_BASE_URL"]:
            monkeypatch.delenv(key, raising=False)

    def test_defaults(self, tmp_path):
        settings = load_settings(str(tmp_path / "missing.env"))

        assert settings.database.db_name == "cvmatch_db"
        assert settings.matching.cache_ttl_seconds == 604800
        assert settings.extraction.min_text_length == 50
        assert settings.extraction.min_alnum_ratio == 0.3
        assert settings.search.min_semantic_length == 3

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MONGO_URI", "mongodb://db:27017")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.5")
        monkeypatch.setenv("MATCH_CACHE_TTL", "3600")
        monkeypatch.setenv("OLLAMA_BASE_URL", "http://ollama:11434")

        settings = load_settings(str(tmp_path / "missing.env"))

        assert settings.database.uri == "mongodb://db:27017"
        assert settings.llm.temperature == 0.5
        assert settings.matching.cache_ttl_seconds == 3600
        assert settings.llm.base_url == settings.embedding.base_url == "http://ollama:11434"

    def test_invalid_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LLM_TEMPERATURE", "5")

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(str(tmp_path / "missing.env"))
        assert exc_info.value.details["config_key"] == "llm.temperature"

import pytest
from fastapi.testclient import TestClient

from cvmatch.main import create_app
from cvmatch.services.jobs import SAMPLE_JOBS
from cvmatch.utils.exceptions import ExternalServiceError

from conftest import make_candidate

JOB = {
    "title": "Backend Engineer",
    "company": "Acme",
    "description": "Build APIs",
    "skills": ["Python", "python", "MongoDB"],
    "salary": {"min": 1000, "max": 2000, "currency": "EUR"},
}


@pytest.fixture
def client(container):
    return TestClient(create_app(container))


def create_job(client, **overrides):
    response = client.post("/api/jobs/", json={**JOB, **overrides})
    assert response.status_code == 200
    return response.json()["data"]


class TestRoot:
    def test_root_and_health(self, client):
        assert client.get("/").json()["status"] == "ok"
        health = client.get("/health")
        assert health.json()["status"] == "healthy"
        assert "X-Request-ID" in health.headers
        assert "X-Processing-Time" in health.headers

    def test_lifespan_with_injected_container(self, container):
        with TestClient(create_app(container)) as client:
            assert client.get("/health").status_code == 200


class TestJobsRouter:
    def test_crud(self, client):
        job = create_job(client)
        assert job["skills"] == ["Python", "MongoDB"]
        assert job["salary"] == "EUR 1,000-2,000"
        job_id = job["job_id"]

        assert client.get(f"/api/jobs/{job_id}").json()["data"]["title"] == "Backend Engineer"

        updated = client.put(f"/api/jobs/{job_id}", json={"location": "Remote"})
        assert updated.status_code == 200
        assert updated.json()["data"]["location"] == "Remote"

        listing = client.get("/api/jobs/").json()["data"]
        assert [j["job_id"] for j in listing["jobs"]] == [job_id]
        assert listing["pagination"]["total"] == 1

        assert client.delete(f"/api/jobs/{job_id}").json()["success"] is True
        missing = client.get(f"/api/jobs/{job_id}")
        assert missing.status_code == 404
        body = missing.json()
        assert body["success"] is False
        assert body["error"]["error_code"] == "NOT_FOUND"
        assert body["request_id"] == missing.headers["X-Request-ID"]

    def test_invalid_body(self, client):
        response = client.post("/api/jobs/", json={"company": "Acme"})
        assert response.status_code == 422

    def test_blank_update(self, client):
        job_id = create_job(client)["job_id"]
        response = client.put(f"/api/jobs/{job_id}", json={"title": "  "})
        assert response.status_code == 422
        assert response.json()["error"]["details"]["field"] == "title"

    def test_seed(self, client):
        create_job(client)
        result = client.post("/api/jobs/seed", params={"clear": True}).json()["data"]

        assert result["deleted_count"] == 1
        assert result["inserted_count"] == len(SAMPLE_JOBS)
        assert client.get("/api/jobs/", params={"limit": 100}).json()["data"]["pagination"]["total"] == len(SAMPLE_JOBS)

    def test_job_matches(self, client, candidate_repo):
        job_id = create_job(client)["job_id"]
        candidate = make_candidate(name="Citra")
        candidate_repo.store[candidate.candidate_id] = candidate

        first = client.get(f"/api/jobs/{job_id}/matches").json()["data"]
        second = client.get(f"/api/jobs/{job_id}/matches", params={"limit": 1}).json()["data"]

        assert first[0]["candidate"]["name"] == "Citra"
        assert first[0]["score"] == 50.0
        assert set(first[0]["details"]) == {"skills", "experience", "education", "overall"}
        assert first[0]["from_cache"] is False
        assert second[0]["from_cache"] is True

    def test_matches_for_missing_job(self, client):
        assert client.get("/api/jobs/nope/matches").status_code == 404


class TestCVsRouter:
    def test_extract_upload(self, client, candidate_repo, settings, tmp_path):
        response = client.post("/api/cvs/extract", files={"file": ("jane.pdf", b"%PDF-1.4", "application/pdf")})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["file_name"] == "jane.pdf"
        assert data["extraction_method"] == "text"
        assert "embedding" not in data and "raw_text" not in data
        assert data["candidate_id"] in candidate_repo.store
        assert list((tmp_path / "uploads").iterdir()) == []

    def test_extract_rejects_non_pdf(self, client, candidate_repo):
        response = client.post("/api/cvs/extract", files={"file": ("cv.txt", b"hello", "text/plain")})

        assert response.status_code == 422
        assert candidate_repo.store == {}

    def test_extract_failure(self, client, candidate_repo, renderer, extractor, tmp_path):
        renderer.text = ""
        extractor.vision_error = ExternalServiceError("vision model unavailable")

        response = client.post("/api/cvs/extract", files={"file": ("scan.pdf", b"%PDF-1.4", "application/pdf")})

        assert response.status_code == 422
        assert response.json()["error"]["error_code"] == "EXTRACTION_ERROR"
        assert candidate_repo.store == {}
        assert list((tmp_path / "uploads").iterdir()) == []

    def test_list_get_and_missing(self, client, candidate_repo):
        record = make_candidate(name="Eka")
        candidate_repo.store[record.candidate_id] = record

        listing = client.get("/api/cvs/").json()["data"]
        assert [c["candidate_id"] for c in listing["cvs"]] == [record.candidate_id]
        assert "embedding" not in listing["cvs"][0]

        assert client.get(f"/api/cvs/{record.candidate_id}").json()["data"]["personal_info"]["name"] == "Eka"
        assert client.get("/api/cvs/unknown").status_code == 404

    def test_search(self, client, candidate_repo):
        for name, gpa in (("High", "3.9"), ("Low", "2.9")):
            record = make_candidate(name=name, gpa=gpa)
            candidate_repo.store[record.candidate_id] = record

        body = client.get("/api/cvs/search", params={"q": "GPA above 3.5"}).json()

        assert body["count"] == 1
        assert body["data"][0]["candidate"]["personal_info"]["name"] == "High"
        assert body["data"][0]["match_type"] == "filter"

    def test_search_requires_query(self, client):
        assert client.get("/api/cvs/search").status_code == 422

    def test_cv_matches(self, client, candidate_repo):
        record = make_candidate()
        candidate_repo.store[record.candidate_id] = record
        create_job(client, title="Open Role")
        closed = create_job(client, title="Closed Role")
        client.delete(f"/api/jobs/{closed['job_id']}")

        data = client.get(f"/api/cvs/{record.candidate_id}/matches").json()["data"]
        assert [m["job"]["title"] for m in data] == ["Open Role"]


class TestChatRouter:
    def test_chat_and_history(self, client):
        reply = client.post("/api/chat/", json={"message": "Hi"}).json()["data"]
        assert reply["response"] == "Hello!"
        assert reply["function_calls"] == []

        history = client.get("/api/chat/history").json()["data"]
        assert [t["turn_id"] for t in history["history"]] == [reply["history_id"]]

        cleared = client.delete("/api/chat/history").json()["data"]
        assert cleared["deleted_count"] == 1

    def test_empty_message(self, client):
        assert client.post("/api/chat/", json={"message": ""}).status_code == 422

    def test_unknown_cv_context(self, client):
        response = client.post("/api/chat/", json={"message": "hello", "cv_id": "missing"})
        assert response.status_code == 404

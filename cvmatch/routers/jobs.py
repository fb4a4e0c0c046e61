from typing import Optional

from fastapi import APIRouter, Depends, Query

from cvmatch.dependencies import ServiceContainer, get_container
from cvmatch.models.response import envelope
from cvmatch.models.schemas import JobCreate, JobUpdate

router = APIRouter()


@router.post("/")
async def create_job(job: JobCreate, container: ServiceContainer = Depends(get_container)):
    created = await container.jobs.create(job)
    return envelope("Job created successfully", created.model_dump(mode="json"))


@router.get("/")
async def list_jobs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    container: ServiceContainer = Depends(get_container),
):
    """Active jobs only"""
    items, pagination = await container.jobs.list(page, limit, search)
    return envelope(
        "Jobs retrieved successfully",
        {"jobs": [j.model_dump(mode="json") for j in items], "pagination": pagination.model_dump()},
    )


@router.post("/seed")
async def seed_jobs(clear: bool = Query(False), container: ServiceContainer = Depends(get_container)):
    result = await container.jobs.seed(clear_existing=clear)
    return envelope("Sample jobs seeded successfully", result)


@router.get("/{job_id}")
async def get_job(job_id: str, container: ServiceContainer = Depends(get_container)):
    job = await container.jobs.get(job_id)
    return envelope("Job retrieved successfully", job.model_dump(mode="json"))


@router.put("/{job_id}")
async def update_job(job_id: str, update: JobUpdate, container: ServiceContainer = Depends(get_container)):
    job = await container.jobs.update(job_id, update)
    return envelope("Job updated successfully", job.model_dump(mode="json"))


@router.delete("/{job_id}")
async def delete_job(job_id: str, container: ServiceContainer = Depends(get_container)):
    await container.jobs.delete(job_id)
    return envelope("Job deleted successfully", {"job_id": job_id})


@router.get("/{job_id}/matches")
async def get_job_matches(
    job_id: str,
    limit: int = Query(10, ge=1, le=100),
    force_refresh: bool = Query(False),
    container: ServiceContainer = Depends(get_container),
):
    """Top candidates for a job"""
    matches = await container.matching.find_top_matches_for_job(job_id, limit, force_refresh)
    return envelope("Candidate matches retrieved successfully", [m.model_dump(mode="json") for m in matches])

import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from cvmatch.dependencies import ServiceContainer, get_container
from cvmatch.models.response import envelope
from cvmatch.utils.exceptions import ValidationError
from cvmatch.utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)

PDF_TYPES = {"application/pdf", "application/x-pdf"}


@router.post("/extract")
async def extract_cv(file: UploadFile = File(...), container: ServiceContainer = Depends(get_container)):
    """Upload a PDF CV and run it through the extraction pipeline"""
    name = file.filename or "upload.pdf"
    if file.content_type not in PDF_TYPES and not name.lower().endswith(".pdf"):
        raise ValidationError("Only PDF files are accepted", field="file", value=file.content_type)

    upload_dir = Path(container.settings.extraction.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    path = upload_dir / f"{uuid.uuid4().hex}.pdf"
    path.write_bytes(await file.read())
    logger.info(f"Stored upload {name} as {path.name}")

    record = await container.pipeline.run(path, name)
    return envelope("CV data extracted and stored successfully", record.public_view())


@router.get("/")
async def list_cvs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, description="Matches name, email or file name"),
    container: ServiceContainer = Depends(get_container),
):
    """Get stored CVs, newest first"""
    items, pagination = await container.candidates.list(page, limit, search)
    return envelope(
        "CVs retrieved successfully",
        {"cvs": [c.public_view() for c in items], "pagination": pagination.model_dump()},
    )


@router.get("/search")
async def search_cvs(
    q: str = Query(..., min_length=1, description="Natural language query, e.g. 'GPA above 3.5 who worked at Acme'"),
    limit: int = Query(10, ge=1, le=100),
    container: ServiceContainer = Depends(get_container),
):
    hits = await container.search.search(q, limit)
    return envelope("Search completed", [h.model_dump(mode="json") for h in hits], count=len(hits))


@router.get("/{cv_id}")
async def get_cv(cv_id: str, container: ServiceContainer = Depends(get_container)):
    candidate = await container.candidates.get(cv_id)
    return envelope("CV retrieved successfully", candidate.public_view())


@router.get("/{cv_id}/matches")
async def get_cv_matches(
    cv_id: str,
    limit: int = Query(10, ge=1, le=100),
    force_refresh: bool = Query(False),
    container: ServiceContainer = Depends(get_container),
):
    """Best active jobs for a CV"""
    matches = await container.matching.find_best_matches_for_candidate(cv_id, limit, force_refresh)
    return envelope("Job matches retrieved successfully", [m.model_dump(mode="json") for m in matches])

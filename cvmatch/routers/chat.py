from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from cvmatch.dependencies import ServiceContainer, get_container
from cvmatch.models.response import envelope

router = APIRouter()


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    cv_id: Optional[str] = None


@router.post("/")
async def chat(body: ChatRequest, container: ServiceContainer = Depends(get_container)):
    turn = await container.chat.process_message(body.message, body.cv_id)
    return envelope("Chat message processed successfully", {
        "response": turn.response,
        "function_calls": [c.model_dump(mode="json") for c in turn.function_calls],
        "history_id": turn.turn_id,
    })


@router.get("/history")
async def chat_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    cv_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    container: ServiceContainer = Depends(get_container),
):
    turns, pagination = await container.chat.get_history(page, limit, cv_id, start_date, end_date)
    return envelope("Chat history retrieved successfully", {
        "history": [t.model_dump(mode="json") for t in turns],
        "pagination": pagination.model_dump(),
    })


@router.delete("/history")
async def clear_chat_history(container: ServiceContainer = Depends(get_container)):
    deleted = await container.chat.clear_history()
    return envelope("Chat history cleared successfully", {"deleted_count": deleted})

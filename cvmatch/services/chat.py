import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from cvmatch.helpers.prompts import CHAT_CV_CONTEXT, CHAT_SYSTEM_PROMPT
from cvmatch.models.response import Pagination
from cvmatch.models.schemas import ChatTurn, FunctionCall
from cvmatch.utils.exceptions import NotFoundError, ValidationError
from cvmatch.utils.logging_config import get_logger
from cvmatch.utils.utils import to_naive_utc

logger = get_logger(__name__)

HISTORY_TURNS = 5

TOOLS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "search_cvs",
            "description": "Search CVs with hybrid filtering and semantic ranking. Supports GPA thresholds, "
                           "company experience, universities and skills, e.g. \"candidates from UI with GPA "
                           "above 3.2 who worked at Traveloka\" or \"Python developers with React experience\".",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Natural language search query"},
                    "limit": {"type": "integer", "description": "Maximum number of results", "default": 10},
                },
                "required": ["query"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_cv_details",
            "description": "Get detailed information about a specific CV by ID or name",
            "parameters": {
                "type": "object",
                "properties": {"cv_id": {"type": "string", "description": "ID or name of the CV"}},
                "required": ["cv_id"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_job_matches",
            "description": "Get stored job matches for a specific CV, best first",
            "parameters": {
                "type": "object",
                "properties": {
                    "cv_id": {"type": "string", "description": "ID or name of the CV"},
                    "limit": {"type": "integer", "description": "Maximum number of matches", "default": 10},
                },
                "required": ["cv_id"],
            },
        },
    },
]


def _arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError("Tool call arguments are not valid JSON", field="arguments", value=raw, cause=e) from e
        if isinstance(parsed, dict):
            return parsed
    return {}


def _limit(args: Dict[str, Any], default: int = 10) -> int:
    try:
        return max(1, int(args.get("limit") or default))
    except (TypeError, ValueError):
        return default


class ChatService:
    """Conversational search over CVs and job matches"""

    def __init__(self, chat_model, search_engine, candidate_service, matching_service, chat_turns):
        self.chat_model = chat_model
        self.search_engine = search_engine
        self.candidate_service = candidate_service
        self.matching_service = matching_service
        self.chat_turns = chat_turns

    async def _build_messages(self, message: str, candidate_id: Optional[str]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": CHAT_SYSTEM_PROMPT}]
        if candidate_id:
            candidate = await self.candidate_service.get(candidate_id)
            cv = candidate.model_dump(mode="json", exclude={"embedding", "raw_text", "searchable_text"})
            messages.append({"role": "system", "content": CHAT_CV_CONTEXT.format(cv=json.dumps(cv, indent=2))})

        for turn in await self.chat_turns.recent(candidate_id, HISTORY_TURNS):
            messages.append({"role": "user", "content": turn.message})
            messages.append({"role": "assistant", "content": turn.response})

        messages.append({"role": "user", "content": message})
        return messages

    async def execute_tool(self, name: str, args: Dict[str, Any]) -> Any:
        if name == "search_cvs":
            query = args.get("query")
            if not isinstance(query, str):
                raise ValidationError("search_cvs requires a query", field="query", value=query)
            hits = await self.search_engine.search(query, _limit(args))
            logger.info(f"search_cvs({query!r}) returned {len(hits)} result(s)")
            return [h.model_dump(mode="json") for h in hits]

        if name == "get_cv_details":
            candidate = await self.candidate_service.get_details(str(args.get("cv_id", "")))
            return candidate.model_dump(mode="json", exclude={"embedding", "raw_text"})

        if name == "get_job_matches":
            candidate = await self.candidate_service.get_details(str(args.get("cv_id", "")))
            matches = await self.matching_service.get_job_matches(candidate.candidate_id, _limit(args))
            logger.info(f"get_job_matches({candidate.candidate_id}) returned {len(matches)} match(es)")
            return [m.model_dump(mode="json") for m in matches]

        logger.error(f"Unknown function called: {name}")
        raise ValidationError(f"Unknown function: {name}", field="function", value=name)

    async def process_message(self, message: str, candidate_id: Optional[str] = None) -> ChatTurn:
        if not message or not message.strip():
            raise ValidationError("Message is required", field="message")
        logger.info(f"Processing chat message ({len(message)} chars), candidate={candidate_id}")

        messages = await self._build_messages(message.strip(), candidate_id)
        reply = await self.chat_model.chat(messages, tools=TOOLS)
        calls: List[FunctionCall] = []

        tool_calls = reply.get("tool_calls") or []
        if tool_calls:
            messages.append(reply)
            for call in tool_calls:
                fn = call.get("function") or {}
                name = fn.get("name", "")
                args = _arguments(fn.get("arguments"))
                logger.info(f"Tool call: {name}({args})")
                try:
                    result = await self.execute_tool(name, args)
                except NotFoundError as e:
                    # let the model explain the miss instead of failing the turn
                    result = {"error": e.message}
                calls.append(FunctionCall(name=name, arguments=args, result=result))
                messages.append({"role": "tool", "tool_name": name, "content": json.dumps(result, default=str)})
            reply = await self.chat_model.chat(messages)

        turn = ChatTurn(
            message=message.strip(),
            response=reply.get("content") or "",
            candidate_id=candidate_id,
            function_calls=calls,
        )
        await self.chat_turns.insert(turn)
        logger.info(f"Chat turn {turn.turn_id} stored with {len(calls)} function call(s)")
        return turn

    async def get_history(self, page: int = 1, limit: int = 20, candidate_id: Optional[str] = None,
                          start_date: Optional[datetime] = None,
                          end_date: Optional[datetime] = None) -> Tuple[List[ChatTurn], Pagination]:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive", field="page" if page < 1 else "limit")
        start_date, end_date = to_naive_utc(start_date), to_naive_utc(end_date)
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date", field="start_date")
        total = await self.chat_turns.count(candidate_id, start_date, end_date)
        turns = await self.chat_turns.list_page(candidate_id, start_date, end_date,
                                                skip=(page - 1) * limit, limit=limit)
        return turns, Pagination.build(total, page, limit)

    async def clear_history(self) -> int:
        deleted = await self.chat_turns.delete_all()
        logger.info(f"Deleted {deleted} chat turn(s)")
        return deleted

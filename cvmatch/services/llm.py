"""
Clients for the external language model service.

Everything the model returns is untrusted: CV extractions are validated against
`CVData`, and match scores go through `normalize_match_result`, the one place
where alternate key names are mapped onto the fixed result shape.
"""
import asyncio
import base64
import json
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError as PydanticValidationError

from cvmatch.config import LLMSettings
from cvmatch.helpers.prompts import (
    EXTRACT_IMAGES_PROMPT,
    EXTRACT_TEXT_PROMPT,
    MATCH_BATCH_PROMPT,
    MATCH_PROMPT,
)
from cvmatch.models.models import CVData
from cvmatch.models.schemas import BatchMatchResult, MatchResult
from cvmatch.utils.exceptions import ExternalServiceError, ValidationError
from cvmatch.utils.logging_config import PerformanceMonitor, get_logger
from cvmatch.utils.utils import extract_json, ollama_chat, ollama_generate

logger = get_logger(__name__)

SERVICE_NAME = "ollama"
MATCH_SECTIONS = ("skills", "experience", "education", "overall")
# first key present wins
SCORE_KEY_ALIASES = ("score", "match", "relevance", "fit", "alignment")


def _to_score(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _clamp(score: Optional[float]) -> float:
    if score is None:
        return 0.0
    return max(0.0, min(100.0, score))


def _normalize_section(section: Any) -> Dict[str, Any]:
    if not isinstance(section, dict):
        # a bare number is the score itself
        return {"score": _clamp(_to_score(section)), "analysis": ""}
    score = None
    for key in SCORE_KEY_ALIASES:
        score = _to_score(section.get(key))
        if score is not None:
            break
    analysis = section.get("analysis")
    return {"score": _clamp(score), "analysis": analysis if isinstance(analysis, str) else ""}


def _normalize_recommendations(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, dict):
        return [f"{k}: {v}" for k, v in value.items() if v]
    if isinstance(value, list):
        out = []
        for item in value:
            if isinstance(item, dict):
                out.extend(_normalize_recommendations(item))
            elif item:
                out.append(str(item))
        return out
    return [str(value)]


def normalize_match_result(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map a scoring response onto {score, details{skills,experience,education,overall}, recommendations}"""
    if not isinstance(raw, dict):
        raise ValidationError("Match result must be a JSON object", field="match", value=raw)
    details = raw.get("details") if isinstance(raw.get("details"), dict) else {}
    normalized = {name: _normalize_section(details.get(name)) for name in MATCH_SECTIONS}

    score = _to_score(raw.get("score"))
    if score is None:
        score = normalized["overall"]["score"]
    return {
        "score": _clamp(score),
        "details": normalized,
        "recommendations": _normalize_recommendations(raw.get("recommendations")),
    }


def _unwrap_batch(data: Any) -> List[Any]:
    # array, {"matches": [...]} or a single object
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("matches"), list):
        return data["matches"]
    return [data]


async def _call(fn, *args, timeout: float, operation: str, **kwargs):
    """Run a blocking model call off the event loop, bounded by `timeout`"""
    try:
        with PerformanceMonitor(operation, logger, threshold_ms=timeout * 500):
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, timeout=timeout, **kwargs), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ExternalServiceError(f"{operation} timed out after {timeout}s",
                                   service_name=SERVICE_NAME, cause=e) from e
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        raise ExternalServiceError(f"{operation} failed: {e}", service_name=SERVICE_NAME,
                                   status_code=status, cause=e) from e
    except (requests.RequestException, ValueError) as e:
        raise ExternalServiceError(f"{operation} failed: {e}", service_name=SERVICE_NAME, cause=e) from e


class ExtractionClient:
    """Structured CV extraction and match scoring"""

    def __init__(self, settings: LLMSettings):
        self.settings = settings

    async def _generate(self, prompt: str, operation: str, images: Optional[List[str]] = None) -> str:
        model = self.settings.vision_model_name if images else self.settings.model_name
        return await _call(
            ollama_generate, prompt, model, self.settings.base_url, self.settings.temperature,
            images=images, json_mode=True,
            timeout=self.settings.timeout, operation=operation,
        )

    @staticmethod
    def _parse_json(raw: str, what: str) -> Any:
        try:
            return extract_json(raw)
        except ValueError as e:
            raise ValidationError(f"{what} response is not valid JSON", field=what, value=raw, cause=e) from e

    def _parse_cv(self, raw: str) -> CVData:
        data = self._parse_json(raw, "cv")
        if not isinstance(data, dict):
            raise ValidationError("CV extraction must be a JSON object", field="cv", value=raw)
        try:
            return CVData.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            loc = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(f"CV extraction does not match the schema: {first.get('msg', e)}",
                                  field=loc or "cv", cause=e) from e

    async def extract_from_text(self, text: str) -> CVData:
        logger.info(f"Extracting CV fields from text ({len(text)} chars)")
        raw = await self._generate(EXTRACT_TEXT_PROMPT.format(doc=text), "text extraction")
        return self._parse_cv(raw)

    async def extract_from_images(self, images: List[bytes]) -> CVData:
        """All page images go into a single multimodal request"""
        if not images:
            raise ValidationError("No page images to extract from", field="images")
        logger.info(f"Extracting CV fields from {len(images)} page image(s)")
        encoded = [base64.b64encode(img).decode("ascii") for img in images]
        raw = await self._generate(EXTRACT_IMAGES_PROMPT, "vision extraction", images=encoded)
        return self._parse_cv(raw)

    async def score_match(self, candidate: Dict[str, Any], job: Dict[str, Any]) -> MatchResult:
        prompt = MATCH_PROMPT.format(
            candidate=json.dumps(candidate, indent=2, default=str),
            job=json.dumps(job, indent=2, default=str),
        )
        raw = await self._generate(prompt, "match scoring")
        result = MatchResult(**normalize_match_result(self._parse_json(raw, "match")))
        logger.info(f"Match scoring completed: score={result.score:.2f}")
        return result

    async def score_match_batch(self, candidate: Dict[str, Any], jobs: List[Dict[str, Any]]) -> List[BatchMatchResult]:
        """One request for several jobs; results carry the job id echoed back by the model"""
        prompt = MATCH_BATCH_PROMPT.format(
            candidate=json.dumps(candidate, indent=2, default=str),
            jobs=json.dumps(jobs, indent=2, default=str),
        )
        raw = await self._generate(prompt, "batch match scoring")
        results = []
        for item in _unwrap_batch(self._parse_json(raw, "matches")):
            if not isinstance(item, dict):
                logger.warning(f"Skipping malformed batch match entry: {str(item)[:100]}")
                continue
            job_id = item.get("jobId") or item.get("job_id")
            results.append(BatchMatchResult(job_id=str(job_id) if job_id else None, **normalize_match_result(item)))
        logger.info(f"Batch match scoring completed: {len(results)} result(s) for {len(jobs)} job(s)")
        return results


class ChatModelClient:
    """Chat completion with tool calling"""

    def __init__(self, settings: LLMSettings):
        self.settings = settings

    async def chat(self, messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        return await _call(
            ollama_chat, messages, self.settings.model_name, self.settings.base_url,
            tools=tools, temperature=self.settings.temperature, timeout=self.settings.timeout,
            operation="chat completion",
        )

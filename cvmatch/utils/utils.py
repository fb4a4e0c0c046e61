import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np
import requests

DEFAULT_BASE_URL = "http://localhost:11434"


def utcnow() -> datetime:
    """Naive UTC timestamp, comparable with the datetimes Mongo hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ollama_generate(
    prompt: str,
    model: str,
    base_url: str = DEFAULT_BASE_URL,
    temperature: float = 0.2,
    images: Optional[List[str]] = None,
    json_mode: bool = True,
    timeout: float = 120,
) -> str:
    """Single-shot completion. `images` are base64-encoded page renders."""
    url = f"{base_url.rstrip('/')}/api/generate"
    payload: Dict[str, Any] = {
        "model": model,
        "prompt": prompt,
        "options": {"temperature": temperature},
        "stream": False,  # important
    }
    if images:
        payload["images"] = images
    if json_mode:
        payload["format"] = "json"
    resp = requests.post(url, json=payload, timeout=timeout)
    resp.raise_for_status()
    return resp.json().get("response", "") or ""


def ollama_chat(
    messages: List[Dict[str, Any]],
    model: str,
    base_url: str = DEFAULT_BASE_URL,
    tools: Optional[List[Dict[str, Any]]] = None,
    temperature: float = 0.2,
    timeout: float = 120,
) -> Dict[str, Any]:
    """Chat completion; returns the assistant message (content + tool_calls)."""
    url = f"{base_url.rstrip('/')}/api/chat"
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "options": {"temperature": temperature},
        "stream": False,
    }
    if tools:
        payload["tools"] = tools
    resp = requests.post(url, json=payload, timeout=timeout)
    resp.raise_for_status()
    return resp.json().get("message") or {}


def ollama_embed(text: str, model: str, base_url: str = DEFAULT_BASE_URL, timeout: float = 60) -> np.ndarray:
    url = f"{base_url.rstrip('/')}/api/embeddings"
    resp = requests.post(url, json={"model": model, "prompt": text}, timeout=timeout)
    resp.raise_for_status()
    data = resp.json()
    return np.array(data["embedding"], dtype=np.float32)


def extract_json(s: str) -> Any:
    """Parse the outermost JSON object or array inside a model response."""
    s = (s or "").strip()
    try:
        return json.loads(s)
    except json.JSONDecodeError:
        pass
    # heuristics to find JSON inside surrounding prose
    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        start = s.find(open_ch)
        end = s.rfind(close_ch)
        if start >= 0 and end > start:
            try:
                return json.loads(s[start:end + 1])
            except json.JSONDecodeError:
                continue
    raise ValueError("no JSON document found in model response")


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)

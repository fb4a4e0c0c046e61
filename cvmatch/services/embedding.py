import asyncio
from typing import List, Optional, Sequence

import numpy as np
import requests

from cvmatch.config import EmbeddingSettings
from cvmatch.utils.exceptions import EmbeddingError
from cvmatch.utils.logging_config import PerformanceMonitor, get_logger
from cvmatch.utils.utils import ollama_embed

logger = get_logger(__name__)


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """dot(a,b) / (|a|*|b|); 0.0 for empty, zero-norm or mismatched vectors"""
    if a is None or b is None:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0
    den = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if den == 0.0:
        return 0.0
    return max(-1.0, min(1.0, float(np.dot(va, vb)) / den))


class EmbeddingClient:
    def __init__(self, settings: EmbeddingSettings):
        self.settings = settings

    async def embed(self, text: str, timeout: Optional[float] = None) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text", model_name=self.settings.model_name)

        timeout = timeout or self.settings.timeout
        try:
            with PerformanceMonitor("embedding request", logger, threshold_ms=timeout * 500):
                vector = await asyncio.wait_for(
                    asyncio.to_thread(
                        ollama_embed, text, self.settings.model_name,
                        self.settings.base_url, timeout,
                    ),
                    timeout=timeout,
                )
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding request timed out after {timeout}s",
                                 model_name=self.settings.model_name, cause=e) from e
        except (requests.RequestException, KeyError, ValueError, TypeError) as e:
            raise EmbeddingError(f"Embedding request failed: {e}",
                                 model_name=self.settings.model_name, cause=e) from e

        if vector.size == 0:
            raise EmbeddingError("Embedding service returned an empty vector", model_name=self.settings.model_name)
        if self.settings.dimension and vector.size != self.settings.dimension:
            raise EmbeddingError(
                f"Expected {self.settings.dimension} dimensions, got {vector.size}",
                model_name=self.settings.model_name,
            )
        return vector.astype(float).tolist()

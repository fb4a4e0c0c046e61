"""
CV extraction pipeline.

    extract_text -> structure_text -------------------> embed -> persist
    extract_text -> vision -> (success) ---------------> embed
                    vision -> (failed, text) -> text_fallback -> embed
                    vision -> (failed, no text) -> failed

The source file is transient: it is removed once the run ends, whatever the
outcome.
"""
import asyncio
import operator
import os
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional, TypedDict

from langgraph.graph import END, StateGraph

from cvmatch.config import ExtractionSettings
from cvmatch.helpers.parsing import PdfRenderer, clean_text, is_text_sufficient
from cvmatch.models.models import CandidateRecord, CVData, ExtractionMethod
from cvmatch.utils.exceptions import (
    CVMatchError,
    EmbeddingError,
    ExtractionError,
)
from cvmatch.utils.logging_config import PerformanceMonitor, get_logger

logger = get_logger(__name__)

# state names recorded in the trail
START = "START"
TEXT_EXTRACTED = "TEXT_EXTRACTED"
TEXT_SUFFICIENT = "TEXT_SUFFICIENT"
TEXT_INSUFFICIENT = "TEXT_INSUFFICIENT"
VISION_ATTEMPTED = "VISION_ATTEMPTED"
VISION_SUCCESS = "VISION_SUCCESS"
VISION_FAILED = "VISION_FAILED"
TEXT_FALLBACK = "TEXT_FALLBACK"
STRUCTURED = "STRUCTURED"
EMBEDDED = "EMBEDDED"
EMBEDDING_SKIPPED = "EMBEDDING_SKIPPED"
PERSISTED = "PERSISTED"
FAILED = "FAILED"


class ExtractionState(TypedDict, total=False):
    file_path: str
    file_name: str
    raw_text: str
    sufficient: bool
    cv: CVData
    method: str
    vision_error: str
    record: CandidateRecord
    error: str
    trail: Annotated[List[str], operator.add]


class ExtractionPipeline:
    def __init__(self, renderer: PdfRenderer, extractor, embedder, candidates,
                 settings: Optional[ExtractionSettings] = None):
        self.renderer = renderer
        self.extractor = extractor
        self.embedder = embedder
        self.candidates = candidates
        self.settings = settings or ExtractionSettings()
        self.graph = self.build_graph()

    # ----- nodes -----
    async def node_extract_text(self, state: ExtractionState) -> Dict[str, Any]:
        text = await asyncio.to_thread(self.renderer.to_text, state["file_path"])
        sufficient = is_text_sufficient(text, self.settings.min_text_length, self.settings.min_alnum_ratio)
        logger.info(f"{state['file_name']}: extracted {len(text)} chars of text, sufficient={sufficient}")
        return {
            "raw_text": text,
            "sufficient": sufficient,
            "trail": [TEXT_EXTRACTED, TEXT_SUFFICIENT if sufficient else TEXT_INSUFFICIENT],
        }

    async def node_structure_text(self, state: ExtractionState) -> Dict[str, Any]:
        cv = await self.extractor.extract_from_text(clean_text(state["raw_text"]))
        return {"cv": cv, "method": ExtractionMethod.TEXT.value, "trail": [STRUCTURED]}

    async def node_vision(self, state: ExtractionState) -> Dict[str, Any]:
        # any vision failure, including output that breaks the CV schema, goes to the text route
        try:
            images = await asyncio.to_thread(self.renderer.to_images, state["file_path"])
            cv = await self.extractor.extract_from_images(images)
        except CVMatchError as e:
            logger.warning(f"{state['file_name']}: vision extraction failed: {e}")
            return {"vision_error": str(e), "trail": [VISION_ATTEMPTED, VISION_FAILED]}
        logger.info(f"{state['file_name']}: vision extraction succeeded from {len(images)} page(s)")
        return {
            "cv": cv,
            "method": ExtractionMethod.VISION.value,
            "trail": [VISION_ATTEMPTED, VISION_SUCCESS, STRUCTURED],
        }

    async def node_text_fallback(self, state: ExtractionState) -> Dict[str, Any]:
        logger.info(f"{state['file_name']}: falling back to text extraction")
        cv = await self.extractor.extract_from_text(clean_text(state["raw_text"]))
        return {"cv": cv, "method": ExtractionMethod.TEXT_FALLBACK.value, "trail": [TEXT_FALLBACK, STRUCTURED]}

    async def node_failed(self, state: ExtractionState) -> Dict[str, Any]:
        reason = f"No usable content in {state['file_name']}: text layer is empty and vision extraction failed"
        if state.get("vision_error"):
            reason += f" ({state['vision_error']})"
        logger.error(reason)
        return {"error": reason, "trail": [FAILED]}

    async def node_embed(self, state: ExtractionState) -> Dict[str, Any]:
        record = CandidateRecord(
            **state["cv"].model_dump(),
            file_name=state["file_name"],
            extraction_method=state["method"],
            raw_text=state.get("raw_text"),
        )
        text = record.refresh_searchable_text()
        try:
            record.embedding = await self.embedder.embed(text)
        except EmbeddingError as e:
            # persisted without an embedding: excluded from hybrid search
            logger.warning(f"{state['file_name']}: embedding failed, storing record without it: {e.message}")
            return {"record": record, "trail": [EMBEDDING_SKIPPED]}
        return {"record": record, "trail": [EMBEDDED]}

    async def node_persist(self, state: ExtractionState) -> Dict[str, Any]:
        record = await self.candidates.insert(state["record"])
        logger.info(f"{state['file_name']}: persisted candidate {record.candidate_id} via {record.extraction_method}")
        return {"record": record, "trail": [PERSISTED]}

    # ----- routing -----
    @staticmethod
    def route_after_text(state: ExtractionState) -> str:
        return "structure_text" if state.get("sufficient") else "vision"

    @staticmethod
    def route_after_vision(state: ExtractionState) -> str:
        if state.get("cv") is not None:
            return "embed"
        if clean_text(state.get("raw_text", "")):
            return "text_fallback"
        return "failed"

    def build_graph(self):
        g = StateGraph(ExtractionState)
        g.add_node("extract_text", self.node_extract_text)
        g.add_node("structure_text", self.node_structure_text)
        g.add_node("vision", self.node_vision)
        g.add_node("text_fallback", self.node_text_fallback)
        g.add_node("failed", self.node_failed)
        g.add_node("embed", self.node_embed)
        g.add_node("persist", self.node_persist)
        g.set_entry_point("extract_text")
        g.add_conditional_edges("extract_text", self.route_after_text, ["structure_text", "vision"])
        g.add_conditional_edges("vision", self.route_after_vision, ["embed", "text_fallback", "failed"])
        g.add_edge("structure_text", "embed")
        g.add_edge("text_fallback", "embed")
        g.add_edge("embed", "persist")
        g.add_edge("persist", END)
        g.add_edge("failed", END)
        return g.compile()

    # ----- entry points -----
    async def process(self, file_path, file_name: Optional[str] = None) -> ExtractionState:
        """Run the graph and return its final state; the source file is always removed"""
        file_name = file_name or Path(file_path).name
        try:
            with PerformanceMonitor(f"CV extraction {file_name}", logger, threshold_ms=60000):
                return await self.graph.ainvoke(
                    {"file_path": str(file_path), "file_name": file_name, "trail": [START]}
                )
        finally:
            self._remove_source(file_path)

    async def run(self, file_path, file_name: Optional[str] = None) -> CandidateRecord:
        file_name = file_name or Path(file_path).name
        state = await self.process(file_path, file_name)
        if state.get("error") or state.get("record") is None:
            raise ExtractionError(
                state.get("error") or f"Extraction of {file_name} produced no record",
                document_id=file_name,
                details={"trail": state.get("trail", [])},
            )
        return state["record"]

    @staticmethod
    def _remove_source(file_path) -> None:
        try:
            os.remove(file_path)
            logger.debug(f"Removed source file {file_path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove source file {file_path}: {e}")

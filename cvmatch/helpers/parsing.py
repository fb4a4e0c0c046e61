import logging
import re
from pathlib import Path
from typing import List

import fitz  # PyMuPDF
from pdfminer.high_level import extract_text as pdf_extract

from cvmatch.utils.exceptions import FileReadError
from cvmatch.utils.logging_config import get_logger

logging.getLogger("pdfminer").setLevel(logging.ERROR)
logger = get_logger(__name__)


def clean_text(x: str) -> str:
    x = re.sub(r'\s+', ' ', x or "").strip()
    return x


def alnum_ratio(x: str) -> float:
    if not x:
        return 0.0
    return sum(1 for ch in x if ch.isalnum()) / len(x)


def is_text_sufficient(text: str, min_length: int = 50, min_alnum_ratio: float = 0.3) -> bool:
    """Whether an embedded text layer is usable without looking at the page images"""
    cleaned = clean_text(text)
    if len(cleaned) < min_length:
        return False
    return alnum_ratio(cleaned) >= min_alnum_ratio


class PdfRenderer:
    """Text layer and page images of a PDF file"""

    def __init__(self, zoom: float = 2.0, max_pages: int = 10):
        self.zoom = zoom
        self.max_pages = max_pages

    @staticmethod
    def _check(path) -> Path:
        p = Path(path)
        if not p.is_file():
            raise FileReadError(f"File not found: {p}", file_path=p)
        return p

    def to_text(self, path) -> str:
        p = self._check(path)
        try:
            return pdf_extract(str(p)) or ""
        except Exception as e:
            # fallback to PyMuPDF's own text layer
            logger.debug(f"pdfminer failed on {p.name} ({e}), trying PyMuPDF")
        try:
            with fitz.open(str(p)) as doc:
                return "\n".join(page.get_text() for page in doc)
        except Exception as e:
            raise FileReadError(f"Could not read PDF {p.name}: {e}", file_path=p, cause=e) from e

    def to_images(self, path) -> List[bytes]:
        """PNG bytes for the first `max_pages` pages"""
        p = self._check(path)
        images = []
        try:
            with fitz.open(str(p)) as doc:
                mat = fitz.Matrix(self.zoom, self.zoom)
                for index, page in enumerate(doc):
                    if index >= self.max_pages:
                        logger.info(f"{p.name}: rendering stopped at {self.max_pages} pages")
                        break
                    pix = page.get_pixmap(matrix=mat, alpha=False)
                    images.append(pix.tobytes("png"))
        except Exception as e:
            raise FileReadError(f"Could not render PDF {p.name}: {e}", file_path=p, cause=e) from e
        if not images:
            raise FileReadError(f"PDF {p.name} has no pages", file_path=p)
        return images

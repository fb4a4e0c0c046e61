import fitz
import pytest

from cvmatch.helpers.parsing import PdfRenderer
from cvmatch.utils.exceptions import FileReadError


def write_pdf(path, pages):
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    doc.save(str(path))
    doc.close()
    return path


@pytest.fixture
def cv_pdf(tmp_path):
    return write_pdf(tmp_path / "cv.pdf", ["Jane Doe - Backend Engineer", "Skills: Python, MongoDB"])


def test_text_layer(cv_pdf):
    text = PdfRenderer().to_text(cv_pdf)
    assert "Jane Doe" in text
    assert "MongoDB" in text


def test_page_images(cv_pdf):
    images = PdfRenderer(zoom=1.0).to_images(cv_pdf)
    assert len(images) == 2
    assert all(img.startswith(b"\x89PNG") for img in images)


def test_page_limit(tmp_path):
    path = write_pdf(tmp_path / "long.pdf", [f"page {i}" for i in range(4)])
    assert len(PdfRenderer(zoom=1.0, max_pages=2).to_images(path)) == 2


@pytest.mark.parametrize("method", ["to_text", "to_images"])
def test_missing_file(tmp_path, method):
    with pytest.raises(FileReadError) as exc_info:
        getattr(PdfRenderer(), method)(tmp_path / "nope.pdf")
    assert exc_info.value.details["file_path"].endswith("nope.pdf")

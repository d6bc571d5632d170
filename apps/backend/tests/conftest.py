"""Pytest configuration and fixtures."""

import json
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import cv2
import numpy as np
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from reportlab.pdfgen import canvas as pdf_canvas

from app.main import app


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create a test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def blank_page() -> Callable[..., np.ndarray]:
    """Factory for white RGB page images."""

    def make(width: int = 400, height: int = 300) -> np.ndarray:
        return np.full((height, width, 3), 255, dtype=np.uint8)

    return make


@pytest.fixture
def underline_page(blank_page) -> np.ndarray:
    """400x300 page with a 2px underline at rows 150-151, columns 50-249."""
    img = blank_page(400, 300)
    img[150:152, 50:250] = 0
    return img


@pytest.fixture
def png_bytes() -> Callable[[np.ndarray], bytes]:
    """Encode an RGB image as PNG bytes."""

    def encode(img: np.ndarray) -> bytes:
        ok, buffer = cv2.imencode(".png", cv2.cvtColor(img, cv2.COLOR_RGB2BGR))
        assert ok
        return buffer.tobytes()

    return encode


@pytest.fixture
def make_pdf(tmp_path: Path) -> Callable[..., Path]:
    """Factory for small PDFs drawn with reportlab."""

    def make(name: str, *pages: Callable, pagesize: tuple[float, float] = (300, 200)) -> Path:
        path = tmp_path / name
        c = pdf_canvas.Canvas(str(path), pagesize=pagesize)
        for draw in pages or (lambda c: None,):
            draw(c)
            c.showPage()
        c.save()
        return path

    return make


def groundtruth(document_id: str, pages: list[dict]) -> dict:
    return {"documentId": document_id, "pages": pages}


@pytest.fixture
def dataset_dir(tmp_path: Path, make_pdf) -> Path:
    """
    Small dataset directory.

    - ``b_form``: underline form with valid ground truth
    - ``a_broken``: annotation file that is not valid JSON
    - ``c_unlabeled``: no annotation file
    """
    root = tmp_path / "dataset"
    root.mkdir()

    def underline(c):
        c.setLineWidth(0.6)
        c.line(60, 100, 240, 100)

    form = make_pdf("b_form.pdf", underline)
    form.rename(root / "b_form.pdf")
    (root / "b_form.groundtruth.json").write_text(json.dumps(groundtruth("b_form", [
        {
            "pageIndex": 0,
            "fields": [
                {"type": "text", "rect": {"x": 0.2, "y": 0.46, "width": 0.6, "height": 0.04}},
            ],
        },
    ])))

    broken = make_pdf("a_broken.pdf")
    broken.rename(root / "a_broken.pdf")
    (root / "a_broken.json").write_text("{not json")

    unlabeled = make_pdf("c_unlabeled.pdf")
    unlabeled.rename(root / "c_unlabeled.pdf")

    (root / "notes.txt").write_text("ignored")

    return root

"""
Shared fixtures for the SheetCheck test suite
"""
import io
import math
import json
from typing import Any, Callable, Dict, List

import fitz
import httpx
import pytest
from PIL import Image

from sheetcheck.core import Tables
from sheetcheck.pipeline import PaperScorer
from sheetcheck.storage import InMemoryObjectStore, InMemoryTableService


def make_pdf(page_sizes) -> bytes:
    """PDF whose pages have the given (width, height) sizes in points"""
    doc = fitz.open()
    for i, (width, height) in enumerate(page_sizes, start=1):
        page = doc.new_page(width=width, height=height)
        page.insert_text((10, 20), f"Page {i}")
    data = doc.tobytes()
    doc.close()
    return data


def make_png(size=(8, 6), color=(255, 0, 0, 128), mode="RGBA") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def chat_response(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


class ScriptedScorer(PaperScorer):
    """Returns or raises the scripted outcomes in order; repeats the last one"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests: List[Dict[str, Any]] = []

    async def score(self, request):
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return json.loads(json.dumps(outcome))


def scored_payload(*scores, text="Q1. answer") -> Dict[str, Any]:
    answers = [
        {"question_no": str(i), "score": list(score), "remarks": ""}
        for i, score in enumerate(scores, start=1)
    ]
    awarded = sum(s[0] for s in scores)
    possible = sum(s[1] for s in scores)
    return {
        "answers": answers,
        "summary": {
            "totalScore": [awarded, possible],
            "percentage": math.floor(100 * awarded / possible + 0.5) if possible else 0,
        },
        "text": text,
    }


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def tables():
    return InMemoryTableService({
        Tables.TESTS: [{"id": "test-1", "name": "Physics midterm", "max_marks": 20}],
        Tables.ANSWERS: [{
            "id": "answer-1",
            "test_id": "test-1",
            "student_id": "student-1",
            "subject_id": "physics",
            "answer_sheet_url": "memory://files/answer_sheet/test-1/student-1/sheet.pdf",
            "zip_url": "memory://files/answer_sheet/test-1/student-1/sheet.zip",
            "text_content": None,
        }],
    })


@pytest.fixture
def store():
    return InMemoryObjectStore(bucket="files")


@pytest.fixture
def sleep():
    return RecordingSleep()

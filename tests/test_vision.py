"""
Unit tests for the vision extractor
"""
import asyncio
import base64
import json

import httpx
import pytest

from sheetcheck.core import (
    AIModelException,
    ConfigurationException,
    DocumentRole,
    FileProcessingException,
    TransientTransportException,
)
from sheetcheck.pipeline import BatchPackager, ExtractionStatus, PageImage, VisionExtractor
from sheetcheck.pipeline.prompts import ANSWER_KEY_PROMPT, ANSWER_SHEET_PROMPT, PARTIAL_NOTE

from conftest import chat_response, mock_client


def make_extractor(store, handler, **kwargs):
    return VisionExtractor(store, api_key="sk-test", client=mock_client(handler), **kwargs)


def store_archive(store, page_count, path="answer_sheet/t/s/sheet.zip"):
    pages = [PageImage(index=i, data=f"img-{i}".encode()) for i in range(1, page_count + 1)]
    archive = BatchPackager().package(pages, "sheet")
    return asyncio.run(store.put(path, archive.data, "application/zip"))


class TestDispatch:
    """Test cases for extract() routing"""

    def test_pdf_without_archive_needs_conversion(self, store):
        calls = []

        def handler(request):
            calls.append(request)
            return chat_response("should not happen")

        extractor = make_extractor(store, handler)
        result = asyncio.run(extractor.extract("https://cdn/x/paper.pdf?cache=1", DocumentRole.QUESTION_PAPER))

        assert result.status == ExtractionStatus.NEEDS_CONVERSION
        assert result.needs_conversion
        assert calls == []

    def test_pdf_with_archive_uses_archive(self, store):
        zip_url = store_archive(store, 2)
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return chat_response("Q1: answer")

        extractor = make_extractor(store, handler)
        result = asyncio.run(extractor.extract("https://cdn/x/sheet.pdf", "answer_sheet", zip_url=zip_url))

        assert result.status == ExtractionStatus.EXTRACTED
        assert result.text == "Q1: answer"
        assert result.page_count == 2
        assert len(seen[0]["messages"][1]["content"]) == 3

    def test_image_url_sent_by_reference(self, store):
        seen = []

        def handler(request):
            seen.append(request)
            return chat_response("  Q1: 42  ")

        extractor = make_extractor(store, handler)
        result = asyncio.run(extractor.extract("https://cdn/x/key.png", DocumentRole.ANSWER_KEY))

        body = json.loads(seen[0].content)
        assert result.text == "Q1: 42"
        assert body["model"] == "gpt-4o"
        assert body["messages"][0] == {"role": "system", "content": ANSWER_KEY_PROMPT}
        assert body["messages"][1]["content"][1]["image_url"]["url"] == "https://cdn/x/key.png"
        assert seen[0].headers["Authorization"] == "Bearer sk-test"
        assert seen[0].extensions["timeout"]["read"] == 60


class TestSinglePageErrors:
    """Test cases for transport failures on single images"""

    def test_timeout_is_transient(self, store):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        extractor = make_extractor(store, handler)
        with pytest.raises(TransientTransportException) as exc:
            asyncio.run(extractor.extract_from_url("https://cdn/a.png", DocumentRole.ANSWER_SHEET))
        assert "OCR extraction failed" in str(exc.value)

    def test_error_body_message_is_surfaced(self, store):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "invalid_image_url: cannot fetch"}})

        extractor = make_extractor(store, handler)
        with pytest.raises(TransientTransportException) as exc:
            asyncio.run(extractor.extract_from_url("https://cdn/a.png", DocumentRole.ANSWER_SHEET))
        assert "invalid_image_url" in str(exc.value)

    def test_empty_output_is_transient(self, store):
        extractor = make_extractor(store, lambda request: chat_response("   "))
        with pytest.raises(TransientTransportException):
            asyncio.run(extractor.extract_from_url("https://cdn/a.png", DocumentRole.ANSWER_SHEET))

    def test_auth_failure_is_not_transient(self, store):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        extractor = make_extractor(store, handler)
        with pytest.raises(AIModelException):
            asyncio.run(extractor.extract_from_url("https://cdn/a.png", DocumentRole.ANSWER_SHEET))

    def test_missing_api_key(self, store):
        extractor = VisionExtractor(store, api_key=None, client=mock_client(lambda r: chat_response("x")))
        with pytest.raises(ConfigurationException):
            asyncio.run(extractor.extract_from_url("https://cdn/a.png", DocumentRole.ANSWER_SHEET))


class TestArchiveExtraction:
    """Test cases for multi-page archive extraction"""

    def test_pages_sent_in_order_as_data_urls(self, store):
        zip_url = store_archive(store, 3)
        seen = []

        def handler(request):
            seen.append(request)
            return chat_response("all pages")

        extractor = make_extractor(store, handler)
        result = asyncio.run(extractor.extract_from_archive(zip_url, DocumentRole.ANSWER_SHEET))

        body = json.loads(seen[0].content)
        parts = body["messages"][1]["content"]
        assert body["messages"][0]["content"] == ANSWER_SHEET_PROMPT
        assert "3 pages" in parts[0]["text"]
        urls = [p["image_url"]["url"] for p in parts[1:]]
        assert all(u.startswith("data:image/png;base64,") for u in urls)
        decoded = [base64.b64decode(u.split(",", 1)[1]) for u in urls]
        assert decoded == [b"img-1", b"img-2", b"img-3"]
        assert result.page_count == 3
        assert not result.partial
        assert seen[0].extensions["timeout"]["read"] is None

    def test_caps_pages_per_request(self, store):
        zip_url = store_archive(store, 8)
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return chat_response("capped")

        extractor = make_extractor(store, handler, max_images=4)
        result = asyncio.run(extractor.extract_from_archive(zip_url, DocumentRole.ANSWER_SHEET))

        assert len(seen[0]["messages"][1]["content"]) == 5
        assert result.page_count == 4

    def test_falls_back_to_first_pages(self, store):
        zip_url = store_archive(store, 7)
        image_counts = []

        def handler(request):
            parts = json.loads(request.content)["messages"][1]["content"]
            image_counts.append(len(parts) - 1)
            if len(parts) - 1 > 5:
                return httpx.Response(500, json={"error": {"message": "payload too large"}})
            return chat_response("first five")

        extractor = make_extractor(store, handler)
        result = asyncio.run(extractor.extract_from_archive(zip_url, DocumentRole.ANSWER_SHEET))

        assert image_counts == [7, 5]
        assert result.partial
        assert result.page_count == 5
        assert result.text == "first five" + PARTIAL_NOTE

    def test_small_archive_failure_is_raised(self, store):
        zip_url = store_archive(store, 3)

        def handler(request):
            return httpx.Response(500, json={"error": {"message": "upstream down"}})

        extractor = make_extractor(store, handler)
        with pytest.raises(TransientTransportException):
            asyncio.run(extractor.extract_from_archive(zip_url, DocumentRole.ANSWER_SHEET))

    def test_missing_archive_is_transient(self, store):
        extractor = make_extractor(store, lambda request: chat_response("x"))
        with pytest.raises(TransientTransportException) as exc:
            asyncio.run(extractor.extract_from_archive("memory://files/missing.zip", DocumentRole.ANSWER_SHEET))
        assert "Failed to download" in str(exc.value)

    def test_corrupt_archive(self, store):
        url = asyncio.run(store.put("bad.zip", b"garbage"))
        extractor = make_extractor(store, lambda request: chat_response("x"))
        with pytest.raises(FileProcessingException):
            asyncio.run(extractor.extract_from_archive(url, DocumentRole.ANSWER_SHEET))

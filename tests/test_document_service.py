"""
Unit tests for the document service
"""
import asyncio
import io
import zipfile

import pytest

from sheetcheck.core import BadRequestException, DocumentRole, EvaluationStatus, Messages, Tables
from sheetcheck.pipeline import ExtractionResult, ExtractionStatus
from sheetcheck.services import DocumentService
from sheetcheck.storage import InMemoryTableService

from conftest import make_pdf, make_png


def upload(service, role, filename, content, **kwargs):
    kwargs.setdefault("subject_id", "physics")
    return asyncio.run(service.upload_document(role, "test-1", filename=filename, content=content, **kwargs))


class StubExtractor:
    def __init__(self, text="extracted"):
        self.text = text
        self.calls = []

    async def extract(self, url, role, zip_url=None):
        self.calls.append((url, role, zip_url))
        return ExtractionResult(ExtractionStatus.EXTRACTED, text=self.text, page_count=1)


class TestUpload:
    """Test cases for document uploads"""

    def test_pdf_is_stored_with_page_archive(self, store):
        tables = InMemoryTableService()
        service = DocumentService(tables, store)

        result = upload(service, DocumentRole.QUESTION_PAPER, "Mid Term.pdf", make_pdf([(80, 80)] * 3), topic="Optics")

        assert result["page_count"] == 3
        assert not result["needs_manual_text"]
        archive = store.objects[store.path_from_url(result["zip_url"])]
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            assert zf.namelist() == ["page_001.png", "page_002.png", "page_003.png"]

        [asset] = tables.rows(Tables.DOCUMENTS)
        assert asset["role"] == "question_paper"
        assert asset["topic"] == "Optics"
        assert asset["url"] == result["url"]
        assert "cache=" not in asset["url"]
        assert store.content_types[asset["storage_path"]] == "application/pdf"

    def test_image_becomes_single_page_archive(self, store):
        service = DocumentService(InMemoryTableService(), store)
        result = upload(service, DocumentRole.ANSWER_KEY, "key.png", make_png())
        assert result["page_count"] == 1
        assert result["zip_url"].endswith(".zip")

    def test_unconvertible_pdf_asks_for_manual_text(self, store):
        tables = InMemoryTableService()
        service = DocumentService(tables, store)

        result = upload(service, DocumentRole.QUESTION_PAPER, "broken.pdf", b"%PDF-1.4 garbage")

        assert result["needs_manual_text"]
        assert result["zip_url"] is None
        assert tables.rows(Tables.DOCUMENTS)[0]["zip_url"] is None
        assert len(store.objects) == 1

    @pytest.mark.parametrize("filename", ["notes.docx", "sheet.zip", "README"])
    def test_rejects_unsupported_types(self, store, filename):
        service = DocumentService(InMemoryTableService(), store)
        with pytest.raises(BadRequestException) as exc:
            upload(service, DocumentRole.QUESTION_PAPER, filename, b"data")
        assert str(exc.value) == Messages.INVALID_FILE_TYPE

    def test_rejects_bad_requests(self, store):
        service = DocumentService(InMemoryTableService(), store)
        with pytest.raises(BadRequestException):
            upload(service, DocumentRole.ANSWER_SHEET, "sheet.png", make_png())
        with pytest.raises(BadRequestException):
            upload(service, "syllabus", "a.png", make_png())
        with pytest.raises(BadRequestException):
            upload(service, DocumentRole.ANSWER_KEY, "a.png", b"")


class TestAnswerSheetReupload:
    """Test cases for answer sheet supersession"""

    def test_reupload_supersedes_and_resets(self, store):
        tables = InMemoryTableService({
            Tables.EVALUATIONS: [{
                "id": "eval-1", "test_id": "test-1", "student_id": "student-1",
                "status": EvaluationStatus.COMPLETED.value,
                "evaluation_data": {"answers": []}, "retry_count": 1, "version": 4,
            }],
            Tables.GRADES: [{
                "id": "grade-1", "test_id": "test-1", "student_id": "student-1",
                "marks": 8, "remarks": "Auto-evaluated: 8/10",
            }],
        })
        service = DocumentService(tables, store)

        first = upload(service, DocumentRole.ANSWER_SHEET, "sheet.pdf", make_pdf([(60, 60)]), student_id="student-1")
        old_paths = set(store.objects)
        [evaluation] = tables.rows(Tables.EVALUATIONS)
        assert evaluation["status"] == EvaluationStatus.PENDING.value
        assert evaluation["version"] == 5
        evaluation.update({"status": EvaluationStatus.COMPLETED.value, "evaluation_data": {"answers": []}})

        # Different name so the new objects get different paths
        second = upload(service, DocumentRole.ANSWER_SHEET, "sheet-v2.pdf", make_pdf([(60, 60)] * 2), student_id="student-1")

        assert second["document_id"] == first["document_id"]
        assert len(tables.rows(Tables.DOCUMENTS)) == 1
        assert old_paths.isdisjoint(store.objects)
        assert len(store.objects) == 2

        [evaluation] = tables.rows(Tables.EVALUATIONS)
        assert evaluation["id"] == "eval-1"
        assert evaluation["status"] == EvaluationStatus.PENDING.value
        assert evaluation["evaluation_data"] is None
        assert evaluation["retry_count"] == 0
        assert evaluation["last_error"] is None
        assert evaluation["version"] == 6
        [grade] = tables.rows(Tables.GRADES)
        assert grade["marks"] == 0
        assert grade["remarks"] == Messages.RESET_REMARK

        [answer] = tables.rows(Tables.ANSWERS)
        assert answer["answer_sheet_url"] == second["url"]
        assert answer["zip_url"] == second["zip_url"]
        assert answer["subject_id"] == "physics"


class TestTextExtraction:
    """Test cases for extract_document_text"""

    def test_uses_cached_text(self, store):
        tables = InMemoryTableService({Tables.DOCUMENTS: [
            {"id": "doc-1", "url": "memory://files/qp.pdf", "text_content": "Q1: cached"},
        ]})
        extractor = StubExtractor()
        service = DocumentService(tables, store, extractor=extractor)

        result = asyncio.run(service.extract_document_text("memory://files/qp.pdf?cache=5", "question_paper"))

        assert result.text == "Q1: cached"
        assert extractor.calls == []

    def test_extracts_with_stored_archive_and_caches(self, store):
        tables = InMemoryTableService({Tables.DOCUMENTS: [
            {"id": "doc-1", "url": "memory://files/ak.pdf", "zip_url": "memory://files/ak.zip", "text_content": None},
        ]})
        extractor = StubExtractor("Q1: fresh")
        service = DocumentService(tables, store, extractor=extractor)

        result = asyncio.run(service.extract_document_text("memory://files/ak.pdf", DocumentRole.ANSWER_KEY))

        assert result.text == "Q1: fresh"
        assert extractor.calls == [("memory://files/ak.pdf", DocumentRole.ANSWER_KEY, "memory://files/ak.zip")]
        assert tables.rows(Tables.DOCUMENTS)[0]["text_content"] == "Q1: fresh"

    def test_unknown_role(self, store):
        service = DocumentService(InMemoryTableService(), store, extractor=StubExtractor())
        with pytest.raises(BadRequestException):
            asyncio.run(service.extract_document_text("memory://files/a.png", "syllabus"))

"""
API tests for the FastAPI routes
"""
import io

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from sheetcheck.core import EvaluationStatus, Messages, ScorerException, Tables, TransientTransportException
from sheetcheck.main import app
from sheetcheck.services import (
    DocumentService,
    EvaluationService,
    GradeService,
    get_document_service,
    get_evaluation_service,
    get_grade_service,
    get_llm_scorer,
)

from conftest import RecordingSleep, ScriptedScorer, make_pdf, scored_payload


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def use_scorer(tables, *outcomes):
    scorer = ScriptedScorer(*outcomes)
    service = EvaluationService(tables, lambda: scorer, sleep=RecordingSleep())
    app.dependency_overrides[get_evaluation_service] = lambda: service
    return scorer


class TestMeta:
    def test_root_and_health(self, client):
        assert client.get("/").json()["name"] == "SheetCheck API"
        health = client.get("/health").json()
        assert health["status"] == "healthy"


class TestEvaluationRoutes:
    """Test cases for /api/evaluations"""

    def test_evaluate_student(self, client, tables):
        use_scorer(tables, scored_payload((3, 5), (4, 5)))

        response = client.post("/api/evaluations", json={
            "test_id": "test-1",
            "student_id": "student-1",
            "subject_id": "physics",
            "student_info": {"name": "Alice", "class": "10A"},
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"]
        assert body["status"] == EvaluationStatus.COMPLETED.value
        assert body["evaluation_data"]["summary"]["totalScore"] == [7, 10]
        assert body["messages"] == []
        assert tables.rows(Tables.GRADES)[0]["marks"] == 7

    def test_student_info_keeps_class_key(self, client, tables):
        scorer = use_scorer(tables, scored_payload((1, 1)))
        client.post("/api/evaluations", json={
            "test_id": "test-1",
            "student_id": "student-1",
            "student_info": {"name": "Alice", "class": "10A"},
        })
        assert scorer.requests[0]["studentInfo"] == {"name": "Alice", "class": "10A"}

    def test_retry_notices_are_returned(self, client, tables):
        use_scorer(tables, TransientTransportException("Failed to download image"), scored_payload((1, 1)))

        body = client.post("/api/evaluations", json={
            "test_id": "test-1",
            "student_id": "student-1",
            "student_info": {"name": "Alice"},
        }).json()

        assert body["status"] == EvaluationStatus.COMPLETED.value
        assert body["messages"] == ["Retrying evaluation for Alice in 5s (attempt 1/2)"]

    def test_missing_answer_sheet(self, client, tables):
        use_scorer(tables, scored_payload((1, 1)))

        response = client.post("/api/evaluations", json={"test_id": "test-1", "student_id": "student-9"})

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": Messages.NO_ANSWER_SHEET,
            "error_code": "INPUT_MISSING",
        }

    def test_failed_evaluation(self, client, tables):
        use_scorer(tables, ScorerException("Invalid evaluation structure"))

        response = client.post("/api/evaluations", json={"test_id": "test-1", "student_id": "student-1"})

        assert response.status_code == 502
        assert response.json()["error_code"] == "EVALUATION_FAILED"

    def test_batch(self, client, tables):
        use_scorer(tables, scored_payload((2, 4)))

        body = client.post("/api/evaluations/batch", json={
            "test_id": "test-1",
            "subject_id": "physics",
            "students": [{"student_id": "student-1"}, {"student_id": "student-2"}],
        }).json()

        assert body["total"] == 2
        assert body["succeeded"] == 1
        assert body["results"][1]["error_code"] == "INPUT_MISSING"

    def test_get_and_override(self, client, tables):
        use_scorer(tables, scored_payload((4, 5), (3, 5)))
        evaluation_id = client.post(
            "/api/evaluations", json={"test_id": "test-1", "student_id": "student-1"}
        ).json()["evaluation_id"]

        response = client.patch(f"/api/evaluations/{evaluation_id}/answers/1", json={"score": 5})

        assert response.status_code == 200
        assert response.json()["evaluation_data"]["summary"] == {"totalScore": [9, 10], "percentage": 90}
        assert tables.rows(Tables.GRADES)[0]["marks"] == 9

        fetched = client.get("/api/evaluations/test-1/student-1").json()
        assert fetched["evaluation_data"]["answers"][1]["score"] == [5, 5]

    def test_get_unknown_evaluation(self, client, tables):
        use_scorer(tables, scored_payload((1, 1)))
        response = client.get("/api/evaluations/test-1/student-9")
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"


class TestDocumentRoutes:
    """Test cases for document upload and listing"""

    def test_upload_and_list(self, client, tables, store):
        service = DocumentService(tables, store)
        app.dependency_overrides[get_document_service] = lambda: service

        response = client.post(
            "/api/documents",
            data={"role": "question_paper", "test_id": "test-1", "subject_id": "physics"},
            files={"file": ("paper.pdf", make_pdf([(60, 60)] * 2), "application/pdf")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == Messages.UPLOAD_SUCCESS
        assert body["page_count"] == 2

        listing = client.get("/api/documents/test-1", params={"role": "question_paper"}).json()
        assert listing["total"] == 1
        assert listing["documents"][0]["id"] == body["document_id"]

    def test_upload_rejects_unknown_type(self, client, tables, store):
        app.dependency_overrides[get_document_service] = lambda: DocumentService(tables, store)

        response = client.post(
            "/api/documents",
            data={"role": "answer_key", "test_id": "test-1"},
            files={"file": ("key.txt", b"Q1: 42", "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == Messages.INVALID_FILE_TYPE


class TestGradeRoutes:
    """Test cases for /api/grades"""

    def seed(self, tables):
        tables.rows(Tables.EVALUATIONS).append({
            "id": "eval-1", "test_id": "test-1", "student_id": "student-1",
            "status": EvaluationStatus.COMPLETED.value,
            "evaluation_data": scored_payload((6, 10)),
        })
        tables.rows(Tables.GRADES).append({
            "id": "grade-1", "test_id": "test-1", "student_id": "student-1", "marks": 2,
        })

    def test_list_reconcile_and_export(self, client, tables, tmp_path):
        self.seed(tables)
        app.dependency_overrides[get_grade_service] = lambda: GradeService(tables, exports_dir=tmp_path)

        grades = client.get("/api/grades/test-1").json()
        assert grades["total"] == 1
        assert grades["grades"][0]["marks"] == 2

        report = client.post("/api/grades/reconcile", json={"test_id": "test-1"}).json()
        assert report["repaired"] == 1
        assert report["message"] == Messages.LEDGER_RECONCILED

        response = client.get("/api/grades/test-1/export")
        assert response.status_code == 200
        workbook = load_workbook(io.BytesIO(response.content))
        rows = list(workbook["Results"].iter_rows(values_only=True))
        assert rows[0] == ("Student ID", "Marks", "Remarks")
        assert rows[1][:2] == ("student-1", 6)

    def test_export_without_grades(self, client, tables, tmp_path):
        app.dependency_overrides[get_grade_service] = lambda: GradeService(tables, exports_dir=tmp_path)
        response = client.get("/api/grades/test-1/export")
        assert response.status_code == 404


class TestScorerRoute:
    """Test cases for the in-process scorer endpoint"""

    REQUEST = {
        "questionPaper": {"url": "https://cdn/qp.pdf", "topic": "Optics"},
        "answerKey": {"url": "https://cdn/ak.pdf"},
        "studentAnswer": {"url": "https://cdn/sheet.pdf", "zip_url": "https://cdn/sheet.zip"},
        "studentInfo": {"name": "Alice"},
        "testId": "test-1",
    }

    def test_returns_scored_payload(self, client):
        scorer = ScriptedScorer(scored_payload((3, 5)))
        app.dependency_overrides[get_llm_scorer] = lambda: scorer

        response = client.post("/api/scorer/evaluate-paper", json=self.REQUEST)

        assert response.status_code == 200
        assert response.json()["summary"]["totalScore"] == [3, 5]
        forwarded = scorer.requests[0]
        assert forwarded["studentAnswer"]["zip_url"] == "https://cdn/sheet.zip"
        assert forwarded["retryAttempt"] == 0

    def test_errors_use_failure_body(self, client):
        app.dependency_overrides[get_llm_scorer] = lambda: ScriptedScorer(
            ScorerException("Invalid evaluation structure")
        )

        response = client.post("/api/scorer/evaluate-paper", json=self.REQUEST)

        assert response.status_code == 502
        assert response.json() == {
            "success": False,
            "error": "Invalid evaluation structure",
            "error_code": "SCORER_ERROR",
        }

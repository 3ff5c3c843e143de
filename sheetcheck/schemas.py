"""
Pydantic schemas for API request/response models
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Dict, Optional, Any


# ===== Evaluation Schemas =====
class StudentInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: Optional[str] = None
    roll_number: Optional[str] = None
    class_name: Optional[str] = Field(default=None, alias="class")
    subject: Optional[str] = None


class DocumentRef(BaseModel):
    url: Optional[str] = None
    topic: Optional[str] = None


class EvaluationRequest(BaseModel):
    test_id: str = Field(..., description="Test being evaluated")
    student_id: str = Field(..., description="Student whose sheet is evaluated")
    subject_id: Optional[str] = None
    question_paper: DocumentRef = Field(default_factory=DocumentRef)
    answer_key: DocumentRef = Field(default_factory=DocumentRef)
    student_info: StudentInfo = Field(default_factory=StudentInfo)


class BatchStudent(BaseModel):
    student_id: str
    student_info: StudentInfo = Field(default_factory=StudentInfo)


class BatchEvaluationRequest(BaseModel):
    test_id: str
    subject_id: Optional[str] = None
    question_paper: DocumentRef = Field(default_factory=DocumentRef)
    answer_key: DocumentRef = Field(default_factory=DocumentRef)
    students: List[BatchStudent] = Field(..., min_length=1)


class EvaluationResponse(BaseModel):
    success: bool = True
    evaluation_id: str
    status: str
    evaluation_data: Optional[Dict[str, Any]] = None
    retry_count: int = 0
    last_error: Optional[str] = None
    messages: List[str] = []


class BatchOutcome(BaseModel):
    student_id: str
    success: bool
    evaluation_id: Optional[str] = None
    summary: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class BatchEvaluationResponse(BaseModel):
    success: bool = True
    total: int
    succeeded: int
    failed: int
    results: List[BatchOutcome] = []
    messages: List[str] = []


class ScoreOverrideRequest(BaseModel):
    score: float = Field(..., description="New awarded score for the question")


class ScoreOverrideResponse(BaseModel):
    success: bool = True
    message: str
    evaluation_data: Dict[str, Any]


# ===== Document Schemas =====
class DocumentUploadResponse(BaseModel):
    success: bool = True
    message: str
    document_id: str
    role: str
    url: str
    zip_url: Optional[str] = None
    page_count: int = 0
    needs_manual_text: bool = False


class DocumentListResponse(BaseModel):
    documents: List[Dict[str, Any]]
    total: int


class ExtractTextRequest(BaseModel):
    url: str
    role: str = Field(..., description="question_paper, answer_key or answer_sheet")
    zip_url: Optional[str] = None


class ExtractTextResponse(BaseModel):
    success: bool = True
    status: str
    text: str = ""
    page_count: int = 0
    partial: bool = False
    message: Optional[str] = None


# ===== Grade Schemas =====
class GradeEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    test_id: str
    student_id: str
    marks: Optional[float] = None
    remarks: Optional[str] = None


class GradeListResponse(BaseModel):
    test_id: str
    grades: List[GradeEntry]
    total: int


class ReconcileRequest(BaseModel):
    test_id: Optional[str] = None


class ReconcileResponse(BaseModel):
    success: bool = True
    message: str
    checked: int
    repaired: int
    skipped: int


# ===== Scorer Schemas =====
class ScorerStudentAnswer(BaseModel):
    url: str
    zip_url: Optional[str] = None


class ScorerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_paper: DocumentRef = Field(default_factory=DocumentRef, alias="questionPaper")
    answer_key: DocumentRef = Field(default_factory=DocumentRef, alias="answerKey")
    student_answer: ScorerStudentAnswer = Field(..., alias="studentAnswer")
    student_info: Dict[str, Any] = Field(default_factory=dict, alias="studentInfo")
    test_id: str = Field(..., alias="testId")
    retry_attempt: int = Field(default=0, alias="retryAttempt")

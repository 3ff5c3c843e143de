"""
Application constants
"""
from enum import Enum


class EvaluationStatus(str, Enum):
    """Lifecycle states of a paper evaluation"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentRole(str, Enum):
    """Kinds of uploaded documents"""
    QUESTION_PAPER = "question_paper"
    ANSWER_KEY = "answer_key"
    ANSWER_SHEET = "answer_sheet"


class FileType(str, Enum):
    """Supported file types"""
    PDF = "pdf"
    IMAGE = "image"
    ZIP = "zip"
    UNKNOWN = "unknown"


class Tables:
    """Relational table names"""
    EVALUATIONS = "paper_evaluations"
    GRADES = "test_grades"
    DOCUMENTS = "document_assets"
    ANSWERS = "test_answers"
    TESTS = "tests"


# API Response Messages
class Messages:
    """API response messages"""

    # Success messages
    UPLOAD_SUCCESS = "Document uploaded successfully"
    EVALUATION_COMPLETE = "Evaluation completed"
    SCORE_UPDATED = "Score updated successfully"
    LEDGER_RECONCILED = "Grade ledger reconciled"

    # Error messages
    NO_ANSWER_SHEET = "No answer sheet found for this student"
    INVALID_FILE_TYPE = "Only PDF, PNG and JPEG files are supported"
    NEEDS_CONVERSION = "PDF documents must be converted to page images before extraction"
    MANUAL_TEXT_FALLBACK = "Could not convert the PDF to images; please enter the text manually"
    INVALID_EVALUATION_DATA = "Invalid evaluation data"
    INVALID_SCORE_FORMAT = "Invalid score format"
    EVALUATION_BUSY = "An evaluation for this student is already in progress"

    # Ledger remarks
    AUTO_REMARK = "Auto-evaluated: {awarded}/{possible}"
    MANUAL_REMARK = "Updated manually: {awarded}/{possible}"
    RESET_REMARK = "Reset due to answer sheet reupload"


# File size limits (in bytes)
class FileLimits:
    """File size limits"""
    MAX_IMAGE_SIZE = 10 * 1024 * 1024  # 10MB
    MAX_PDF_SIZE = 50 * 1024 * 1024    # 50MB


# Substrings the scorer puts in transient failure messages
RETRYABLE_ERROR_MARKERS = (
    "Timeout while downloading",
    "invalid_image_url",
    "Failed to download",
    "OCR extraction failed",
)

"""
Custom exceptions for the SheetCheck API
"""
from fastapi import HTTPException, status


class BaseAPIException(HTTPException):
    """Base exception for all API errors"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: str = None,
        headers: dict = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code

    def __str__(self) -> str:
        return str(self.detail)


class NotFoundException(BaseAPIException):
    """Resource not found"""

    def __init__(self, resource: str, identifier: str = None):
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} '{identifier}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="NOT_FOUND"
        )


class BadRequestException(BaseAPIException):
    """Bad request - invalid input"""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
            error_code="BAD_REQUEST"
        )


class InputMissingException(BaseAPIException):
    """The student has no answer sheet to evaluate"""

    def __init__(self, message: str = "No answer sheet found for this student"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=message,
            error_code="INPUT_MISSING"
        )


class TransientTransportException(BaseAPIException):
    """Timeout, unreachable URL or failed extraction; worth retrying"""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=message,
            error_code="TRANSIENT_TRANSPORT"
        )


class EvaluationFailedException(BaseAPIException):
    """Evaluation ended in the failed state"""

    def __init__(self, reason: str, retries: int = 0):
        detail = reason
        if retries > 0:
            detail += f" (after {retries} retry attempts)"
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
            error_code="EVALUATION_FAILED"
        )
        self.reason = reason
        self.retries = retries


class ConcurrentEvaluationException(BaseAPIException):
    """Another flow holds the evaluation row"""

    def __init__(self, test_id: str, student_id: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Evaluation for student '{student_id}' on test '{test_id}' is already in progress",
            error_code="EVALUATION_BUSY"
        )


class ConfigurationException(BaseAPIException):
    """Missing or invalid service configuration"""

    def __init__(self, setting: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Service is not configured: {setting} is missing",
            error_code="CONFIGURATION_ERROR"
        )


class FileProcessingException(BaseAPIException):
    """Error processing file"""

    def __init__(self, filename: str, reason: str):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Could not process file '{filename}': {reason}",
            error_code="FILE_PROCESSING_ERROR"
        )


class DatabaseException(BaseAPIException):
    """Database error"""

    def __init__(self, operation: str, reason: str = None):
        detail = f"Database error while {operation}"
        if reason:
            detail += f": {reason}"
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="DATABASE_ERROR"
        )


class AIModelException(BaseAPIException):
    """AI Model error"""

    def __init__(self, model: str, reason: str = None):
        detail = f"AI model '{model}' error"
        if reason:
            detail += f": {reason}"
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="AI_MODEL_ERROR"
        )


class ScorerException(BaseAPIException):
    """The paper-evaluation scorer returned an error"""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=message,
            error_code="SCORER_ERROR"
        )

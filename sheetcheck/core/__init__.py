# Core package
from .constants import (
    EvaluationStatus,
    DocumentRole,
    FileType,
    Tables,
    Messages,
    FileLimits,
    RETRYABLE_ERROR_MARKERS,
)
from .exceptions import (
    BaseAPIException,
    NotFoundException,
    BadRequestException,
    InputMissingException,
    TransientTransportException,
    EvaluationFailedException,
    ConcurrentEvaluationException,
    ConfigurationException,
    FileProcessingException,
    DatabaseException,
    AIModelException,
    ScorerException,
)
from .logger import logger, setup_logger, pipeline_logger, evaluation_logger

__all__ = [
    # Constants
    "EvaluationStatus",
    "DocumentRole",
    "FileType",
    "Tables",
    "Messages",
    "FileLimits",
    "RETRYABLE_ERROR_MARKERS",
    # Exceptions
    "BaseAPIException",
    "NotFoundException",
    "BadRequestException",
    "InputMissingException",
    "TransientTransportException",
    "EvaluationFailedException",
    "ConcurrentEvaluationException",
    "ConfigurationException",
    "FileProcessingException",
    "DatabaseException",
    "AIModelException",
    "ScorerException",
    # Logging
    "logger",
    "setup_logger",
    "pipeline_logger",
    "evaluation_logger",
]

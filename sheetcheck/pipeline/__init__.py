"""
Evaluation Pipeline
===================
Document conversion, vision extraction, scoring and ledger reconciliation.

- PDF rasterization and page-archive packaging
- Role-aware OCR through a vision chat model, with a text cache
- Paper scoring (external endpoint or in-process LLM)
- Evaluation state machine with bounded retries
- Grade ledger reconciliation

Usage:
    from sheetcheck.pipeline import EvaluationOrchestrator, EvaluationJob

    orchestrator = EvaluationOrchestrator(tables, scorer)
    row = await orchestrator.evaluate(EvaluationJob(test_id="t1", student_id="s1"))
"""

from .pages import PageImage, PageArchive
from .rasterizer import PageRasterizer, RasterizationError
from .packager import BatchPackager, ArchiveError
from .vision import VisionExtractor, ExtractionResult, ExtractionStatus, NEEDS_CONVERSION
from .text_cache import DocumentTextCache
from .llm_providers import (
    BaseLLM,
    OpenAILLM,
    GroqLLM,
    OllamaLLM,
    LLMFactory,
    LLMProvider,
)
from .scorer import (
    PaperScorer,
    HttpPaperScorer,
    LLMPaperScorer,
    is_retryable,
    parse_evaluation,
    summarize_answers,
)
from .reconciler import ScoreReconciler
from .orchestrator import EvaluationOrchestrator, EvaluationJob

__all__ = [
    "PageImage",
    "PageArchive",
    "PageRasterizer",
    "RasterizationError",
    "BatchPackager",
    "ArchiveError",
    "VisionExtractor",
    "ExtractionResult",
    "ExtractionStatus",
    "NEEDS_CONVERSION",
    "DocumentTextCache",
    "BaseLLM",
    "OpenAILLM",
    "GroqLLM",
    "OllamaLLM",
    "LLMFactory",
    "LLMProvider",
    "PaperScorer",
    "HttpPaperScorer",
    "LLMPaperScorer",
    "is_retryable",
    "parse_evaluation",
    "summarize_answers",
    "ScoreReconciler",
    "EvaluationOrchestrator",
    "EvaluationJob",
]

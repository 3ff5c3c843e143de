# Services package
from functools import lru_cache

from sheetcheck.config import settings
from sheetcheck.pipeline import (
    BatchPackager,
    DocumentTextCache,
    HttpPaperScorer,
    LLMFactory,
    LLMPaperScorer,
    PageRasterizer,
    PaperScorer,
    VisionExtractor,
)
from sheetcheck.storage import (
    ObjectStoreGateway,
    TableService,
    create_object_store,
    create_table_service,
)

from .document_service import DocumentService
from .evaluation_service import EvaluationService
from .grade_service import GradeService


@lru_cache()
def get_tables() -> TableService:
    return create_table_service()


@lru_cache()
def get_object_store() -> ObjectStoreGateway:
    return create_object_store()


@lru_cache()
def get_extractor() -> VisionExtractor:
    return VisionExtractor(
        get_object_store(),
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.VISION_BASE_URL,
        model=settings.VISION_MODEL,
        temperature=settings.VISION_TEMPERATURE,
        max_tokens=settings.VISION_MAX_TOKENS,
        timeout=settings.VISION_TIMEOUT,
        max_images=settings.MAX_IMAGES_PER_BATCH,
        fallback_batch_size=settings.FALLBACK_BATCH_SIZE,
        packager=BatchPackager(compression_level=settings.ZIP_COMPRESSION_LEVEL),
    )


@lru_cache()
def get_llm_scorer() -> LLMPaperScorer:
    return LLMPaperScorer(get_extractor(), DocumentTextCache(get_tables()), LLMFactory.create())


@lru_cache()
def get_scorer() -> PaperScorer:
    """External scorer endpoint when SCORER_URL is set, otherwise in-process"""
    if settings.SCORER_URL:
        return HttpPaperScorer(settings.SCORER_URL, timeout=settings.SCORER_TIMEOUT)
    return get_llm_scorer()


@lru_cache()
def get_document_service() -> DocumentService:
    return DocumentService(
        get_tables(),
        get_object_store(),
        extractor=get_extractor(),
        rasterizer=PageRasterizer(scale=settings.RENDER_SCALE),
        packager=BatchPackager(compression_level=settings.ZIP_COMPRESSION_LEVEL),
    )


@lru_cache()
def get_evaluation_service() -> EvaluationService:
    return EvaluationService(get_tables(), get_scorer)


@lru_cache()
def get_grade_service() -> GradeService:
    return GradeService(get_tables())


async def close_services():
    """Close HTTP clients of every provider that was created"""
    for provider in (get_scorer, get_llm_scorer, get_extractor, get_object_store, get_tables):
        if provider.cache_info().currsize:
            client = provider()
            if hasattr(client, "aclose"):
                await client.aclose()
            provider.cache_clear()


__all__ = [
    "DocumentService",
    "EvaluationService",
    "GradeService",
    "get_tables",
    "get_object_store",
    "get_extractor",
    "get_llm_scorer",
    "get_scorer",
    "get_document_service",
    "get_evaluation_service",
    "get_grade_service",
    "close_services",
]

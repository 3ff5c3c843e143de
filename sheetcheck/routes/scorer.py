"""
Scorer API routes
In-process paper evaluation endpoint
"""
from fastapi import APIRouter, Depends

from sheetcheck.pipeline import LLMPaperScorer
from sheetcheck.schemas import ScorerRequest
from sheetcheck.services import get_llm_scorer

router = APIRouter()


@router.post("/evaluate-paper")
async def evaluate_paper(
    request: ScorerRequest,
    scorer: LLMPaperScorer = Depends(get_llm_scorer)
):
    """
    Extract all three documents and grade the answer sheet.
    Errors are returned as {"success": false, "error": ...}.
    """
    return await scorer.score(request.model_dump(by_alias=True))

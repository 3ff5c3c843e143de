"""
Evaluation API routes
Handles paper evaluation and manual score edits
"""
from fastapi import APIRouter, Depends

from sheetcheck.core import Messages
from sheetcheck.schemas import (
    BatchEvaluationRequest,
    BatchEvaluationResponse,
    BatchOutcome,
    EvaluationRequest,
    EvaluationResponse,
    ScoreOverrideRequest,
    ScoreOverrideResponse,
)
from sheetcheck.services import EvaluationService, get_evaluation_service

router = APIRouter()


def _response(row, messages=None) -> EvaluationResponse:
    return EvaluationResponse(
        evaluation_id=row["id"],
        status=row["status"],
        evaluation_data=row.get("evaluation_data"),
        retry_count=row.get("retry_count") or 0,
        last_error=row.get("last_error"),
        messages=messages or [],
    )


@router.post("", response_model=EvaluationResponse)
async def evaluate_paper(
    request: EvaluationRequest,
    service: EvaluationService = Depends(get_evaluation_service)
):
    """
    Evaluate one student's answer sheet.
    Transient failures are retried automatically; retry notices are returned in ``messages``.
    """
    row, messages = await service.evaluate(request)
    return _response(row, messages)


@router.post("/batch", response_model=BatchEvaluationResponse)
async def evaluate_all(
    request: BatchEvaluationRequest,
    service: EvaluationService = Depends(get_evaluation_service)
):
    """Evaluate every listed student concurrently"""
    outcomes, messages = await service.evaluate_batch(request)
    succeeded = sum(1 for o in outcomes if o["success"])
    return BatchEvaluationResponse(
        total=len(outcomes),
        succeeded=succeeded,
        failed=len(outcomes) - succeeded,
        results=[BatchOutcome(**o) for o in outcomes],
        messages=messages,
    )


@router.get("/{test_id}/{student_id}", response_model=EvaluationResponse)
async def get_evaluation(
    test_id: str,
    student_id: str,
    service: EvaluationService = Depends(get_evaluation_service)
):
    row = await service.get_evaluation(test_id, student_id)
    return _response(row)


@router.patch("/{evaluation_id}/answers/{question_index}", response_model=ScoreOverrideResponse)
async def update_question_score(
    evaluation_id: str,
    question_index: int,
    request: ScoreOverrideRequest,
    service: EvaluationService = Depends(get_evaluation_service)
):
    """
    Set the awarded score of one question (zero-based index).
    Totals, percentage and the grade ledger are recomputed.
    """
    payload = await service.override_score(evaluation_id, question_index, request.score)
    return ScoreOverrideResponse(message=Messages.SCORE_UPDATED, evaluation_data=payload)

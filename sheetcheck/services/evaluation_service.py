"""
Evaluation Service
Handles single and batch paper evaluation and manual score edits
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from sheetcheck.config import settings
from sheetcheck.core import NotFoundException, Tables
from sheetcheck.pipeline import EvaluationJob, EvaluationOrchestrator, PaperScorer, ScoreReconciler
from sheetcheck.schemas import BatchEvaluationRequest, EvaluationRequest, StudentInfo
from sheetcheck.storage import TableService

logger = logging.getLogger(__name__)


def _student_info(info: StudentInfo) -> Dict[str, Any]:
    return info.model_dump(by_alias=True, exclude_none=True)


class EvaluationService:
    """Service for running evaluations against the configured scorer"""

    def __init__(
        self,
        tables: TableService,
        scorer_factory: Callable[[], PaperScorer],
        sleep=None
    ):
        self.tables = tables
        self.scorer_factory = scorer_factory
        self.reconciler = ScoreReconciler(tables)
        self._sleep = sleep
        self._orchestrator: Optional[EvaluationOrchestrator] = None

    @property
    def orchestrator(self) -> EvaluationOrchestrator:
        """Built on first use so reads and edits work without a scorer"""
        if self._orchestrator is None:
            kwargs = {}
            if self._sleep is not None:
                kwargs["sleep"] = self._sleep
            self._orchestrator = EvaluationOrchestrator(
                self.tables,
                self.scorer_factory(),
                reconciler=self.reconciler,
                max_retries=settings.MAX_RETRIES,
                base_delay=settings.RETRY_BASE_DELAY,
                stale_after=settings.STALE_EVALUATION_SECONDS,
                **kwargs
            )
        return self._orchestrator

    async def evaluate(self, request: EvaluationRequest) -> Tuple[Dict[str, Any], List[str]]:
        """Evaluate one student; returns the evaluation row and progress messages"""
        messages: List[str] = []
        job = EvaluationJob(
            test_id=request.test_id,
            student_id=request.student_id,
            subject_id=request.subject_id,
            question_paper_url=request.question_paper.url,
            question_paper_topic=request.question_paper.topic,
            answer_key_url=request.answer_key.url,
            answer_key_topic=request.answer_key.topic,
            student_info=_student_info(request.student_info),
        )
        row = await self.orchestrator.evaluate(job, notify=messages.append)
        return row, messages

    async def evaluate_batch(self, request: BatchEvaluationRequest) -> Tuple[List[Dict[str, Any]], List[str]]:
        messages: List[str] = []
        jobs = [
            EvaluationJob(
                test_id=request.test_id,
                student_id=student.student_id,
                subject_id=request.subject_id,
                question_paper_url=request.question_paper.url,
                question_paper_topic=request.question_paper.topic,
                answer_key_url=request.answer_key.url,
                answer_key_topic=request.answer_key.topic,
                student_info=_student_info(student.student_info),
            )
            for student in request.students
        ]
        logger.info(f"Evaluating {len(jobs)} students for test {request.test_id}")
        outcomes = await self.orchestrator.evaluate_many(
            jobs, concurrency=settings.BATCH_CONCURRENCY, notify=messages.append
        )
        return outcomes, messages

    async def get_evaluation(self, test_id: str, student_id: str) -> Dict[str, Any]:
        row = await self.tables.select_one(Tables.EVALUATIONS, {"test_id": test_id, "student_id": student_id})
        if not row:
            raise NotFoundException("Evaluation", f"{test_id}/{student_id}")
        return row

    async def override_score(self, evaluation_id: str, question_index: int, score: float) -> Dict[str, Any]:
        return await self.reconciler.override_question_score(evaluation_id, question_index, score)

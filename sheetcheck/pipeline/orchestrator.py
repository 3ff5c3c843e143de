"""
Evaluation Orchestrator
=======================
Drives one student's evaluation through

    NotStarted -> InProgress -> {Completed, Failed}

with bounded automatic retries for transient failures. Every transition is
written to the paper_evaluations row before the caller hears about it.

A new row is inserted with a conflict check on (test_id, student_id) and an
existing row is claimed with a compare-and-swap on its ``version`` column, so
two triggers for the same (test, student) cannot both hold it.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from sheetcheck.core import (
    BaseAPIException,
    ConcurrentEvaluationException,
    ConfigurationException,
    EvaluationFailedException,
    EvaluationStatus,
    InputMissingException,
    Messages,
    Tables,
)
from sheetcheck.core.logger import evaluation_logger as logger
from sheetcheck.storage import TableService
from sheetcheck.utils import add_cache_buster, parse_timestamp, utc_now

from .reconciler import ScoreReconciler
from .scorer import PaperScorer, is_retryable


Notifier = Callable[[str], Union[None, Awaitable[None]]]

EVALUATION_KEY = ("test_id", "student_id")


@dataclass
class EvaluationJob:
    """Everything needed to evaluate one student's paper"""
    test_id: str
    student_id: str
    subject_id: Optional[str] = None
    question_paper_url: Optional[str] = None
    question_paper_topic: Optional[str] = None
    answer_key_url: Optional[str] = None
    answer_key_topic: Optional[str] = None
    student_info: Dict[str, Any] = field(default_factory=dict)

    @property
    def student_name(self) -> str:
        return self.student_info.get("name") or self.student_id


class EvaluationOrchestrator:
    """
    Runs evaluations against a scorer and records their outcome.
    """

    def __init__(
        self,
        tables: TableService,
        scorer: PaperScorer,
        reconciler: Optional[ScoreReconciler] = None,
        max_retries: int = 2,
        base_delay: float = 5.0,
        stale_after: float = 900,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        notify: Optional[Notifier] = None
    ):
        self.tables = tables
        self.scorer = scorer
        self.reconciler = reconciler or ScoreReconciler(tables)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.stale_after = stale_after
        self.sleep = sleep
        self.notify = notify

    def retry_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based): 5s, 10s, ..."""
        return self.base_delay * 2 ** (attempt - 1)

    async def resolve_answer_sheet(self, job: EvaluationJob) -> Dict[str, Any]:
        filters = {"test_id": job.test_id, "student_id": job.student_id}
        if job.subject_id:
            filters["subject_id"] = job.subject_id
        record = await self.tables.select_one(Tables.ANSWERS, filters)
        if not record or not record.get("answer_sheet_url"):
            raise InputMissingException(Messages.NO_ANSWER_SHEET)
        return record

    def _is_stale(self, row: Dict[str, Any]) -> bool:
        updated = parse_timestamp(row.get("updated_at") or row.get("created_at"))
        if updated is None:
            return True
        age = (datetime.now(timezone.utc) - updated).total_seconds()
        return age > self.stale_after

    async def _write(self, row: Dict[str, Any], values: Dict[str, Any]) -> Dict[str, Any]:
        """Compare-and-swap update of a held evaluation row"""
        version = row.get("version") or 0
        updated = await self.tables.update(
            Tables.EVALUATIONS,
            {**values, "version": version + 1, "updated_at": utc_now()},
            {"id": row["id"], "version": row.get("version")},
        )
        if not updated:
            raise ConcurrentEvaluationException(row["test_id"], row["student_id"])
        return updated[0]

    async def claim(self, job: EvaluationJob) -> Dict[str, Any]:
        """
        Reuse the (test, student) evaluation row or create it, in_progress.

        Raises:
            ConcurrentEvaluationException: another flow holds a fresh in_progress row
        """
        existing = await self.tables.select_one(
            Tables.EVALUATIONS, {"test_id": job.test_id, "student_id": job.student_id}
        )
        if existing:
            if existing.get("status") == EvaluationStatus.IN_PROGRESS.value and not self._is_stale(existing):
                raise ConcurrentEvaluationException(job.test_id, job.student_id)
            logger.info(f"Reusing evaluation {existing['id']} for student {job.student_id}")
            return await self._write(existing, {
                "status": EvaluationStatus.IN_PROGRESS.value,
                "subject_id": job.subject_id or existing.get("subject_id"),
                "retry_count": 0,
                "last_error": None,
            })

        row = await self.tables.insert(Tables.EVALUATIONS, {
            "test_id": job.test_id,
            "student_id": job.student_id,
            "subject_id": job.subject_id,
            "status": EvaluationStatus.IN_PROGRESS.value,
            "evaluation_data": None,
            "retry_count": 0,
            "last_error": None,
            "version": 1,
            "updated_at": utc_now(),
        }, on_conflict=EVALUATION_KEY)
        if row is None:
            # Another trigger created the row between our read and insert
            raise ConcurrentEvaluationException(job.test_id, job.student_id)
        logger.info(f"Created evaluation {row['id']} for student {job.student_id}")
        return row

    def build_request(self, job: EvaluationJob, answer: Dict[str, Any], attempt: int) -> Dict[str, Any]:
        """Scorer request with a fresh cache buster on every document URL"""
        def fresh(url):
            return add_cache_buster(url) if url else url

        return {
            "questionPaper": {"url": fresh(job.question_paper_url), "topic": job.question_paper_topic},
            "answerKey": {"url": fresh(job.answer_key_url), "topic": job.answer_key_topic},
            "studentAnswer": {
                "url": fresh(answer["answer_sheet_url"]),
                "zip_url": fresh(answer.get("zip_url")),
            },
            "studentInfo": job.student_info,
            "testId": job.test_id,
            "retryAttempt": attempt,
        }

    async def _notify(self, notify: Optional[Notifier], message: str):
        callback = notify or self.notify
        logger.info(message)
        if callback is None:
            return
        result = callback(message)
        if inspect.isawaitable(result):
            await result

    async def _record_failure(self, row: Dict[str, Any], error: BaseException, retries: int):
        try:
            await self._write(row, {
                "status": EvaluationStatus.FAILED.value,
                "last_error": str(error),
                "retry_count": retries,
            })
        except BaseAPIException as e:
            logger.error(f"Could not record failure on evaluation {row['id']}: {e}")

    async def _transition(self, row: Dict[str, Any], values: Dict[str, Any], retries: int) -> Dict[str, Any]:
        """State write that records a failed outcome when the store rejects it"""
        try:
            return await self._write(row, values)
        except ConcurrentEvaluationException:
            raise
        except BaseAPIException as e:
            logger.error(f"Could not update evaluation {row['id']}: {e}")
            await self._record_failure(row, e, retries)
            raise

    async def _persist_secondary(self, job: EvaluationJob, answer: Dict[str, Any], payload: Dict[str, Any]):
        """Ledger and transcript writes; failures are logged, never raised"""
        try:
            await self.reconciler.apply_evaluation(job.test_id, job.student_id, payload)
        except BaseAPIException as e:
            logger.error(f"Ledger update failed for student {job.student_id} on test {job.test_id}: {e}")

        text = payload.get("text")
        if text:
            try:
                await self.tables.update(Tables.ANSWERS, {"text_content": text}, {"id": answer["id"]})
            except BaseAPIException as e:
                logger.error(f"Could not save transcript for student {job.student_id}: {e}")

    async def evaluate(self, job: EvaluationJob, notify: Optional[Notifier] = None) -> Dict[str, Any]:
        """
        Evaluate one student's paper.

        Args:
            job: Test, student and document references
            notify: Receives retry progress messages

        Returns:
            The completed evaluation row

        Raises:
            InputMissingException: no answer sheet; no row is created
            ConcurrentEvaluationException: row held by another flow
            ConfigurationException: scorer is not configured
            EvaluationFailedException: non-retryable failure or retries exhausted
        """
        answer = await self.resolve_answer_sheet(job)
        row = await self.claim(job)

        attempt = 0
        while True:
            try:
                payload = await self.scorer.score(self.build_request(job, answer, attempt))
                break
            except ConfigurationException as e:
                await self._record_failure(row, e, attempt)
                raise
            except Exception as e:
                error = e

            if is_retryable(error) and attempt < self.max_retries:
                attempt += 1
                delay = self.retry_delay(attempt)
                logger.warning(f"Attempt {attempt} for student {job.student_id} failed: {error}")
                row = await self._transition(row, {
                    "status": EvaluationStatus.IN_PROGRESS.value,
                    "retry_count": attempt,
                    "last_error": str(error),
                }, attempt)
                await self._notify(
                    notify,
                    f"Retrying evaluation for {job.student_name} in {delay:g}s "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                await self.sleep(delay)
                continue

            logger.error(f"Evaluation failed for student {job.student_id} after {attempt} retries: {error}")
            await self._record_failure(row, error, attempt)
            raise EvaluationFailedException(str(error), attempt)

        if not isinstance(payload, dict) or not isinstance(payload.get("answers"), list):
            error = EvaluationFailedException(Messages.INVALID_EVALUATION_DATA, attempt)
            await self._record_failure(row, error, attempt)
            raise error

        row = await self._transition(row, {
            "status": EvaluationStatus.COMPLETED.value,
            "evaluation_data": payload,
            "retry_count": 0,
            "last_error": None,
        }, attempt)
        logger.info(f"Evaluation {row['id']} completed for student {job.student_id}")

        await self._persist_secondary(job, answer, payload)
        return row

    async def evaluate_many(
        self,
        jobs: Sequence[EvaluationJob],
        concurrency: int = 4,
        notify: Optional[Notifier] = None
    ) -> List[Dict[str, Any]]:
        """
        Evaluate several students concurrently.

        Returns:
            One outcome per job, in input order
        """
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def run(job: EvaluationJob) -> Dict[str, Any]:
            async with semaphore:
                try:
                    row = await self.evaluate(job, notify=notify)
                except BaseAPIException as e:
                    return {
                        "student_id": job.student_id,
                        "success": False,
                        "error": str(e),
                        "error_code": e.error_code,
                    }
                except Exception as e:
                    logger.error(f"Unexpected error evaluating student {job.student_id}: {e}", exc_info=True)
                    return {
                        "student_id": job.student_id,
                        "success": False,
                        "error": str(e),
                        "error_code": "INTERNAL_ERROR",
                    }
                return {
                    "student_id": job.student_id,
                    "success": True,
                    "evaluation_id": row["id"],
                    "summary": (row.get("evaluation_data") or {}).get("summary"),
                }

        outcomes = await asyncio.gather(*(run(job) for job in jobs))
        succeeded = sum(1 for o in outcomes if o["success"])
        logger.info(f"Batch evaluation finished: {succeeded}/{len(outcomes)} succeeded")
        return list(outcomes)

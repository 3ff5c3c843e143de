"""
Score Reconciler
================
Keeps the grade ledger (test_grades) in step with evaluation summaries.

The ledger total for a (test, student) must equal the awarded total in
the evaluation summary after every write. Both auto-scoring and manual
per-question overrides go through this module; ``repair_ledger`` fixes
entries left behind by a failed best-effort write.
"""

import copy
from typing import Any, Dict, Optional

from sheetcheck.core import (
    BadRequestException,
    ConcurrentEvaluationException,
    EvaluationStatus,
    Messages,
    NotFoundException,
    Tables,
)
from sheetcheck.core.logger import evaluation_logger as logger
from sheetcheck.storage import TableService
from sheetcheck.utils import calculate_percentage, clamp, to_number, utc_now


def total_score(payload: Optional[Dict[str, Any]]):
    """``summary.totalScore`` as an (awarded, possible) pair, or None"""
    summary = (payload or {}).get("summary") or {}
    pair = summary.get("totalScore")
    if not isinstance(pair, (list, tuple)) or len(pair) != 2:
        return None
    try:
        return to_number(pair[0]), to_number(pair[1])
    except (TypeError, ValueError):
        return None


class ScoreReconciler:
    """Derives ledger entries from evaluation payloads"""

    def __init__(self, tables: TableService):
        self.tables = tables

    async def _max_marks(self, test_id: str) -> Optional[float]:
        test = await self.tables.select_one(Tables.TESTS, {"id": test_id})
        if not test or test.get("max_marks") is None:
            return None
        try:
            return to_number(test["max_marks"])
        except (TypeError, ValueError):
            return None

    async def _ledger_marks(self, test_id: str, awarded) -> float:
        max_marks = await self._max_marks(test_id)
        if max_marks is None:
            return max(awarded, 0)
        marks = to_number(clamp(awarded, 0, max_marks))
        if marks != awarded:
            logger.warning(f"Marks {awarded} for test {test_id} clamped to {marks} (max {max_marks})")
        return marks

    async def write_ledger(self, test_id: str, student_id: str, awarded, possible, remark: str) -> Dict[str, Any]:
        marks = await self._ledger_marks(test_id, awarded)
        entry = await self.tables.upsert(
            Tables.GRADES,
            {
                "marks": marks,
                "remarks": remark.format(awarded=awarded, possible=possible),
                "updated_at": utc_now(),
            },
            {"test_id": test_id, "student_id": student_id},
        )
        logger.info(f"Ledger for student {student_id} on test {test_id} set to {marks}")
        return entry

    async def apply_evaluation(
        self,
        test_id: str,
        student_id: str,
        payload: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Upsert the ledger from an auto-scored payload.

        Returns:
            The ledger entry, or None when the payload has no total score
        """
        pair = total_score(payload)
        if pair is None:
            logger.info(f"No total score for student {student_id} on test {test_id}; ledger unchanged")
            return None
        awarded, possible = pair
        return await self.write_ledger(test_id, student_id, awarded, possible, Messages.AUTO_REMARK)

    async def override_question_score(
        self,
        evaluation_id: str,
        question_index: int,
        new_score
    ) -> Dict[str, Any]:
        """
        Apply a grader's score for one question and recompute the totals.

        Args:
            evaluation_id: Evaluation row id
            question_index: Zero-based index into ``answers``
            new_score: Awarded score; clamped into [0, question maximum]

        Returns:
            The updated evaluation payload
        """
        evaluation = await self.tables.select_one(Tables.EVALUATIONS, {"id": evaluation_id})
        if not evaluation:
            raise NotFoundException("Evaluation", evaluation_id)

        payload = copy.deepcopy(evaluation.get("evaluation_data") or {})
        answers = payload.get("answers")
        if not isinstance(answers, list) or not answers:
            raise BadRequestException(Messages.INVALID_EVALUATION_DATA)
        if not 0 <= question_index < len(answers):
            raise BadRequestException(f"Question index {question_index} is out of range")

        try:
            score = to_number(new_score)
            for answer in answers:
                answer["score"] = [to_number(answer["score"][0]), to_number(answer["score"][1])]
        except (KeyError, IndexError, TypeError, ValueError):
            raise BadRequestException(Messages.INVALID_SCORE_FORMAT)

        possible = answers[question_index]["score"][1]
        answers[question_index]["score"][0] = to_number(clamp(score, 0, possible))

        awarded_total = to_number(sum(a["score"][0] for a in answers))
        possible_total = to_number(sum(a["score"][1] for a in answers))
        payload["summary"] = {
            **(payload.get("summary") or {}),
            "totalScore": [awarded_total, possible_total],
            "percentage": calculate_percentage(awarded_total, possible_total),
        }

        version = evaluation.get("version") or 0
        updated = await self.tables.update(
            Tables.EVALUATIONS,
            {"evaluation_data": payload, "version": version + 1, "updated_at": utc_now()},
            {"id": evaluation_id, "version": evaluation.get("version")},
        )
        if not updated:
            raise ConcurrentEvaluationException(evaluation["test_id"], evaluation["student_id"])

        await self.write_ledger(
            evaluation["test_id"],
            evaluation["student_id"],
            awarded_total,
            possible_total,
            Messages.MANUAL_REMARK,
        )
        logger.info(
            f"Question {question_index + 1} of evaluation {evaluation_id} set to "
            f"{answers[question_index]['score'][0]}; total {awarded_total}/{possible_total}"
        )
        return payload

    async def repair_ledger(self, test_id: Optional[str] = None) -> Dict[str, int]:
        """
        Rewrite ledger entries that disagree with completed evaluations.

        Returns:
            Counts of checked, repaired and skipped (no summary) evaluations
        """
        filters = {"status": EvaluationStatus.COMPLETED.value}
        if test_id:
            filters["test_id"] = test_id

        report = {"checked": 0, "repaired": 0, "skipped": 0}
        for evaluation in await self.tables.select(Tables.EVALUATIONS, filters):
            pair = total_score(evaluation.get("evaluation_data"))
            if pair is None:
                report["skipped"] += 1
                continue
            report["checked"] += 1

            awarded, possible = pair
            expected = await self._ledger_marks(evaluation["test_id"], awarded)
            entry = await self.tables.select_one(
                Tables.GRADES,
                {"test_id": evaluation["test_id"], "student_id": evaluation["student_id"]},
            )
            current = None
            if entry and entry.get("marks") is not None:
                try:
                    current = to_number(entry["marks"])
                except (TypeError, ValueError):
                    current = None
            if current == expected:
                continue

            logger.warning(
                f"Ledger mismatch for student {evaluation['student_id']} on test "
                f"{evaluation['test_id']}: {current} != {expected}"
            )
            await self.write_ledger(
                evaluation["test_id"], evaluation["student_id"], awarded, possible, Messages.AUTO_REMARK
            )
            report["repaired"] += 1

        logger.info(f"Ledger reconciliation finished: {report}")
        return report

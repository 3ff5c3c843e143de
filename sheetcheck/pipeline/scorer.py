"""
Paper Scorer
============
Grades one student's answer sheet against a question paper and answer key.

Request shape (camelCase, shared by both implementations):
    {questionPaper: {url, topic}, answerKey: {url, topic},
     studentAnswer: {url, zip_url}, studentInfo, testId, retryAttempt}

Response payload:
    {answers: [{score: [awarded, possible], ...}],
     summary: {totalScore: [awarded, possible], percentage}, text?}
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import httpx
from langchain_core.messages import HumanMessage, SystemMessage

from sheetcheck.core import (
    DocumentRole,
    Messages,
    RETRYABLE_ERROR_MARKERS,
    ScorerException,
    TransientTransportException,
)
from sheetcheck.utils import calculate_percentage, strip_query, to_number, utc_now

from .llm_providers import BaseLLM
from .prompts import evaluation_system_prompt, evaluation_user_prompt
from .text_cache import DocumentTextCache
from .vision import VisionExtractor

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def is_retryable(error: BaseException) -> bool:
    """Transient transport failures and scorer messages that carry their markers"""
    if isinstance(error, TransientTransportException):
        return True
    message = str(error)
    return any(marker in message for marker in RETRYABLE_ERROR_MARKERS)


def summarize_answers(answers: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Total awarded/possible over every answer plus the rounded percentage"""
    awarded = sum(to_number(a["score"][0]) for a in answers)
    possible = sum(to_number(a["score"][1]) for a in answers)
    return {
        "totalScore": [to_number(awarded), to_number(possible)],
        "percentage": calculate_percentage(awarded, possible),
    }


def parse_evaluation(content: str) -> Dict[str, Any]:
    """
    Parse and validate a model's evaluation JSON.

    Raises:
        ScorerException: content is not an evaluation object
    """
    cleaned = _FENCE_RE.sub("", content.strip())
    try:
        evaluation = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Error parsing evaluation response: {e}")
        raise ScorerException("Failed to parse evaluation response")

    answers = evaluation.get("answers") if isinstance(evaluation, dict) else None
    if not isinstance(answers, list):
        raise ScorerException("Invalid evaluation structure")

    for answer in answers:
        score = answer.get("score") if isinstance(answer, dict) else None
        if not isinstance(score, (list, tuple)) or len(score) != 2:
            raise ScorerException(f"Invalid evaluation structure: bad score {score!r}")
        try:
            answer["score"] = [to_number(score[0]), to_number(score[1])]
        except (TypeError, ValueError):
            raise ScorerException(f"Invalid evaluation structure: bad score {score!r}")
    return evaluation


class PaperScorer(ABC):
    """Scores a paper given the scorer request"""

    @abstractmethod
    async def score(self, request: Dict[str, Any]) -> Dict[str, Any]:
        pass

    async def aclose(self):
        pass


class HttpPaperScorer(PaperScorer):
    """
    Client for an external paper-evaluation endpoint.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 300.0,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.url = url
        self.timeout = timeout
        self.api_key = api_key
        self._client = client
        logger.info(f"HttpPaperScorer initialized: url={url}")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def score(self, request: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = await self.client.post(self.url, json=request, headers=headers, timeout=self.timeout)
        except httpx.TimeoutException:
            raise TransientTransportException(f"Timeout while waiting for scorer after {self.timeout}s")
        except httpx.HTTPError as e:
            raise TransientTransportException(f"Failed to reach scorer: {e}")

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            message = None
            if isinstance(body, dict):
                message = body.get("error") or body.get("message")
            message = message or response.text or f"HTTP {response.status_code}"
            logger.error(f"Scorer returned {response.status_code}: {message}")
            raise ScorerException(str(message))

        if not isinstance(body, dict) or not isinstance(body.get("answers"), list):
            raise ScorerException(Messages.INVALID_EVALUATION_DATA)
        return body

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()


class LLMPaperScorer(PaperScorer):
    """
    In-process scorer: vision extraction for the three documents followed
    by a JSON-mode chat model.

    Question paper and answer key texts are cached on their document assets,
    so repeated evaluations of one test extract them once.
    """

    def __init__(self, extractor: VisionExtractor, text_cache: DocumentTextCache, llm: BaseLLM):
        self.extractor = extractor
        self.text_cache = text_cache
        self.llm = llm

    async def _reference_text(self, document: Optional[Dict[str, Any]], role: DocumentRole) -> Optional[str]:
        url = (document or {}).get("url")
        if not url:
            return None

        cached = await self.text_cache.get_text(url)
        if cached:
            return cached

        zip_url = await self.text_cache.archive_for(url)
        result = await self.extractor.extract(url, role, zip_url=zip_url)
        if result.needs_conversion:
            logger.warning(f"{role.value} at {strip_query(url)} has no page archive; scoring without it")
            return None

        await self.text_cache.put_text(url, result.text)
        return result.text

    async def extract_texts(self, request: Dict[str, Any]) -> Tuple[Optional[str], Optional[str], str]:
        question_paper = await self._reference_text(request.get("questionPaper"), DocumentRole.QUESTION_PAPER)
        answer_key = await self._reference_text(request.get("answerKey"), DocumentRole.ANSWER_KEY)

        student = request.get("studentAnswer") or {}
        if not student.get("url"):
            raise ScorerException(Messages.NO_ANSWER_SHEET)
        result = await self.extractor.extract(student["url"], DocumentRole.ANSWER_SHEET, zip_url=student.get("zip_url"))
        if result.needs_conversion:
            raise ScorerException(Messages.NEEDS_CONVERSION)
        return question_paper, answer_key, result.text

    async def score(self, request: Dict[str, Any]) -> Dict[str, Any]:
        test_id = request.get("testId")
        attempt = request.get("retryAttempt") or 0
        logger.info(f"Starting evaluation for test {test_id} (attempt {attempt})")

        question_paper_text, answer_key_text, student_text = await self.extract_texts(request)

        messages = [
            SystemMessage(content=evaluation_system_prompt(test_id)),
            HumanMessage(content=evaluation_user_prompt(
                {"topic": (request.get("questionPaper") or {}).get("topic"), "text": question_paper_text},
                {"topic": (request.get("answerKey") or {}).get("topic"), "text": answer_key_text},
                student_text,
                request.get("studentInfo") or {},
            )),
        ]
        response = await self.llm.ainvoke(messages, json_mode=True)
        evaluation = parse_evaluation(response.content)

        evaluation["summary"] = summarize_answers(evaluation["answers"])
        evaluation["text"] = student_text
        evaluation["question_paper_text"] = question_paper_text
        evaluation["answer_key_text"] = answer_key_text
        evaluation["metadata"] = {
            "test_id": test_id,
            "evaluation_timestamp": utc_now(),
            "answer_sheet_url": strip_query((request.get("studentAnswer") or {}).get("url", "")),
            "retry_attempt": attempt,
            "model": self.llm.model,
        }
        logger.info(
            f"Evaluation complete for test {test_id}: "
            f"{evaluation['summary']['totalScore'][0]}/{evaluation['summary']['totalScore'][1]}"
        )
        return evaluation

    async def aclose(self):
        await self.extractor.aclose()

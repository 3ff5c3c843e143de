"""
Prompt templates for text extraction and paper evaluation.
"""
import json
from typing import Any, Dict

from sheetcheck.core import DocumentRole


QUESTION_PAPER_PROMPT = """You are an OCR expert specialized in extracting text from question papers.

For each question in the document:
1. Identify the question number clearly.
2. Extract the complete question text along with any subparts.
3. Format each question on a new line starting with "Q<number>:" followed by the question.
4. Preserve the structure of mathematical equations, diagram descriptions, and any special formatting.
5. Include all instructions, marks allocations, and other relevant information.

Your response should be structured, accurate, and preserve the original content's organization."""

ANSWER_KEY_PROMPT = """You are an OCR expert specialized in extracting text from answer keys.

For each answer in the document:
1. Identify the question number clearly.
2. Extract the complete answer text along with any marking guidelines.
3. Format each answer on a new line starting with "Q<number>:" followed by the answer.
4. Preserve the structure of mathematical equations, diagrams, and any special formatting.
5. Include all marking schemes, points allocation, and other evaluation criteria.

Your response should be structured, accurate, and preserve the original content's organization."""

ANSWER_SHEET_PROMPT = """You are an OCR expert specialized in extracting text from handwritten answer sheets and documents.

For each question in the document:
1. Identify the question number clearly.
2. Extract the complete answer text.
3. Format each answer on a new line starting with "Q<number>:" followed by the answer.
4. If the handwriting is difficult to read, make your best effort and indicate uncertainty with [?].
5. Maintain the structure of mathematical equations, diagram descriptions, and any special formatting.
6. If you identify multiple pages, process each and maintain continuity between questions.

Your response should be structured, accurate, and preserve the original content's organization."""

SYSTEM_PROMPTS: Dict[DocumentRole, str] = {
    DocumentRole.QUESTION_PAPER: QUESTION_PAPER_PROMPT,
    DocumentRole.ANSWER_KEY: ANSWER_KEY_PROMPT,
    DocumentRole.ANSWER_SHEET: ANSWER_SHEET_PROMPT,
}

SINGLE_PAGE_INSTRUCTION = (
    "Extract all the text from this document, focusing on identifying "
    "question numbers and their corresponding content:"
)

BATCH_INSTRUCTION = (
    "Extract all the text from these {count} pages, focusing on identifying "
    "question numbers and their corresponding content:"
)

PARTIAL_NOTE = "\n\n[Note: Only partial document processing was completed due to technical limitations]"


def system_prompt_for(role: DocumentRole) -> str:
    """Extraction system prompt for a document role"""
    return SYSTEM_PROMPTS[DocumentRole(role)]


def evaluation_system_prompt(test_id: str) -> str:
    return f"""You are an AI evaluator responsible for grading a student's answer sheet for test ID: {test_id}.
The user will provide you with the question paper, answer key, and the student's answer sheet.
Follow these steps:

1. Analyze the question paper text to understand the questions and their marks allocation.
2. Analyze the answer key text to understand the correct answers and valuation criteria.
3. Extract questions and answers from the student's submission, matching questions by number where possible.
4. For each question:
   - Identify the question number
   - Compare the student's answer with the answer key
   - Assign appropriate marks based on correctness and completeness
   - Provide brief remarks explaining the score

5. Be generous in your assessment but objective. Award 0 marks for completely incorrect or unattempted answers.
6. Ensure you only evaluate answers for THIS specific test (ID: {test_id}).

Your evaluation must be returned in a structured JSON format."""


def evaluation_user_prompt(
    question_paper: Dict[str, Any],
    answer_key: Dict[str, Any],
    student_text: str,
    student_info: Dict[str, Any]
) -> str:
    """Build the grading request from extracted texts"""
    info = student_info or {}
    return f"""Evaluate this student's answer sheet against the provided question paper and answer key.

STUDENT INFORMATION:
{json.dumps(info, indent=2, ensure_ascii=False)}

QUESTION PAPER (topic: {question_paper.get('topic') or 'n/a'}):
{question_paper.get('text') or 'No question paper provided'}

ANSWER KEY (topic: {answer_key.get('topic') or 'n/a'}):
{answer_key.get('text') or 'No answer key provided (use your judgment to evaluate)'}

STUDENT'S ANSWER SHEET:
{student_text or 'No student answer provided'}

Format your evaluation as a JSON object with this structure:
{{
  "student_name": "{info.get('name', 'Unknown')}",
  "roll_no": "{info.get('roll_number', 'Unknown')}",
  "class": "{info.get('class', 'Unknown')}",
  "subject": "{info.get('subject', 'Unknown')}",
  "answers": [
    {{
      "question_no": "1",
      "question": "The question text from paper",
      "answer": "Student's answer for this question",
      "expected_answer": "The expected answer from the answer key",
      "score": [5, 10],
      "remarks": "Detailed feedback on the answer",
      "confidence": 0.9
    }}
  ]
}}

"score" is [assigned score, maximum score]. Return ONLY the JSON object without any additional text or markdown formatting."""

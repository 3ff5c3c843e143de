"""
Vision Extractor
================
Turns document images into text with a vision-capable chat model.

Transport contract (OpenAI-compatible chat completions):
    POST {base_url}/chat/completions
    {model, messages: [system, user(text + image parts)], temperature, max_tokens}
    -> {choices: [{message: {content}}]}

Single images are sent by URL with a 60s upper bound; archives are
downloaded, unpacked and sent as data URLs without a caller-side timeout.
PDFs are never sent directly: without a page archive the extractor returns
the NEEDS_CONVERSION signal.
"""

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from sheetcheck.core import (
    AIModelException,
    ConfigurationException,
    DocumentRole,
    FileProcessingException,
    FileType,
    TransientTransportException,
)
from sheetcheck.core.logger import pipeline_logger as logger
from sheetcheck.storage import ObjectStoreGateway
from sheetcheck.utils import detect_file_type, strip_query

from .packager import ArchiveError, BatchPackager
from .pages import PageImage
from .prompts import BATCH_INSTRUCTION, PARTIAL_NOTE, SINGLE_PAGE_INSTRUCTION, system_prompt_for


class ExtractionStatus(str, Enum):
    EXTRACTED = "extracted"
    NEEDS_CONVERSION = "needs_conversion"


@dataclass
class ExtractionResult:
    """Outcome of a text extraction request"""
    status: ExtractionStatus
    text: str = ""
    page_count: int = 0
    partial: bool = False

    @property
    def needs_conversion(self) -> bool:
        return self.status == ExtractionStatus.NEEDS_CONVERSION


NEEDS_CONVERSION = ExtractionResult(status=ExtractionStatus.NEEDS_CONVERSION)


class VisionExtractor:
    """
    Sends page images to the vision endpoint with a role-specific prompt.
    """

    def __init__(
        self,
        object_store: ObjectStoreGateway,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        temperature: float = 0.2,
        max_tokens: int = 4000,
        timeout: float = 60.0,
        max_images: int = 20,
        fallback_batch_size: int = 5,
        packager: Optional[BatchPackager] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.object_store = object_store
        self.api_key = api_key
        self.endpoint = f"{base_url.rstrip('/')}/chat/completions"
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.max_images = max_images
        self.fallback_batch_size = fallback_batch_size
        self.packager = packager or BatchPackager()
        self._client = client
        logger.info(f"VisionExtractor initialized: model={model}, endpoint={self.endpoint}")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def extract(
        self,
        url: str,
        role: DocumentRole,
        zip_url: Optional[str] = None
    ) -> ExtractionResult:
        """
        Extract text from a stored document.

        Args:
            url: Document URL (image, archive or PDF)
            role: Which kind of document this is
            zip_url: Companion page archive, if one was built

        Returns:
            ExtractionResult; NEEDS_CONVERSION for a PDF without archive
        """
        role = DocumentRole(role)
        if zip_url:
            return await self.extract_from_archive(zip_url, role)

        file_type = detect_file_type(url)
        if file_type == FileType.PDF.value:
            logger.warning(f"PDF without page archive cannot be extracted: {strip_query(url)}")
            return NEEDS_CONVERSION
        if file_type == FileType.ZIP.value:
            return await self.extract_from_archive(url, role)

        text = await self.extract_from_url(url, role)
        return ExtractionResult(status=ExtractionStatus.EXTRACTED, text=text, page_count=1)

    async def extract_from_url(
        self,
        image_url: str,
        role: DocumentRole,
        user_prompt: Optional[str] = None
    ) -> str:
        """OCR a single image by URL"""
        content = [
            {"type": "text", "text": user_prompt or SINGLE_PAGE_INSTRUCTION},
            {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
        ]
        logger.info(f"Extracting {DocumentRole(role).value} text from {strip_query(image_url)}")
        return await self._complete(self.build_messages(role, content), timeout=self.timeout)

    async def extract_from_archive(self, zip_url: str, role: DocumentRole) -> ExtractionResult:
        """OCR every page of a page-image archive in one request"""
        archive = await self.object_store.get(zip_url)
        try:
            pages = self.packager.unpack(archive)
        except ArchiveError as e:
            raise FileProcessingException(strip_query(zip_url).rsplit("/", 1)[-1], str(e))

        if len(pages) > self.max_images:
            logger.warning(f"Archive has {len(pages)} pages, sending the first {self.max_images}")
            pages = pages[:self.max_images]

        try:
            text = await self._extract_pages(pages, role)
            return ExtractionResult(ExtractionStatus.EXTRACTED, text=text, page_count=len(pages))
        except TransientTransportException as e:
            if len(pages) <= self.fallback_batch_size:
                raise
            logger.warning(f"Batch extraction failed ({e}); retrying with {self.fallback_batch_size} pages")

        reduced = pages[:self.fallback_batch_size]
        text = await self._extract_pages(reduced, role)
        return ExtractionResult(
            ExtractionStatus.EXTRACTED,
            text=text + PARTIAL_NOTE,
            page_count=len(reduced),
            partial=True
        )

    async def _extract_pages(self, pages: List[PageImage], role: DocumentRole) -> str:
        content: List[Dict[str, Any]] = [
            {"type": "text", "text": BATCH_INSTRUCTION.format(count=len(pages))}
        ]
        for page in pages:
            encoded = base64.b64encode(page.data).decode("ascii")
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{page.mime_type};base64,{encoded}", "detail": "high"},
            })
        logger.info(f"Extracting {DocumentRole(role).value} text from {len(pages)} pages")
        # Archive requests rely on the upstream service's own limits
        return await self._complete(self.build_messages(role, content), timeout=None)

    def build_messages(self, role: DocumentRole, user_content: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            {"role": "system", "content": system_prompt_for(role)},
            {"role": "user", "content": user_content},
        ]

    async def _complete(self, messages: List[Dict[str, Any]], timeout: Optional[float]) -> str:
        if not self.api_key:
            raise ConfigurationException("OPENAI_API_KEY")

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        try:
            response = await self.client.post(self.endpoint, json=payload, headers=headers, timeout=timeout)
        except httpx.TimeoutException:
            raise TransientTransportException(f"OCR extraction failed: request timed out after {timeout}s")
        except httpx.HTTPError as e:
            raise TransientTransportException(f"OCR extraction failed: {e}")

        if response.status_code in (401, 403):
            raise AIModelException(self.model, _error_message(response))
        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(f"Vision endpoint returned {response.status_code}: {message}")
            raise TransientTransportException(f"OCR extraction failed: {message}")

        try:
            text = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise TransientTransportException("OCR extraction failed: malformed response")

        if not text or not text.strip():
            raise TransientTransportException("OCR extraction failed: empty response")

        logger.info(f"OCR extraction successful, extracted text length: {len(text)}")
        return text.strip()

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()


def _error_message(response: httpx.Response) -> str:
    """Pull ``error.message`` out of a JSON error body"""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or f"HTTP {response.status_code}"
    if isinstance(error, str):
        return error
    return f"HTTP {response.status_code}"

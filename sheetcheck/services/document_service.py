"""
Document Service
Handles question paper, answer key and answer sheet uploads
"""
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from sheetcheck.core import (
    BadRequestException,
    ConfigurationException,
    DocumentRole,
    EvaluationStatus,
    FileLimits,
    FileType,
    Messages,
    Tables,
)
from sheetcheck.core.logger import pipeline_logger as logger
from sheetcheck.pipeline import (
    BatchPackager,
    DocumentTextCache,
    ExtractionResult,
    ExtractionStatus,
    PageRasterizer,
    RasterizationError,
    VisionExtractor,
)
from sheetcheck.storage import ObjectStoreGateway, TableService
from sheetcheck.utils import (
    detect_file_type,
    format_file_size,
    generate_timestamp_id,
    safe_filename,
    utc_now,
)


CONTENT_TYPES = {
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
}


class DocumentService:
    """Stores uploaded documents and their page-image archives"""

    def __init__(
        self,
        tables: TableService,
        object_store: ObjectStoreGateway,
        extractor: Optional[VisionExtractor] = None,
        rasterizer: Optional[PageRasterizer] = None,
        packager: Optional[BatchPackager] = None
    ):
        self.tables = tables
        self.object_store = object_store
        self.extractor = extractor
        self.rasterizer = rasterizer or PageRasterizer()
        self.packager = packager or BatchPackager()
        self.text_cache = DocumentTextCache(tables)

    def _validate(self, role: DocumentRole, filename: str, content: bytes, student_id: Optional[str]) -> str:
        if role == DocumentRole.ANSWER_SHEET and not student_id:
            raise BadRequestException("student_id is required for answer sheets")
        if not filename:
            raise BadRequestException("Filename is required")
        if not content:
            raise BadRequestException(f"File '{filename}' is empty")

        file_type = detect_file_type(filename)
        if file_type == FileType.PDF.value:
            limit = FileLimits.MAX_PDF_SIZE
        elif file_type == FileType.IMAGE.value:
            limit = FileLimits.MAX_IMAGE_SIZE
        else:
            raise BadRequestException(Messages.INVALID_FILE_TYPE)

        if len(content) > limit:
            raise BadRequestException(
                f"File '{filename}' is too large ({format_file_size(len(content))}, "
                f"limit {format_file_size(limit)})"
            )
        return file_type

    async def _build_archive(self, file_type: str, content: bytes, base_name: str):
        """Rasterize and package; None when the document cannot be converted"""
        try:
            if file_type == FileType.PDF.value:
                pages = await run_in_threadpool(self.rasterizer.rasterize, content)
            else:
                pages = [await run_in_threadpool(self.rasterizer.normalize_image, content)]
        except RasterizationError as e:
            logger.warning(f"Conversion failed for {base_name}: {e}")
            return None
        return self.packager.package(pages, base_name)

    async def _reset_evaluation(self, test_id: str, student_id: str):
        """Return the evaluation to pending and zero the ledger entry"""
        evaluations = await self.tables.select(Tables.EVALUATIONS, {"test_id": test_id, "student_id": student_id})
        for evaluation in evaluations:
            # Version bump makes any in-flight run lose its next compare-and-swap
            await self.tables.update(
                Tables.EVALUATIONS,
                {
                    "status": EvaluationStatus.PENDING.value,
                    "evaluation_data": None,
                    "retry_count": 0,
                    "last_error": None,
                    "version": (evaluation.get("version") or 0) + 1,
                    "updated_at": utc_now(),
                },
                {"id": evaluation["id"]},
            )
        grade = await self.tables.select_one(Tables.GRADES, {"test_id": test_id, "student_id": student_id})
        if grade:
            await self.tables.update(
                Tables.GRADES,
                {"marks": 0, "remarks": Messages.RESET_REMARK, "updated_at": utc_now()},
                {"id": grade["id"]},
            )
        if evaluations or grade:
            logger.info(f"Reset evaluation for student {student_id} on test {test_id}")

    async def upload_document(
        self,
        role: DocumentRole,
        test_id: str,
        subject_id: Optional[str],
        filename: str,
        content: bytes,
        student_id: Optional[str] = None,
        topic: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Store a document, build its page archive and supersede any previous
        upload for the same test, subject, role (and student).

        Returns:
            Upload summary including ``needs_manual_text`` when a PDF could
            not be converted to images
        """
        try:
            role = DocumentRole(role)
        except ValueError:
            raise BadRequestException(f"Unknown document role: {role}")
        file_type = self._validate(role, filename, content, student_id)

        owner = student_id if role == DocumentRole.ANSWER_SHEET else (subject_id or "shared")
        stored_name = f"{generate_timestamp_id()}_{safe_filename(filename)}"
        folder = f"{role.value}/{test_id}/{owner}"
        storage_path = f"{folder}/{stored_name}"

        extension = stored_name.rsplit(".", 1)[-1].lower()
        url = self.object_store.public_url(storage_path, fresh=False)
        await self.object_store.put(storage_path, content, CONTENT_TYPES.get(extension, "application/octet-stream"))
        logger.info(f"Stored {role.value} {filename} ({format_file_size(len(content))}) at {storage_path}")

        archive = await self._build_archive(file_type, content, Path(stored_name).stem)
        zip_url = None
        archive_path = None
        if archive is not None:
            archive_path = f"{folder}/{archive.name}"
            await self.object_store.put(archive_path, archive.data, "application/zip")
            zip_url = self.object_store.public_url(archive_path, fresh=False)

        keys = {"test_id": test_id, "subject_id": subject_id, "role": role.value}
        if role == DocumentRole.ANSWER_SHEET:
            keys["student_id"] = student_id

        values = {
            "storage_path": storage_path,
            "url": url,
            "zip_url": zip_url,
            "text_content": None,
            "topic": topic,
            "file_name": filename,
            "updated_at": utc_now(),
        }
        previous = await self.tables.select_one(Tables.DOCUMENTS, keys)
        if previous:
            asset = (await self.tables.update(Tables.DOCUMENTS, values, {"id": previous["id"]}))[0]
            stale = [previous.get("storage_path")]
            if previous.get("zip_url"):
                stale.append(self.object_store.path_from_url(previous["zip_url"]))
            stale = [p for p in stale if p and p not in (storage_path, archive_path)]
            if stale:
                await self.object_store.delete(stale)
                logger.info(f"Superseded {role.value} {previous['id']}, removed {len(stale)} objects")
        else:
            asset = await self.tables.insert(Tables.DOCUMENTS, {**keys, **values})

        if role == DocumentRole.ANSWER_SHEET:
            await self._reset_evaluation(test_id, student_id)
            await self.tables.upsert(
                Tables.ANSWERS,
                {"answer_sheet_url": url, "zip_url": zip_url, "text_content": None, "updated_at": utc_now()},
                {"test_id": test_id, "student_id": student_id, "subject_id": subject_id},
            )

        return {
            "document_id": asset["id"],
            "role": role.value,
            "url": url,
            "zip_url": zip_url,
            "page_count": archive.page_count if archive else 0,
            "needs_manual_text": archive is None,
        }

    async def list_documents(self, test_id: str, role: Optional[str] = None) -> List[Dict[str, Any]]:
        filters = {"test_id": test_id}
        if role:
            filters["role"] = DocumentRole(role).value
        return await self.tables.select(Tables.DOCUMENTS, filters)

    async def extract_document_text(
        self,
        url: str,
        role: DocumentRole,
        zip_url: Optional[str] = None
    ) -> ExtractionResult:
        """Extract (or reuse cached) text for a stored document"""
        if self.extractor is None:
            raise ConfigurationException("vision extractor")
        try:
            role = DocumentRole(role)
        except ValueError:
            raise BadRequestException(f"Unknown document role: {role}")

        cached = await self.text_cache.get_text(url)
        if cached:
            return ExtractionResult(status=ExtractionStatus.EXTRACTED, text=cached)

        zip_url = zip_url or await self.text_cache.archive_for(url)
        result = await self.extractor.extract(url, role, zip_url=zip_url)
        if not result.needs_conversion:
            await self.text_cache.put_text(url, result.text)
        return result

"""
Document API routes
Handles question paper, answer key and answer sheet uploads and text extraction
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from sheetcheck.core import Messages
from sheetcheck.schemas import (
    DocumentListResponse,
    DocumentUploadResponse,
    ExtractTextRequest,
    ExtractTextResponse,
)
from sheetcheck.services import DocumentService, get_document_service

router = APIRouter()


@router.post("/documents", response_model=DocumentUploadResponse)
async def upload_document(
    role: str = Form(...),
    test_id: str = Form(...),
    subject_id: Optional[str] = Form(None),
    student_id: Optional[str] = Form(None),
    topic: Optional[str] = Form(None),
    file: UploadFile = File(...),
    service: DocumentService = Depends(get_document_service)
):
    """
    Upload a document.
    PDFs are converted to a page-image archive; when conversion fails the
    document is kept and the response asks for manual text entry.
    """
    content = await file.read()
    result = await service.upload_document(
        role=role,
        test_id=test_id,
        subject_id=subject_id,
        filename=file.filename,
        content=content,
        student_id=student_id,
        topic=topic,
    )
    message = Messages.MANUAL_TEXT_FALLBACK if result["needs_manual_text"] else Messages.UPLOAD_SUCCESS
    return DocumentUploadResponse(message=message, **result)


@router.get("/documents/{test_id}", response_model=DocumentListResponse)
async def list_documents(
    test_id: str,
    role: Optional[str] = None,
    service: DocumentService = Depends(get_document_service)
):
    documents = await service.list_documents(test_id, role)
    return DocumentListResponse(documents=documents, total=len(documents))


@router.post("/extract-text", response_model=ExtractTextResponse)
async def extract_text(
    request: ExtractTextRequest,
    service: DocumentService = Depends(get_document_service)
):
    """Extract text from a stored document with the vision model"""
    result = await service.extract_document_text(request.url, request.role, request.zip_url)
    return ExtractTextResponse(
        status=result.status.value,
        text=result.text,
        page_count=result.page_count,
        partial=result.partial,
        message=Messages.NEEDS_CONVERSION if result.needs_conversion else None,
    )

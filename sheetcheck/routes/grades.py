"""
Grade API routes
Handles the grade ledger
"""
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from sheetcheck.core import Messages
from sheetcheck.schemas import GradeEntry, GradeListResponse, ReconcileRequest, ReconcileResponse
from sheetcheck.services import GradeService, get_grade_service

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/{test_id}", response_model=GradeListResponse)
async def list_grades(test_id: str, service: GradeService = Depends(get_grade_service)):
    grades = await service.list_grades(test_id)
    return GradeListResponse(
        test_id=test_id,
        grades=[GradeEntry(**g) for g in grades],
        total=len(grades),
    )


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_grades(
    request: ReconcileRequest,
    service: GradeService = Depends(get_grade_service)
):
    """Repair ledger entries that disagree with completed evaluations"""
    report = await service.reconcile(request.test_id)
    return ReconcileResponse(message=Messages.LEDGER_RECONCILED, **report)


@router.get("/{test_id}/export")
async def export_grades(test_id: str, service: GradeService = Depends(get_grade_service)):
    """Download the ledger for a test as an Excel workbook"""
    path = await service.export_to_excel(test_id)
    return FileResponse(path, media_type=XLSX_MEDIA_TYPE, filename=path.name)

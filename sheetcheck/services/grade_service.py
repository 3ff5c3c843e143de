"""
Grade Service
Handles the grade ledger: listing, reconciliation and Excel export
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from sheetcheck.config import settings
from sheetcheck.core import NotFoundException, Tables
from sheetcheck.pipeline import ScoreReconciler
from sheetcheck.storage import TableService
from sheetcheck.utils import safe_filename, to_number

logger = logging.getLogger(__name__)


class GradeService:
    """Service for grade ledger queries and exports"""

    def __init__(self, tables: TableService, exports_dir: Optional[Path] = None):
        self.tables = tables
        self.reconciler = ScoreReconciler(tables)
        self.exports_dir = Path(exports_dir or settings.EXPORTS_DIR)
        self.exports_dir.mkdir(parents=True, exist_ok=True)

    async def list_grades(self, test_id: str) -> List[Dict[str, Any]]:
        grades = await self.tables.select(Tables.GRADES, {"test_id": test_id})
        return sorted(grades, key=lambda g: str(g.get("student_id")))

    async def reconcile(self, test_id: Optional[str] = None) -> Dict[str, int]:
        return await self.reconciler.repair_ledger(test_id)

    def summarize(self, grades: List[Dict[str, Any]]) -> Dict[str, Any]:
        marks = []
        for grade in grades:
            try:
                marks.append(to_number(grade.get("marks")))
            except (TypeError, ValueError):
                continue
        if not marks:
            return {"total_students": len(grades), "average_score": 0, "max_score": 0, "min_score": 0}
        return {
            "total_students": len(grades),
            "average_score": round(sum(marks) / len(marks), 2),
            "max_score": max(marks),
            "min_score": min(marks),
        }

    async def export_to_excel(self, test_id: str) -> Path:
        """Export the ledger for a test to an Excel workbook"""
        grades = await self.list_grades(test_id)
        if not grades:
            raise NotFoundException("Grades for test", test_id)

        test = await self.tables.select_one(Tables.TESTS, {"id": test_id}) or {}
        summary = self.summarize(grades)

        wb = Workbook()

        # Summary sheet
        ws_summary = wb.active
        ws_summary.title = "Summary"

        headers = [("A1", "Test"), ("A2", "Max Marks"), ("A3", "Total Students"),
                   ("A4", "Average Score"), ("A5", "Max Score"), ("A6", "Min Score")]
        values = [("B1", test.get("name") or test_id), ("B2", test.get("max_marks")),
                  ("B3", summary["total_students"]), ("B4", summary["average_score"]),
                  ("B5", summary["max_score"]), ("B6", summary["min_score"])]

        for cell, val in headers:
            ws_summary[cell] = val
            ws_summary[cell].font = Font(bold=True)

        for cell, val in values:
            ws_summary[cell] = val

        # Results sheet
        ws_results = wb.create_sheet("Results")
        headers = ["Student ID", "Marks", "Remarks"]
        ws_results.append(headers)

        for col in range(1, len(headers) + 1):
            ws_results.cell(row=1, column=col).font = Font(bold=True)

        for g in grades:
            ws_results.append([g.get("student_id"), g.get("marks"), g.get("remarks")])

        for col in ws_results.columns:
            max_len = max(len(str(cell.value)) if cell.value else 0 for cell in col)
            ws_results.column_dimensions[col[0].column_letter].width = max_len + 2

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"grades_{safe_filename(str(test_id))}_{timestamp}.xlsx"
        file_path = self.exports_dir / filename
        wb.save(file_path)

        logger.info(f"Exported to Excel: {filename}")
        return file_path

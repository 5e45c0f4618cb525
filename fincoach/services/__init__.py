# noqa
from fincoach.services.correlation_service import CorrelationOutcome, CorrelationService
from fincoach.services.export_service import ExportService
from fincoach.services.notebook_manager import NotebookManager
from fincoach.services.report_service import ReportGenerator, is_ready_for_report

__all__ = [
    "CorrelationOutcome",
    "CorrelationService",
    "ExportService",
    "NotebookManager",
    "ReportGenerator",
    "is_ready_for_report",
]

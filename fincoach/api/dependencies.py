"""Dependency injection for API routes.

Components are built once in the application lifespan and kept on
``app.state``; these providers hand them to the routes.
"""

from typing import Annotated

from fastapi import Depends, Request

from fincoach.persistence.session_store import SessionStore
from fincoach.services.correlation_service import CorrelationService
from fincoach.services.export_service import ExportService
from fincoach.services.notebook_manager import NotebookManager
from fincoach.services.report_service import ReportGenerator


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_notebook_manager(request: Request) -> NotebookManager:
    return request.app.state.notebook_manager


def get_report_generator(request: Request) -> ReportGenerator:
    return request.app.state.report_generator


def get_correlation_service(request: Request) -> CorrelationService:
    return request.app.state.correlation_service


def get_export_service(request: Request) -> ExportService:
    return request.app.state.export_service


# Type aliases for dependency injection
SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
NotebookManagerDep = Annotated[NotebookManager, Depends(get_notebook_manager)]
ReportGeneratorDep = Annotated[ReportGenerator, Depends(get_report_generator)]
CorrelationServiceDep = Annotated[CorrelationService, Depends(get_correlation_service)]
ExportServiceDep = Annotated[ExportService, Depends(get_export_service)]

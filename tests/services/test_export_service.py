"""Tests for ExportService."""

import csv
import json
from io import StringIO

import pytest

from fincoach.core.exceptions import NotebookNotFoundError
from fincoach.services.export_service import MEDIA_TYPES, ExportService
from fincoach.services.report_service import ReportGenerator


@pytest.fixture
async def held_notebook(notebook_manager):
    notebook = await notebook_manager.create_or_restore("therapist-1", "Alex")
    notebook.add_message("agent", "What's your name?")
    notebook.add_message("user", "My name is Alex and I make 60k a year.")
    notebook.add_note("Seems motivated", topic="name")
    return notebook


@pytest.fixture
def export_service(notebook_manager):
    return ExportService(notebook_manager)


class TestExportJson:
    @pytest.mark.asyncio
    async def test_json_is_full_camel_case_record(self, export_service, held_notebook):
        result = json.loads(await export_service.export_notebook(held_notebook.id, "json"))

        assert result["id"] == held_notebook.id
        assert result["therapistId"] == "therapist-1"
        assert result["clientName"] == "Alex"
        assert [m["speaker"] for m in result["messages"]] == ["agent", "user"]
        assert result["notes"][0]["note"] == "Seems motivated"

    @pytest.mark.asyncio
    async def test_stale_extraction_recomputed(self, export_service, held_notebook):
        assert held_notebook.is_extraction_stale()

        result = json.loads(await export_service.export_notebook(held_notebook.id, "json"))

        assert result["extractedFinancialData"]["income"]["monthly"] == 5000.0
        assert result["extractedMessageCount"] == 2
        # The held notebook is not modified by an export
        assert held_notebook.extracted_financial_data is None

    @pytest.mark.asyncio
    async def test_format_is_case_insensitive(self, export_service, held_notebook):
        result = await export_service.export_notebook(held_notebook.id, "JSON")
        assert json.loads(result)["id"] == held_notebook.id


class TestExportCsv:
    @pytest.mark.asyncio
    async def test_messages_and_notes_rows(self, export_service, held_notebook):
        result = await export_service.export_notebook(held_notebook.id, "csv")
        rows = list(csv.reader(StringIO(result)))

        assert rows[0] == ["Type", "Timestamp", "Speaker", "Content", "Topic"]
        assert [r[0] for r in rows[1:]] == ["Message", "Message", "Note"]
        assert rows[2][2] == "user"
        assert rows[2][3] == "My name is Alex and I make 60k a year."
        assert rows[3][2:] == ["therapist", "Seems motivated", "name"]

    @pytest.mark.asyncio
    async def test_commas_are_quoted(self, export_service, held_notebook):
        held_notebook.add_message("user", "Rent, food, and fun")
        result = await export_service.export_notebook(held_notebook.id, "csv")
        assert '"Rent, food, and fun"' in result


class TestExportText:
    @pytest.mark.asyncio
    async def test_sections(self, export_service, held_notebook):
        result = await export_service.export_notebook(held_notebook.id, "txt")

        assert f"SESSION NOTEBOOK: {held_notebook.id}" in result
        assert "Therapist: therapist-1" in result
        assert "Client: Alex" in result
        assert "Status: active" in result
        assert "CONVERSATION:" in result
        assert "USER: My name is Alex and I make 60k a year." in result
        assert "THERAPIST NOTES:" in result
        assert "name: Seems motivated" in result
        assert "QUANTITATIVE REPORT:" not in result

    @pytest.mark.asyncio
    async def test_reports_included_once_generated(self, export_service, held_notebook):
        await ReportGenerator().generate_reports(held_notebook)

        result = await export_service.export_notebook(held_notebook.id, "txt")

        assert "USER PROFILE:" in result
        assert "name: Alex" in result
        assert "QUALITATIVE REPORT:" in result
        assert "QUANTITATIVE REPORT:" in result
        assert "Monthly Income: $5,000.00" in result
        assert "  1 year: $60,000.00 saved" in result


class TestExportErrors:
    @pytest.mark.asyncio
    async def test_unsupported_format(self, export_service, held_notebook):
        with pytest.raises(ValueError, match="Unsupported export format"):
            await export_service.export_notebook(held_notebook.id, "pdf")

    @pytest.mark.asyncio
    async def test_missing_notebook(self, export_service):
        with pytest.raises(NotebookNotFoundError):
            await export_service.export_notebook("nope", "json")

    @pytest.mark.asyncio
    async def test_detached_notebook_exported_from_storage(
        self, export_service, notebook_manager, held_notebook
    ):
        await notebook_manager.complete_session()

        result = json.loads(await export_service.export_notebook(held_notebook.id, "json"))
        assert result["status"] == "completed"


def test_media_types():
    assert set(MEDIA_TYPES) == {"json", "csv", "txt"}

"""
Export service for converting notebooks to various formats.

Supports export to:
- JSON: Full notebook record (camelCase artifact shapes)
- CSV: Messages and coach notes as Type,Timestamp,Speaker,Content,Topic rows
- TXT: Sectioned human-readable session report

Extracted financial data is derived from the transcript; if the stored
copy predates the latest messages it is recomputed for the export.
"""

import csv
import json
from io import StringIO
from typing import Any, Dict

import structlog

from fincoach.services.extraction.data_extractor import DataExtractor
from fincoach.services.notebook_manager import NotebookManager

log = structlog.get_logger(__name__)

MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
    "txt": "text/plain",
}

RULE = "=" * 50
SUBRULE = "-" * 20


class ExportService:
    """
    Service for exporting notebooks to various formats.

    Usage:
        service = ExportService(manager)
        json_str = await service.export_notebook(notebook_id, "json")
        txt_str = await service.export_notebook(notebook_id, "txt")
    """

    def __init__(self, manager: NotebookManager, extractor: DataExtractor | None = None):
        self.manager = manager
        self.extractor = extractor or DataExtractor()

    async def export_notebook(self, notebook_id: str, format: str = "json") -> str:
        """
        Export a notebook to the specified format.

        Args:
            notebook_id: Notebook to export
            format: One of "json", "csv", "txt"

        Returns:
            Exported data as string

        Raises:
            ValueError: If format is not supported
            NotebookNotFoundError: If the notebook doesn't exist
        """
        bound_log = log.bind(notebook_id=notebook_id, format=format)
        bound_log.info("export_notebook_started")

        fmt = format.lower()
        if fmt not in MEDIA_TYPES:
            raise ValueError(f"Unsupported export format: {format}. Use json, csv, or txt")

        data = await self._collect_notebook_data(notebook_id)

        if fmt == "json":
            result = self._export_json(data)
        elif fmt == "csv":
            result = self._export_csv(data)
        else:
            result = self._export_text(data)

        bound_log.info("export_notebook_complete", output_length=len(result))
        return result

    async def _collect_notebook_data(self, notebook_id: str) -> Dict[str, Any]:
        notebook = await self.manager.load(notebook_id)
        data = notebook.to_data()

        if notebook.is_extraction_stale():
            extraction = self.extractor.extract(notebook.messages)
            data["extractedFinancialData"] = extraction.financial_data.to_json_dict()
            data["extractedMessageCount"] = len(notebook.messages)
            log.debug("export_extraction_recomputed", notebook_id=notebook_id)
        return data

    def _export_json(self, data: Dict[str, Any]) -> str:
        """Export to JSON format."""
        return json.dumps(data, indent=2, default=str)

    def _export_csv(self, data: Dict[str, Any]) -> str:
        """Export messages and notes as one CSV table."""
        output = StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(["Type", "Timestamp", "Speaker", "Content", "Topic"])

        for message in data.get("messages", []):
            writer.writerow(
                [
                    "Message",
                    message["timestamp"],
                    message["speaker"],
                    message["text"],
                    data.get("currentTopic") or "",
                ]
            )
        for note in data.get("notes", []):
            writer.writerow(["Note", note.get("time") or "", "therapist", note["note"], note.get("topic") or ""])

        return output.getvalue()

    def _export_text(self, data: Dict[str, Any]) -> str:
        """Export to a sectioned plain-text report."""
        lines = [
            RULE,
            f"SESSION NOTEBOOK: {data['id']}",
            f"Therapist: {data['therapistId']}",
            f"Client: {data.get('clientName') or 'N/A'}",
            f"Date: {data['sessionDate'][:10]}",
            f"Duration: {data.get('duration') or 0} minutes",
            f"Status: {data['status']}",
            RULE,
            "",
        ]

        profile = data.get("userProfile") or {}
        known = {k: v for k, v in profile.items() if v and k != "lifestyle"}
        lifestyle = {
            k: v for k, v in (profile.get("lifestyle") or {}).items() if v.get("preference") or v.get("details")
        }
        if known or lifestyle:
            lines += ["USER PROFILE:", SUBRULE]
            for key, value in known.items():
                lines.append(f"{key}: {json.dumps(value) if isinstance(value, dict) else value}")
            for category, entry in lifestyle.items():
                cost = f" (${entry['cost']:,.2f}/month)" if entry.get("cost") is not None else ""
                lines.append(f"{category}: {entry.get('preference') or entry.get('details')}{cost}")
            lines.append("")

        if data.get("messages"):
            lines += ["CONVERSATION:", SUBRULE]
            for message in data["messages"]:
                time = message["timestamp"][11:19]
                lines.append(f"[{time}] {message['speaker'].upper()}: {message['text']}")
            lines.append("")

        if data.get("notes"):
            lines += ["THERAPIST NOTES:", SUBRULE]
            for note in data["notes"]:
                lines.append(f"[{note['time']}] {note.get('topic') or 'general'}: {note['note']}")
            lines.append("")

        qualitative = data.get("qualitativeReport")
        if qualitative:
            lines += ["QUALITATIVE REPORT:", SUBRULE, f"Summary: {qualitative['summary']}", ""]
            for title, key in (
                ("Key Insights", "keyInsights"),
                ("Recommendations", "recommendations"),
                ("Action Items", "actionItems"),
            ):
                if qualitative.get(key):
                    lines.append(f"{title}:")
                    lines.extend(f"• {item}" for item in qualitative[key])
                    lines.append("")

        quantitative = data.get("quantitativeReport")
        if quantitative:
            budget = quantitative["monthlyBudget"]
            lines += [
                "QUANTITATIVE REPORT:",
                SUBRULE,
                f"Monthly Income: ${budget['income']:,.2f}",
                f"Monthly Expenses: ${sum(budget['expenses'].values()):,.2f}",
                f"Monthly Surplus: ${budget['surplus']:,.2f}",
                f"Savings Rate: {budget['savingsRate']}%",
                "",
            ]
            if budget["expenses"]:
                lines.append("Expense Breakdown:")
                lines.extend(
                    f"  {category}: ${amount:,.2f}" for category, amount in budget["expenses"].items()
                )
                lines.append("")

            if quantitative.get("savingsOpportunities"):
                lines.append("Savings Opportunities:")
                for opp in quantitative["savingsOpportunities"]:
                    lines.append(
                        f"• {opp['category']}: save ${opp['potentialSaving']:,.2f}/month. {opp['suggestion']}"
                    )
                lines.append("")

            projections = quantitative["projections"]
            lines.append("Projections:")
            for label, key in (("3 months", "threeMonth"), ("6 months", "sixMonth"), ("1 year", "oneYear")):
                lines.append(f"  {label}: ${projections[key]['savings']:,.2f} saved")
            lines.append("")

        return "\n".join(lines)

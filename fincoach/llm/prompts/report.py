"""
Prompts for the qualitative coaching report.

The model is asked for a single JSON object:

    {"summary": str, "keyInsights": [str], "recommendations": [str],
     "actionItems": [str]}

parse_report_response() returns a tagged result: Parsed with the report, or
ParseFailed with the raw text. There is no partial recovery; a ParseFailed
goes straight to the local template.
"""

import json
from dataclasses import dataclass
from typing import Iterable, List, Union

from fincoach.domain.models.conversation import ConversationMessage
from fincoach.domain.models.financial import ExtractedFinancialData
from fincoach.domain.models.profile import UserProfile
from fincoach.domain.models.reports import QualitativeReport, ReportSource

# Keep prompts bounded on long sessions
MAX_TRANSCRIPT_CHARS = 12_000


@dataclass(frozen=True)
class Parsed:
    report: QualitativeReport


@dataclass(frozen=True)
class ParseFailed:
    raw_text: str
    reason: str


ParseResult = Union[Parsed, ParseFailed]


def get_report_system_prompt() -> str:
    return """You are a supportive financial coach writing a short written summary of a coaching session.

Write in second person ("you"), warm but concrete. Base every statement on the
conversation and the extracted figures; never invent numbers.

Respond with ONLY a JSON object, no prose before or after it:
{
  "summary": "2-4 sentence overview of the client's situation and priorities",
  "keyInsights": ["observation grounded in what the client said", "..."],
  "recommendations": ["specific, realistic recommendation", "..."],
  "actionItems": ["small next step the client can take this week", "..."]
}

Give 3-5 items in each list."""


def format_transcript(messages: Iterable[ConversationMessage]) -> str:
    lines = [f"{m.speaker.value.upper()}: {m.text}" for m in messages]
    transcript = "\n".join(lines)
    if len(transcript) > MAX_TRANSCRIPT_CHARS:
        transcript = "...\n" + transcript[-MAX_TRANSCRIPT_CHARS:]
    return transcript


def get_report_user_prompt(
    messages: Iterable[ConversationMessage],
    financial_data: ExtractedFinancialData,
    profile: UserProfile,
) -> str:
    """Build the user prompt from transcript, extracted data and profile."""
    return f"""## Conversation
{format_transcript(messages)}

## Extracted financial data
{json.dumps(financial_data.to_json_dict(), indent=2)}

## Client profile
{json.dumps(profile.to_json_dict(), indent=2)}

Write the session report as JSON."""


def _strip_markdown_fences(text: str) -> str:
    """Strip markdown code fences from LLM response."""
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _string_list(value: object) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError("expected a list of strings")
    return [v.strip() for v in value if v.strip()]


def parse_report_response(response_text: str) -> ParseResult:
    """
    Parse the model's reply into a QualitativeReport.

    Args:
        response_text: Raw completion text

    Returns:
        Parsed(report) when the reply is a JSON object with a non-empty
        summary and string lists, otherwise ParseFailed(raw_text, reason)
    """
    text = _strip_markdown_fences(response_text or "")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return ParseFailed(raw_text=response_text, reason=f"invalid JSON: {e}")

    if not isinstance(data, dict):
        return ParseFailed(raw_text=response_text, reason="response is not a JSON object")

    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        return ParseFailed(raw_text=response_text, reason="missing summary")

    try:
        report = QualitativeReport(
            summary=summary.strip(),
            key_insights=_string_list(data.get("keyInsights", [])),
            recommendations=_string_list(data.get("recommendations", [])),
            action_items=_string_list(data.get("actionItems", [])),
            source=ReportSource.AI,
        )
    except ValueError as e:
        return ParseFailed(raw_text=response_text, reason=str(e))

    return Parsed(report=report)

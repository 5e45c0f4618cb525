# noqa
from fincoach.llm.prompts.report import (
    MAX_TRANSCRIPT_CHARS,
    Parsed,
    ParseFailed,
    format_transcript,
    get_report_system_prompt,
    get_report_user_prompt,
    parse_report_response,
)

__all__ = [
    "MAX_TRANSCRIPT_CHARS",
    "Parsed",
    "ParseFailed",
    "format_transcript",
    "get_report_system_prompt",
    "get_report_user_prompt",
    "parse_report_response",
]

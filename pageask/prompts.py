from __future__ import annotations

import json
from typing import Any, List, Optional, Sequence

from .constants import MAX_HEADINGS, MAX_PARAGRAPHS, MAX_PLAIN_CONTENT_CHARS
from .schemas import AskRequest

CONCISE_DIRECTIVE = (
    "Answer concisely in at most 100 words. "
    "Give the conclusion directly without explaining your process."
)
CONCISE_REMINDER = "Remember: keep the answer short and do not elaborate."
ROLE_DIRECTIVE = "You are a professional web page analysis assistant."

SIMPLE_SYSTEM_PROMPT = (
    f"{ROLE_DIRECTIVE}\n"
    "Provide brief, clear answers of no more than 100 words.\n"
    "State the conclusion directly; do not explain the process."
)
DETAILED_SYSTEM_PROMPT = (
    f"{ROLE_DIRECTIVE}\n"
    "Provide detailed, well-structured answers.\n"
    "Use lists and headings where they help organize the information.\n"
    "Explain your analysis and how you reached your conclusion."
)
TASK_DIRECTIVE = (
    "Your task:\n"
    "1. Analyze the web page content and screenshot the user provides.\n"
    "2. Answer the user's question based on what the page contains.\n"
    "3. If the provided material does not contain the answer, say so honestly."
)

MORE_HEADINGS_MARKER = "...(more headings omitted)"
MORE_PARAGRAPHS_MARKER = "...(more content omitted)"
TRUNCATED_MARKER = "...(content truncated)"


def build_system_prompt(is_simple: bool) -> str:
    style = SIMPLE_SYSTEM_PROMPT if is_simple else DETAILED_SYSTEM_PROMPT
    return f"{style}\n{TASK_DIRECTIVE}"


def parse_structured_content(page_content: str) -> Optional[dict]:
    """Return the decoded page content when it is a JSON object, else None."""
    try:
        parsed = json.loads(page_content)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _as_sequence(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return json.dumps(value, ensure_ascii=False)


def _limited_lines(items: Sequence[Any], limit: int, marker: str) -> List[str]:
    lines = [_as_text(item) for item in items[:limit]]
    if len(items) > limit:
        lines.append(marker)
    return lines


def format_structured_content(content: dict) -> str:
    sections: List[str] = []
    headings = _as_sequence(content.get("headings"))
    if headings:
        lines = _limited_lines(headings, MAX_HEADINGS, MORE_HEADINGS_MARKER)
        sections.append(
            "Headings:\n" + "\n".join(
                line if line == MORE_HEADINGS_MARKER else f"- {line}" for line in lines
            )
        )
    paragraphs = _as_sequence(content.get("paragraphs"))
    if paragraphs:
        lines = _limited_lines(paragraphs, MAX_PARAGRAPHS, MORE_PARAGRAPHS_MARKER)
        sections.append("Content summary:\n" + "\n\n".join(lines))
    return "\n\n".join(sections)


def truncate_text(text: str, limit: int = MAX_PLAIN_CONTENT_CHARS) -> str:
    # str slicing counts code points, so multi-byte characters are never split.
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATED_MARKER


def build_page_content_section(page_content: str) -> str:
    structured = parse_structured_content(page_content)
    if structured is not None:
        body = format_structured_content(structured)
    else:
        body = truncate_text(page_content)
    if not body:
        return ""
    return f"Page content:\n{body}"


def build_prompt(request: AskRequest) -> str:
    """Assemble the user prompt for plain-text and vision requests.

    Sections are appended in a fixed order and only when their data is present:
    concision directive, role directive, page content, question with page title
    and URL, concision reminder.
    """
    sections: List[str] = []
    if request.is_simple:
        sections.append(CONCISE_DIRECTIVE)
    sections.append(ROLE_DIRECTIVE)
    if request.page_content.strip():
        content_section = build_page_content_section(request.page_content)
        if content_section:
            sections.append(content_section)
    sections.append(
        f"My question is: {request.question.strip()}\n"
        f"Page title: {request.title}\n"
        f"Page URL: {request.url}"
    )
    if request.is_simple:
        sections.append(CONCISE_REMINDER)
    return "\n\n".join(sections)


def build_web_search_input(request: AskRequest) -> str:
    question = request.question.strip()
    if request.is_simple:
        return f"{CONCISE_DIRECTIVE}\n\n{question}"
    return question

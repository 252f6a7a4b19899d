"""
Pull the recurring callout lists (top insights, key takeaways, questions for management)
out of a section's narrative markdown.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple

_HEADING_LEAD = r"^[ \t]*(?:#{1,6}[ \t]*)?(?:\*\*)?[ \t]*"
_SUBSECTION_NUMBER = r"(?:\d+(?:\.\d+)*\.?[ \t]+)?"
# Optional colon, closing bold and "(qualifier)" in any of the orders the generator uses.
_HEADING_TAIL = (
    r"[ \t]*:?[ \t]*(?:\*\*)?[ \t]*(?:\([^)\n]*\))?[ \t]*:?[ \t]*(?:\*\*)?[ \t]*:?[ \t]*"
    r"\n(?:[ \t]*\n)*"
)

_INSIGHT_ITEM = r"[ \t]*(?:\d+[.)]|[-*•])(?:[ \t]+.*)?(?:\n|$)"
_BULLET_ITEM = r"[ \t]*[-*•](?:[ \t]+.*)?(?:\n|$)"
_QUESTION_ITEM = r"[ \t]*(?:[-*•](?:[ \t]+.*)?|\?.*)(?:\n|$)"

INSIGHTS_PATTERN = re.compile(
    _HEADING_LEAD
    + _SUBSECTION_NUMBER
    + r"(?:Top[ \t]+(?:Executive[ \t]+)?|Executive[ \t]+)Insights?"
    + _HEADING_TAIL
    + rf"((?:{_INSIGHT_ITEM})+)",
    re.IGNORECASE | re.MULTILINE,
)

TAKEAWAYS_PATTERN = re.compile(
    _HEADING_LEAD
    + _SUBSECTION_NUMBER
    + r"Key[ \t]+Takeaways?"
    + _HEADING_TAIL
    + rf"((?:{_BULLET_ITEM})+)",
    re.IGNORECASE | re.MULTILINE,
)

QUESTIONS_PATTERN = re.compile(
    _HEADING_LEAD
    + _SUBSECTION_NUMBER
    + r"Questions?[ \t]+(?:(?:for|to)[ \t]+)?Management"
    + _HEADING_TAIL
    + rf"((?:{_QUESTION_ITEM})+)",
    re.IGNORECASE | re.MULTILINE,
)

_INSIGHT_MARKER = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")
_BULLET_MARKER = re.compile(r"^\s*[-*•]\s*")
_QUESTION_MARKER = re.compile(r"^\s*(?:[-*•]|\?+)\s*")


@dataclass
class SpecialBlocks:
    narrative: str = ""
    insights: List[str] = field(default_factory=list)
    takeaways: List[str] = field(default_factory=list)
    questions: List[str] = field(default_factory=list)


def is_insights_header(text: str) -> bool:
    lower = (text or "").lower()
    return (
        "executive insight" in lower
        or "top insight" in lower
        or "numeric callout" in lower
        or "with callout" in lower
    )


def is_takeaways_header(text: str) -> bool:
    return "key takeaway" in (text or "").lower()


def is_questions_header(text: str) -> bool:
    lower = (text or "").lower()
    return "question" in lower and "management" in lower


def _list_items(block: str, marker: Pattern[str]) -> List[str]:
    items = []
    for line in block.split("\n"):
        text = marker.sub("", line, count=1).strip()
        if text:
            items.append(text)
    return items


def extract_insights(content: str) -> Tuple[List[str], str]:
    """Extract the first top-insights list; returns ``(insights, remaining_content)``."""
    match = INSIGHTS_PATTERN.search(content)
    if not match:
        return [], content

    insights = [item for item in _list_items(match.group(1), _INSIGHT_MARKER) if not is_insights_header(item)]
    remaining = content[:match.start()] + "\n" + content[match.end():]
    return insights, remaining


def _extract_all(content: str, pattern: Pattern[str], marker: Pattern[str]) -> Tuple[List[str], str]:
    matches = list(pattern.finditer(content))
    if not matches:
        return [], content

    items: List[str] = []
    for match in matches:
        items.extend(_list_items(match.group(1), marker))
    return items, pattern.sub("\n", content)


def extract_takeaways(content: str) -> Tuple[List[str], str]:
    return _extract_all(content, TAKEAWAYS_PATTERN, _BULLET_MARKER)


def extract_questions(content: str) -> Tuple[List[str], str]:
    return _extract_all(content, QUESTIONS_PATTERN, _QUESTION_MARKER)


def strip_redundant_title(content: str, section_name: Optional[str]) -> str:
    """Drop a leading heading that just repeats the section's own name."""
    if not section_name:
        return content

    name = re.sub(r"^\d+\.?\s*", "", section_name.strip())
    if not name:
        return content

    pattern = re.compile(
        rf"^(?:#+[ \t]*)?(\*\*)?[ \t]*(?:\d+\.?[ \t]*)?{re.escape(name)}[ \t]*(?(1)\*\*)[ \t]*(?:\n+|$)",
        re.IGNORECASE,
    )
    return pattern.sub("", content, count=1)


def extract_blocks(section_text: str, section_display_name: Optional[str] = None) -> SpecialBlocks:
    """Split a section into narrative plus insights, takeaways and questions.

    Insights go first: their heading pattern is the most specific, and the looser
    takeaways/questions patterns could otherwise catch fragments of it.
    """
    content = (section_text or "").replace("\r\n", "\n")

    insights, content = extract_insights(content)
    takeaways, content = extract_takeaways(content)
    questions, content = extract_questions(content)

    narrative = strip_redundant_title(content.strip(), section_display_name).strip()
    return SpecialBlocks(
        narrative=narrative,
        insights=insights,
        takeaways=takeaways,
        questions=questions,
    )

"""
Split a generated month-end review into the nine canonical report sections.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from review_portal.utils.report_taxonomy import FALLBACK_SECTION, SECTION_DEFINITIONS, SectionDefinition

logger = logging.getLogger(__name__)

HEADING_PATTERN = re.compile(r"^(#{1,6})[ \t]*(?:(\d+)\.(?!\d)[ \t]*)?(.*?)[ \t#]*$")
SECTION_DEPTH = 2


@dataclass
class SectionContent:
    """Persisted body of a section: narrative markdown plus any structured blocks."""
    raw_markdown: str = ""
    tables: List[Dict[str, Any]] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)
    takeaways: List[str] = field(default_factory=list)
    questions: List[str] = field(default_factory=list)


@dataclass
class ReportSection:
    key: str
    display_name: str
    sort_order: int
    content: SectionContent = field(default_factory=SectionContent)

    @property
    def numbered_name(self) -> str:
        return f"{self.sort_order}. {self.display_name}"


def classify_heading(title: str) -> Optional[SectionDefinition]:
    """Map a heading title to its canonical section; taxonomy order breaks ties."""
    for definition in SECTION_DEFINITIONS:
        if definition.pattern.search(title or ""):
            return definition
    return None


def parse_heading(line: str) -> Optional[Tuple[int, str]]:
    """Return ``(depth, title)`` for a markdown heading line, else ``None``."""
    match = HEADING_PATTERN.match(line.rstrip("\r"))
    if not match:
        return None
    title = match.group(3).strip()
    if not title:
        return None
    return len(match.group(1)), title


def parse_sections(document: str) -> List[ReportSection]:
    """Segment a generated document into canonical sections sorted by sort order."""
    if not document or not document.strip():
        return []

    lines = document.replace("\r\n", "\n").split("\n")
    headings: List[Tuple[int, int, str, Optional[SectionDefinition]]] = []
    in_fence = False
    for index, line in enumerate(lines):
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        parsed = parse_heading(line)
        if parsed:
            depth, title = parsed
            headings.append((index, depth, title, classify_heading(title)))

    matched_depths = [depth for _, depth, _, definition in headings if definition]
    if not matched_depths:
        logger.info("No canonical section headers found; keeping the whole document as one section")
        return [
            ReportSection(
                key=FALLBACK_SECTION.key,
                display_name=FALLBACK_SECTION.display_name,
                sort_order=FALLBACK_SECTION.sort_order,
                content=SectionContent(raw_markdown=document),
            )
        ]

    # Sections live at "##"; a shallower document title never opens one.
    top_depth = SECTION_DEPTH if SECTION_DEPTH in matched_depths else min(matched_depths)
    boundaries = [(index, depth, title, definition) for index, depth, title, definition in headings if depth <= top_depth]

    sections: Dict[str, ReportSection] = {}
    for position, (start, depth, title, definition) in enumerate(boundaries):
        if definition is None or depth != top_depth:
            continue
        end = boundaries[position + 1][0] if position + 1 < len(boundaries) else len(lines)
        body = "\n".join(lines[start + 1:end]).strip("\n")

        existing = sections.get(definition.key)
        if existing:
            logger.warning("Section '%s' appears more than once; merging bodies", definition.key)
            existing.content.raw_markdown = "\n\n".join(part for part in [existing.content.raw_markdown, body] if part)
            continue

        sections[definition.key] = ReportSection(
            key=definition.key,
            display_name=title,
            sort_order=definition.sort_order,
            content=SectionContent(raw_markdown=body),
        )

    ordered = sorted(sections.values(), key=lambda section: section.sort_order)
    logger.info("Parsed %d sections: %s", len(ordered), ", ".join(section.key for section in ordered))
    return ordered

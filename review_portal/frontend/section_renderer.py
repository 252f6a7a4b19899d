"""
Turn stored report sections into display blocks and HTML.

Classification runs on every render; nothing computed here is persisted.
"""

import html
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from review_portal.backend.section_parser import ReportSection
from review_portal.backend.special_blocks import (
    extract_blocks,
    is_insights_header,
    is_questions_header,
    is_takeaways_header,
)
from review_portal.core.state import STATUS_FAILED, STATUS_PROCESSING, ReportRecord
from review_portal.utils.financial_format import (
    EM_DASH,
    classify,
    classify_indicator,
    is_indicator_column,
    is_sub_item,
    is_subtotal_row,
    is_total_row,
    is_variance_column,
)

NO_SECTION_CONTENT = "No content available for this section."
NO_REPORT_CONTENT = "No content available for this report."

_HEADING = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_HEADING_NUMBER = re.compile(r"^(\d+(?:\.\d+)*)\.?\s+(.*)$")
_LIST_ITEM = re.compile(r"^\s*([-*•+]|\d+[.)])\s+(.*)$")
_RULE = re.compile(r"^\s*(?:-{3,}|\*{3,}|_{3,})\s*$")
_TABLE_SEPARATOR = re.compile(r"^\s*\|?\s*:?-{2,}:?\s*(?:\|\s*:?-{2,}:?\s*)*\|?\s*$")
_BOLD = re.compile(r"\*\*(.+?)\*\*")
_CALLOUT_LEAD = re.compile(r"^(?:\*\*)?\s*(interpretation|note|observations?)\b", re.IGNORECASE)

REPORT_CSS = """
.report-section { font-family: Georgia, serif; color: #1f2933; max-width: 960px; }
.report-section h2 { border-bottom: 2px solid #1f3a5f; padding-bottom: 4px; }
.section-number { display: inline-block; background: #1f3a5f; color: #fff; border-radius: 4px; padding: 0 6px; margin-right: 6px; font-size: 0.85em; }
.callout { border-left: 4px solid #1f3a5f; background: #f3f6fa; padding: 8px 12px; margin: 12px 0; }
.callout-interpretation { border-color: #2f6f9f; }
.callout-insights { border-color: #b7791f; background: #fffaf0; }
.callout-takeaways { border-color: #2f855a; background: #f0fff4; }
.callout-questions { border-color: #6b46c1; background: #faf5ff; }
.financial-table { border-collapse: collapse; width: 100%; font-family: "Helvetica Neue", Arial, sans-serif; font-size: 0.9em; }
.financial-table th { background: #1f3a5f; color: #fff; text-align: right; padding: 4px 8px; }
.financial-table th:first-child, .financial-table td.row-label { text-align: left; }
.financial-table td { text-align: right; padding: 3px 8px; border-bottom: 1px solid #e4e7eb; }
.row-total td { font-weight: bold; border-top: 1px solid #1f2933; border-bottom: 3px double #1f2933; }
.row-subtotal td { font-weight: 600; border-top: 1px solid #9aa5b1; }
.row-sub-item td.row-label { padding-left: 24px; }
.financial-negative { color: #c53030; }
.financial-positive { color: #2f855a; }
.financial-zero { color: #9aa5b1; }
.financial-na { color: #9aa5b1; font-style: italic; }
.indicator-affirmative { color: #2f855a; font-weight: bold; }
.indicator-negative { color: #c53030; }
.indicator-not_applicable { color: #9aa5b1; }
.empty-state { color: #9aa5b1; font-style: italic; }
"""


@dataclass
class RenderedCell:
    text: str
    tags: List[str] = field(default_factory=list)


@dataclass
class RenderedRow:
    cells: List[RenderedCell]
    tags: List[str] = field(default_factory=list)


@dataclass
class RenderedBlock:
    """One display block: heading, paragraph, list, table, code, rule, quote or callout header."""
    kind: str
    text: str = ""
    level: int = 0
    number: str = ""
    callout: str = ""
    ordered: bool = False
    items: List[str] = field(default_factory=list)
    header: List[str] = field(default_factory=list)
    rows: List[RenderedRow] = field(default_factory=list)


@dataclass
class RenderedSection:
    key: str
    title: str
    sort_order: int
    insights: List[str] = field(default_factory=list)
    blocks: List[RenderedBlock] = field(default_factory=list)
    takeaways: List[str] = field(default_factory=list)
    questions: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.insights or self.blocks or self.takeaways or self.questions)


def render_cell(value: Any, header: str = "") -> RenderedCell:
    """Classify a value cell in the context of its column header."""
    text = "" if value is None else str(value).strip()
    if not text:
        return RenderedCell(EM_DASH, ["financial-na"])

    if is_indicator_column(header):
        indicator = classify_indicator(text)
        if indicator:
            return RenderedCell(text, [f"indicator-{indicator}"])

    classified = classify(text)
    tags = classified.style_tags
    # Positive coloring only means something for change columns.
    if not is_variance_column(header):
        tags = [tag for tag in tags if tag != "financial-positive"]
    return RenderedCell(classified.display_text, tags)


def row_tags(label: str) -> List[str]:
    if is_subtotal_row(label):
        return ["row-subtotal"]
    if is_total_row(label):
        return ["row-total"]
    if is_sub_item(label):
        return ["row-sub-item"]
    return []


def render_table(header: List[str], rows: List[List[Any]]) -> RenderedBlock:
    """Render a table whose first column holds row labels."""
    rendered_rows = []
    for row in rows:
        if not row:
            continue
        raw_label = "" if row[0] is None else str(row[0])
        cells = [RenderedCell(raw_label.strip(), ["row-label"])]
        for index, value in enumerate(row[1:], start=1):
            column_header = header[index] if index < len(header) else ""
            cells.append(render_cell(value, column_header))
        rendered_rows.append(RenderedRow(cells=cells, tags=row_tags(raw_label)))
    return RenderedBlock(kind="table", header=[str(cell).strip() for cell in header], rows=rendered_rows)


def _split_table_row(line: str) -> List[str]:
    """Split a pipe row; keeps label indentation beyond the single pad space."""
    stripped = line.strip()
    if stripped.startswith("|"):
        stripped = stripped[1:]
    if stripped.endswith("|"):
        stripped = stripped[:-1]
    cells = stripped.split("|")
    return [cell[1:] if cell.startswith(" ") else cell for cell in cells]


def parse_markdown_table(lines: List[str]) -> RenderedBlock:
    rows = [_split_table_row(line) for line in lines if not _TABLE_SEPARATOR.match(line)]
    if not rows:
        return RenderedBlock(kind="table")
    header = [cell.strip() for cell in rows[0]]
    return render_table(header, [[row[0].rstrip()] + [cell.strip() for cell in row[1:]] for row in rows[1:]])


def _special_header_kind(text: str) -> Optional[str]:
    if is_insights_header(text):
        return "insights"
    if is_takeaways_header(text):
        return "takeaways"
    if is_questions_header(text):
        return "questions"
    return None


def _heading_block(level: int, title: str) -> Optional[RenderedBlock]:
    kind = _special_header_kind(title)
    if kind == "insights":
        return None
    if kind:
        return RenderedBlock(kind="callout_header", text=title.strip("*: "), level=level, callout=kind)

    match = _HEADING_NUMBER.match(title)
    if match:
        return RenderedBlock(kind="heading", text=match.group(2), level=level, number=match.group(1))
    return RenderedBlock(kind="heading", text=title, level=level)


def _paragraph_block(lines: List[str]) -> Optional[RenderedBlock]:
    text = " ".join(line.strip() for line in lines).strip()
    if not text:
        return None

    # A lone bold line reads as a heading.
    if len(lines) == 1 and text.startswith("**") and text.endswith("**") and _special_header_kind(text):
        return _heading_block(4, text.strip("*").strip())

    callout = "interpretation" if _CALLOUT_LEAD.match(text) else ""
    return RenderedBlock(kind="paragraph", text=text, callout=callout)


def parse_markdown_blocks(markdown: str) -> List[RenderedBlock]:
    """Parse narrative markdown into display blocks."""
    blocks: List[RenderedBlock] = []
    lines = (markdown or "").split("\n")
    paragraph: List[str] = []
    index = 0

    def flush_paragraph():
        block = _paragraph_block(paragraph)
        if block:
            blocks.append(block)
        paragraph.clear()

    while index < len(lines):
        line = lines[index]
        stripped = line.strip()

        if stripped.startswith("```"):
            flush_paragraph()
            code_lines = []
            index += 1
            while index < len(lines) and not lines[index].strip().startswith("```"):
                code_lines.append(lines[index])
                index += 1
            blocks.append(RenderedBlock(kind="code", text="\n".join(code_lines)))
            index += 1
            continue

        if not stripped:
            flush_paragraph()
            index += 1
            continue

        heading = _HEADING.match(stripped)
        if heading:
            flush_paragraph()
            block = _heading_block(len(heading.group(1)), heading.group(2).strip("* "))
            if block:
                blocks.append(block)
            index += 1
            continue

        if _RULE.match(stripped):
            flush_paragraph()
            blocks.append(RenderedBlock(kind="rule"))
            index += 1
            continue

        if stripped.startswith("|"):
            flush_paragraph()
            table_lines = []
            while index < len(lines) and lines[index].strip().startswith("|"):
                table_lines.append(lines[index])
                index += 1
            blocks.append(parse_markdown_table(table_lines))
            continue

        if stripped.startswith(">"):
            flush_paragraph()
            quote_lines = []
            while index < len(lines) and lines[index].strip().startswith(">"):
                quote_lines.append(lines[index].strip()[1:].strip())
                index += 1
            blocks.append(RenderedBlock(kind="quote", text=" ".join(quote_lines).strip(), callout="interpretation"))
            continue

        item = _LIST_ITEM.match(line)
        if item:
            flush_paragraph()
            ordered = item.group(1)[0].isdigit()
            items = []
            while index < len(lines):
                item = _LIST_ITEM.match(lines[index])
                if not item:
                    break
                items.append(item.group(2).strip())
                index += 1
            blocks.append(RenderedBlock(kind="list", ordered=ordered, items=items))
            continue

        paragraph.append(line)
        index += 1

    flush_paragraph()
    return blocks


def _merge(stored: List[str], extracted: List[str]) -> List[str]:
    merged = []
    for item in list(stored) + list(extracted):
        if item and item not in merged:
            merged.append(item)
    return merged


def render_section(section: ReportSection) -> RenderedSection:
    """Build the display model for one stored section."""
    content = section.content
    blocks = extract_blocks(content.raw_markdown, section.display_name)

    rendered = RenderedSection(
        key=section.key,
        title=section.display_name,
        sort_order=section.sort_order,
        insights=_merge(content.insights, blocks.insights),
        blocks=parse_markdown_blocks(blocks.narrative),
        takeaways=_merge(content.takeaways, blocks.takeaways),
        questions=_merge(content.questions, blocks.questions),
    )
    for table in content.tables:
        rendered.blocks.append(_structured_table(table))
    return rendered


def _structured_table(table: Dict[str, Any]) -> RenderedBlock:
    header = list(table.get("headers") or table.get("header") or [])
    block = render_table(header, list(table.get("rows") or []))
    block.text = str(table.get("title") or "")
    return block


def _inline(text: str) -> str:
    return _BOLD.sub(r"<strong>\1</strong>", html.escape(text or ""))


def _classes(tags: List[str]) -> str:
    return f' class="{" ".join(tags)}"' if tags else ""


def _block_html(block: RenderedBlock) -> str:
    if block.kind == "heading":
        level = min(max(block.level, 2), 6)
        badge = f'<span class="section-number">{html.escape(block.number)}</span>' if block.number else ""
        return f"<h{level}>{badge}{_inline(block.text)}</h{level}>"
    if block.kind == "callout_header":
        return f'<h4 class="callout-header callout-{block.callout}">{_inline(block.text)}</h4>'
    if block.kind == "paragraph":
        if block.callout:
            return f'<div class="callout callout-{block.callout}"><p>{_inline(block.text)}</p></div>'
        return f"<p>{_inline(block.text)}</p>"
    if block.kind == "list":
        tag = "ol" if block.ordered else "ul"
        items = "".join(f"<li>{_inline(item)}</li>" for item in block.items)
        return f"<{tag}>{items}</{tag}>"
    if block.kind == "table":
        caption = f"<caption>{_inline(block.text)}</caption>" if block.text else ""
        head = "".join(f"<th>{_inline(cell)}</th>" for cell in block.header)
        body = "".join(
            f"<tr{_classes(row.tags)}>"
            + "".join(f"<td{_classes(cell.tags)}>{_inline(cell.text)}</td>" for cell in row.cells)
            + "</tr>"
            for row in block.rows
        )
        return f'<table class="financial-table">{caption}<thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>'
    if block.kind == "code":
        return f"<pre><code>{html.escape(block.text)}</code></pre>"
    if block.kind == "quote":
        return f'<blockquote class="callout callout-{block.callout}">{_inline(block.text)}</blockquote>'
    if block.kind == "rule":
        return "<hr/>"
    return ""


def _callout_list_html(kind: str, title: str, items: List[str], ordered: bool = False) -> str:
    if not items:
        return ""
    tag = "ol" if ordered else "ul"
    rows = "".join(f"<li>{_inline(item)}</li>" for item in items)
    return f'<div class="callout callout-{kind}"><h4>{html.escape(title)}</h4><{tag}>{rows}</{tag}></div>'


def rendered_to_html(rendered: RenderedSection) -> str:
    parts = [
        f'<section class="report-section" id="{html.escape(rendered.key)}">',
        f'<h2><span class="section-number">{rendered.sort_order}</span>{html.escape(rendered.title)}</h2>',
    ]
    if rendered.is_empty:
        parts.append(f'<p class="empty-state">{NO_SECTION_CONTENT}</p>')
    else:
        parts.append(_callout_list_html("insights", "Top Executive Insights", rendered.insights, ordered=True))
        parts.extend(_block_html(block) for block in rendered.blocks)
        parts.append(_callout_list_html("takeaways", "Key Takeaways", rendered.takeaways))
        parts.append(_callout_list_html("questions", "Questions for Management", rendered.questions))
    parts.append("</section>")
    return "\n".join(part for part in parts if part)


def render_section_html(section: ReportSection) -> str:
    return rendered_to_html(render_section(section))


def render_report_html(record: ReportRecord) -> str:
    """Standalone HTML document for a whole report."""
    title = f"{record.company_name} - Month-End Financial Review - {record.period_label}"
    if record.status == STATUS_FAILED:
        body = f'<p class="empty-state">Report generation failed: {html.escape(record.error_message)}</p>'
    elif record.status == STATUS_PROCESSING:
        body = '<p class="empty-state">Report is still processing.</p>'
    elif not record.sections:
        body = f'<p class="empty-state">{NO_REPORT_CONTENT}</p>'
    else:
        body = "\n".join(render_section_html(section) for section in record.sections)

    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\"/>\n"
        f"<title>{html.escape(title)}</title>\n<style>{REPORT_CSS}</style>\n</head>\n<body>\n"
        f"<h1>{html.escape(title)}</h1>\n{body}\n</body>\n</html>\n"
    )

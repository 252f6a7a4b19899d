"""
Core-sheet extraction: pick the financial tabs out of a client workbook and flatten them to CSV text.

Full client workbooks run to millions of estimated tokens; the core statements alone
fit comfortably inside the generation model's context, so only a ranked, budgeted
subset of tabs is ever sent downstream.
"""

import io
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from openpyxl import load_workbook

from review_portal.config import CONFIG
from review_portal.utils.report_taxonomy import CORE_SHEETS, REQUIRED_SHEETS, SHEET_NAME_ALIASES

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Base class for extraction failures."""


class WorkbookValidationError(ExtractionError):
    """The workbook bytes could not be read as a usable workbook."""


class MissingSheetsError(ExtractionError):
    """The workbook was readable but required statement tabs were not extracted."""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required sheets: {', '.join(self.missing)}")


@dataclass
class ExtractedSheet:
    name: str
    canonical_name: str
    csv: str
    estimated_tokens: int


@dataclass
class ExtractionResult:
    """Admitted sheets in priority order plus what could not be admitted."""
    sheets: List[ExtractedSheet] = field(default_factory=list)
    total_tokens: int = 0
    missing_required_sheets: List[str] = field(default_factory=list)
    skipped_sheets: List[str] = field(default_factory=list)
    all_sheet_names: List[str] = field(default_factory=list)

    @property
    def sheet_names(self) -> List[str]:
        return [sheet.name for sheet in self.sheets]


_CURRENCY_TOKEN = re.compile(r"\[\$([^\]\-]*)(?:-[^\]]*)?\]")
_FORMAT_NOISE = re.compile(r"_.|\*.|\[[^\]]*\]")
_ESCAPED_CHAR = re.compile(r"\\(.)")
_QUOTED_TEXT = re.compile(r'"([^"]*)"')
_NUMERIC_TOKEN = re.compile(r"[#0?][#0?,.]*")
_DATE_TOKEN = re.compile(r"yyyy|yy|mmmm|mmm|mm|m|dddd|ddd|dd|d|hh|h|ss|s|am/pm", re.IGNORECASE)


class SheetExtractor:
    """Resolve, serialize and budget the core financial tabs of a workbook."""

    def __init__(
        self,
        core_sheets: Optional[List[str]] = None,
        aliases: Optional[Dict[str, List[str]]] = None,
        required_sheets: Optional[List[str]] = None,
        chars_per_token: Optional[int] = None,
    ):
        self.core_sheets = list(core_sheets or CORE_SHEETS)
        self.aliases = aliases if aliases is not None else SHEET_NAME_ALIASES
        self.required_sheets = list(required_sheets or REQUIRED_SHEETS)
        self.chars_per_token = chars_per_token or CONFIG.extraction.chars_per_token

    def extract(self, workbook_bytes: bytes, max_tokens: Optional[int] = None) -> ExtractionResult:
        """Extract the core sheets that fit within ``max_tokens``."""
        budget = CONFIG.extraction.max_tokens if max_tokens is None else max_tokens
        if budget <= 0:
            raise ValueError(f"Token budget must be positive, got {budget}")

        workbook = self._load(workbook_bytes)
        try:
            sheet_names = self._worksheet_names(workbook)
            result = ExtractionResult(all_sheet_names=sheet_names)
            admitted_canonical: List[str] = []
            used_tabs = set()

            for canonical_name in self.core_sheets:
                actual_name = self.find_sheet(sheet_names, canonical_name)
                if actual_name is None or actual_name in used_tabs:
                    continue

                csv_text = self._sheet_to_csv(workbook[actual_name])
                tokens = self.estimate_tokens(csv_text)

                if result.total_tokens + tokens > budget:
                    logger.warning(
                        "Skipping '%s' (%s tokens) - would exceed limit of %s",
                        actual_name,
                        f"{tokens:,}",
                        f"{budget:,}",
                    )
                    result.skipped_sheets.append(canonical_name)
                    continue

                result.sheets.append(
                    ExtractedSheet(
                        name=actual_name,
                        canonical_name=canonical_name,
                        csv=csv_text,
                        estimated_tokens=tokens,
                    )
                )
                result.total_tokens += tokens
                admitted_canonical.append(canonical_name)
                used_tabs.add(actual_name)
        finally:
            workbook.close()

        result.missing_required_sheets = [name for name in self.required_sheets if name not in admitted_canonical]
        logger.info(
            "Extracted %d of %d sheets (%s estimated tokens)",
            len(result.sheets),
            len(sheet_names),
            f"{result.total_tokens:,}",
        )
        return result

    def find_sheet(self, sheet_names: Iterable[str], target_name: str) -> Optional[str]:
        """Find a tab by exact name (case-insensitive), then by known alias."""
        sheet_names = list(sheet_names)
        target = target_name.lower()
        for sheet_name in sheet_names:
            if sheet_name.lower() == target:
                return sheet_name

        for alias in self.aliases.get(target_name, []):
            for sheet_name in sheet_names:
                if sheet_name.lower() == alias.lower():
                    return sheet_name

        return None

    def estimate_tokens(self, text: str) -> int:
        """Rule of thumb: one token per four characters, rounded up."""
        return math.ceil(len(text) / self.chars_per_token)

    def validate(self, workbook_bytes: bytes) -> Dict[str, Any]:
        """Check that a file is a readable workbook with at least one financial tab."""
        max_bytes = CONFIG.extraction.max_file_size_mb * 1024 * 1024
        if len(workbook_bytes or b"") > max_bytes:
            return {
                "valid": False,
                "error": f"Excel file exceeds {CONFIG.extraction.max_file_size_mb} MB limit",
            }

        try:
            workbook = self._load(workbook_bytes)
        except WorkbookValidationError as e:
            return {"valid": False, "error": str(e)}

        try:
            sheet_names = self._worksheet_names(workbook)
        finally:
            workbook.close()

        has_financial_sheet = any(self.find_sheet(sheet_names, name) is not None for name in self.core_sheets)
        if not has_financial_sheet:
            found = ", ".join(sheet_names[:5]) + ("..." if len(sheet_names) > 5 else "")
            return {
                "valid": False,
                "error": (
                    f"No financial sheets found. Expected at least one of: "
                    f"{', '.join(self.core_sheets[:3])}. Found: {found}"
                ),
            }

        return {"valid": True, "sheet_count": len(sheet_names)}

    def preview(self, workbook_bytes: bytes) -> Dict[str, List[str]]:
        """Report which core sheets would be picked up, without serializing them."""
        workbook = self._load(workbook_bytes)
        try:
            sheet_names = self._worksheet_names(workbook)
        finally:
            workbook.close()

        found_sheets: List[str] = []
        missing_sheets: List[str] = []
        for canonical_name in self.core_sheets:
            actual_name = self.find_sheet(sheet_names, canonical_name)
            if actual_name:
                found_sheets.append(actual_name)
            else:
                missing_sheets.append(canonical_name)

        return {
            "found_sheets": found_sheets,
            "missing_sheets": missing_sheets,
            "all_sheets": sheet_names,
        }

    def _load(self, workbook_bytes: bytes):
        if not workbook_bytes:
            raise WorkbookValidationError("Invalid Excel file: file is empty")
        try:
            workbook = load_workbook(io.BytesIO(workbook_bytes), read_only=True, data_only=True)
        except Exception as e:
            raise WorkbookValidationError(f"Invalid Excel file: {str(e)}") from e

        if not self._worksheet_names(workbook):
            workbook.close()
            raise WorkbookValidationError("Excel file has no sheets")
        return workbook

    def _worksheet_names(self, workbook) -> List[str]:
        # Chartsheets carry no cell grid.
        return [name for name in workbook.sheetnames if hasattr(workbook[name], "iter_rows")]

    def _sheet_to_csv(self, worksheet) -> str:
        """Flatten a worksheet to CSV, dropping blank rows and trimming every cell."""
        rows: List[List[str]] = []
        for row in worksheet.iter_rows():
            values = [
                _display_text(getattr(cell, "value", None), getattr(cell, "number_format", "General"))
                for cell in row
            ]
            if any(values):
                rows.append(values)

        if not rows:
            return ""

        width = max(max((i + 1 for i, value in enumerate(row) if value), default=0) for row in rows)
        padded = [row[:width] + [""] * (width - len(row[:width])) for row in rows]
        frame = pd.DataFrame(padded, dtype=object)
        return frame.to_csv(index=False, header=False, lineterminator="\n").rstrip("\n")


def _display_text(value: Any, number_format: Optional[str]) -> str:
    """Render a cell value the way the workbook displays it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (datetime, date, time)):
        return _format_date(value, number_format or "")
    if isinstance(value, (int, float)):
        return _format_number(value, number_format or "General")
    return str(value).strip()


def _clean_format_section(section: str) -> str:
    section = _CURRENCY_TOKEN.sub(lambda m: m.group(1), section)
    section = _FORMAT_NOISE.sub("", section)
    section = _ESCAPED_CHAR.sub(lambda m: m.group(1), section)
    return section


def _format_number(value: float, number_format: str) -> str:
    fmt = number_format.strip()
    if fmt in ("", "General", "@"):
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return format(value, ".11g")

    sections = fmt.split(";")
    section = sections[0]
    number = float(value)
    sign = ""
    if number < 0:
        if len(sections) > 1 and sections[1].strip():
            section = sections[1]
        else:
            sign = "-"
        number = abs(number)
    elif number == 0 and len(sections) > 2 and sections[2].strip():
        section = sections[2]

    section = _clean_format_section(section)
    if not re.search(r"[0#]", section):
        literal = _QUOTED_TEXT.sub(lambda m: m.group(1), section).replace("?", "")
        return literal.strip() or ("0" if number == 0 else format(number, ".11g"))

    match = _NUMERIC_TOKEN.search(section)
    token = match.group().rstrip(".")
    prefix = _QUOTED_TEXT.sub(lambda m: m.group(1), section[: match.start()])
    suffix = _QUOTED_TEXT.sub(lambda m: m.group(1), section[match.start() + len(token):])

    if "%" in section:
        number *= 100
    scaled = token.rstrip(",")
    number /= 1000 ** (len(token) - len(scaled))
    integer_part, _, fraction_part = scaled.partition(".")
    decimals = len(re.sub(r"[^0#?]", "", fraction_part))
    grouping = "," if "," in integer_part else ""
    body = format(number, f"{grouping}.{decimals}f")

    return f"{sign}{prefix}{body}{suffix}".strip()


def _format_date(value: Any, number_format: str) -> str:
    fmt = _QUOTED_TEXT.sub(lambda m: m.group(1), _clean_format_section(number_format.split(";")[0]))
    if not _DATE_TOKEN.search(fmt) or not re.search(r"[ydhs]", fmt, re.IGNORECASE):
        if isinstance(value, datetime):
            if value.time() == time(0, 0):
                return value.date().isoformat()
            return value.isoformat(sep=" ")
        return value.isoformat()

    twelve_hour = "am/pm" in fmt.lower()
    parts: List[str] = []
    last = 0
    after_hour = False
    for match in _DATE_TOKEN.finditer(fmt):
        parts.append(fmt[last:match.start()])
        last = match.end()
        token = match.group().lower()
        hour = getattr(value, "hour", 0)

        if token in ("mm", "m") and after_hour:
            minute = getattr(value, "minute", 0)
            parts.append(f"{minute:02d}" if token == "mm" else str(minute))
            after_hour = False
            continue

        if token == "yyyy":
            parts.append(f"{getattr(value, 'year', 1900):04d}")
        elif token == "yy":
            parts.append(f"{getattr(value, 'year', 1900) % 100:02d}")
        elif token == "mmmm":
            parts.append(value.strftime("%B"))
        elif token == "mmm":
            parts.append(value.strftime("%b"))
        elif token == "mm":
            parts.append(f"{getattr(value, 'month', 1):02d}")
        elif token == "m":
            parts.append(str(getattr(value, "month", 1)))
        elif token == "dddd":
            parts.append(value.strftime("%A"))
        elif token == "ddd":
            parts.append(value.strftime("%a"))
        elif token == "dd":
            parts.append(f"{getattr(value, 'day', 1):02d}")
        elif token == "d":
            parts.append(str(getattr(value, "day", 1)))
        elif token in ("hh", "h"):
            shown = (hour % 12 or 12) if twelve_hour else hour
            parts.append(f"{shown:02d}" if token == "hh" else str(shown))
        elif token in ("ss", "s"):
            second = getattr(value, "second", 0)
            parts.append(f"{second:02d}" if token == "ss" else str(second))
        elif token == "am/pm":
            parts.append("AM" if hour < 12 else "PM")

        after_hour = token in ("hh", "h")

    parts.append(fmt[last:])
    return "".join(parts).strip()


def extract_core_sheets(workbook_bytes: bytes, max_tokens: Optional[int] = None) -> ExtractionResult:
    """Module-level shortcut for :meth:`SheetExtractor.extract` with default tables."""
    return SheetExtractor().extract(workbook_bytes, max_tokens=max_tokens)


def validate_workbook(workbook_bytes: bytes) -> Dict[str, Any]:
    return SheetExtractor().validate(workbook_bytes)


def preview_extraction(workbook_bytes: bytes) -> Dict[str, List[str]]:
    return SheetExtractor().preview(workbook_bytes)


def format_for_generation(result: ExtractionResult, company_name: str, period_end: str) -> str:
    """Build the delimited payload handed to the generation call."""
    rule = "=" * 80
    lines = [
        f"COMPANY: {company_name}",
        f"REPORTING PERIOD ENDING: {period_end}",
        "",
        rule,
        f"FINANCIAL DATA ({len(result.sheets)} SHEETS EXTRACTED)",
        rule,
    ]
    for sheet in result.sheets:
        lines.append("")
        lines.append(f"### SHEET: {sheet.name}")
        lines.append("-" * 80)
        lines.append(sheet.csv)
    return "\n".join(lines) + "\n"

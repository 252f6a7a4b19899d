"""
Financial number formatting in Big 4 / investment-banking style.

- Negatives in parentheses
- Zeros as em-dash (percentages keep their literal zero)
- N/A values normalized
- Total and subtotal rows detected from their labels
"""

import re
from dataclasses import dataclass
from typing import List, Optional

EM_DASH = "—"
NA_TEXT = "N/A"
ZERO_EPSILON = 0.01

NA_TOKENS = {"n/a", "n/m", "nm"}
NA_PHRASES = ["data not provided", "not included in client configuration"]
DASH_TOKENS = {"-", "—", "–"}
AFFIRMATIVE_TOKENS = {"✓", "✅", "✔", "yes"}
NEGATIVE_TOKENS = {"✗", "❌", "✘", "no"}

TOTAL_LINE_NAMES = ["net income", "gross profit", "ebitda", "ebit"]
TOTAL_EXACT_NAMES = {"net cash"}
VARIANCE_HEADER_TOKENS = ["var", "δ", "delta", "change", "mom", "yoy", "qtd", "ytd"]

INDICATOR_AFFIRMATIVE = "affirmative"
INDICATOR_NEGATIVE = "negative"
INDICATOR_NOT_APPLICABLE = "not_applicable"

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")
_DIGIT = re.compile(r"\d")


@dataclass(frozen=True)
class ClassifiedValue:
    """View-time classification of one raw cell or value string."""
    display_text: str
    is_negative: bool = False
    is_positive: bool = False
    is_zero: bool = False
    is_not_applicable: bool = False

    @property
    def style_tags(self) -> List[str]:
        tags = []
        if self.is_negative:
            tags.append("financial-negative")
        if self.is_positive:
            tags.append("financial-positive")
        if self.is_zero:
            tags.append("financial-zero")
        if self.is_not_applicable:
            tags.append("financial-na")
        return tags


def is_not_applicable(value: str) -> bool:
    text = (value or "").strip().lower()
    return not text or text in NA_TOKENS or any(phrase in text for phrase in NA_PHRASES)


def _parse_leading_number(text: str) -> Optional[float]:
    match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", text))
    if not match:
        return None
    try:
        return float(match.group())
    except ValueError:
        return None


def _looks_negative(text: str) -> bool:
    return (
        (text.startswith("-") and bool(_DIGIT.search(text)))
        or (text.startswith("(") and text.endswith(")"))
        or "($" in text
        or text.startswith("-(")
    )


def _to_parentheses(text: str) -> str:
    if text.startswith("-("):
        return text[1:]
    if text.startswith("-"):
        return f"({text[1:]})"
    return text


def classify(raw_value) -> ClassifiedValue:
    """Classify and canonicalize a single value. Never raises.

    Checks run N/A, then zero/dash, then negative, then the positive flag.
    """
    try:
        text = "" if raw_value is None else str(raw_value).strip()
    except Exception:
        return ClassifiedValue(display_text="")

    if is_not_applicable(text):
        return ClassifiedValue(display_text=NA_TEXT, is_not_applicable=True)

    if text in DASH_TOKENS:
        return ClassifiedValue(display_text=EM_DASH, is_zero=True)

    number = _parse_leading_number(text)
    if number is not None and abs(number) < ZERO_EPSILON:
        if "%" in text:
            return ClassifiedValue(display_text=text, is_zero=True)
        return ClassifiedValue(display_text=EM_DASH, is_zero=True)

    if _looks_negative(text):
        return ClassifiedValue(display_text=_to_parentheses(text), is_negative=True)

    is_positive = text.startswith("+") and bool(_DIGIT.search(text))
    return ClassifiedValue(display_text=text, is_positive=is_positive)


def classify_indicator(raw_value) -> Optional[str]:
    """Classify a material-variance style flag cell; ``None`` when it is not a flag."""
    text = ("" if raw_value is None else str(raw_value)).strip()
    lower = text.lower()
    if text in AFFIRMATIVE_TOKENS or lower in AFFIRMATIVE_TOKENS:
        return INDICATOR_AFFIRMATIVE
    if text in NEGATIVE_TOKENS or lower in NEGATIVE_TOKENS:
        return INDICATOR_NEGATIVE
    if lower in NA_TOKENS or text in DASH_TOKENS:
        return INDICATOR_NOT_APPLICABLE
    return None


def is_indicator_column(header: str) -> bool:
    """Columns such as "Material?" hold yes/no flags rather than amounts."""
    text = (header or "").strip().lower()
    return "material" in text or text.endswith("?")


def is_variance_column(header: str) -> bool:
    text = (header or "").lower()
    return any(token in text for token in VARIANCE_HEADER_TOKENS)


def is_subtotal_row(label: str) -> bool:
    text = (label or "").strip().lower()
    return text.startswith("subtotal") or text.startswith("sub-total")


def is_total_row(label: str) -> bool:
    """Total rows: "Total ...", "= ...", or a terminal statement line. Subtotals excluded."""
    if is_subtotal_row(label):
        return False
    text = (label or "").strip().lower()
    return (
        text.startswith("total")
        or text.startswith("= ")
        or any(name in text for name in TOTAL_LINE_NAMES)
        or text in TOTAL_EXACT_NAMES
    )


def is_sub_item(label: str) -> bool:
    label = label or ""
    return label.startswith("  ") or label.startswith("\t")

"""
Static tables for the month-end review: workbook tabs to extract and report sections to expect.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Pattern

# Priority order: primary statements, supporting dashboards, then budget/forecast extras.
CORE_SHEETS: List[str] = [
    "PL - RAW",
    "Dynamic PL",
    "BS - RAW",
    "Weekly Financial Review",
    "Monthly Comparative",
    "Revenue Chart Data",
    "COA - RAW",
    "Budget",
    "Forecast",
    "Annual P&L",
]

# Known client naming variants for the canonical tabs.
SHEET_NAME_ALIASES: Dict[str, List[str]] = {
    "PL - RAW": ["P&L - RAW", "PL-RAW", "P&L RAW", "Income Statement", "PL Raw"],
    "Dynamic PL": ["Dynamic P&L", "DynamicPL", "Formatted PL", "P&L"],
    "BS - RAW": ["BS-RAW", "BS RAW", "Balance Sheet", "BS Raw"],
    "Weekly Financial Review": ["Weekly Review", "Financial Review", "Dashboard"],
    "Monthly Comparative": ["Monthly Comparison", "MoM Comparative", "Comparative"],
}

REQUIRED_SHEETS: List[str] = ["PL - RAW", "BS - RAW"]


@dataclass(frozen=True)
class SectionDefinition:
    """One of the nine canonical report areas."""
    key: str
    display_name: str
    sort_order: int
    pattern: Pattern[str]


SECTION_DEFINITIONS: List[SectionDefinition] = [
    SectionDefinition("executive_snapshot", "Executive Snapshot", 1, re.compile(r"executive\s*snapshot", re.IGNORECASE)),
    SectionDefinition("revenue_performance", "Revenue Performance", 2, re.compile(r"revenue\s*performance", re.IGNORECASE)),
    SectionDefinition("cogs_gross_margin", "COGS & Gross Margin", 3, re.compile(r"cogs|gross\s*margin", re.IGNORECASE)),
    SectionDefinition("operating_expenses", "Operating Expenses", 4, re.compile(r"operating\s*expenses", re.IGNORECASE)),
    SectionDefinition("profitability_bridges", "Profitability & Bridges", 5, re.compile(r"profitability|bridges", re.IGNORECASE)),
    SectionDefinition("variance_performance", "Variance & Performance Management", 6, re.compile(r"variance|performance", re.IGNORECASE)),
    SectionDefinition("cash_flow_liquidity", "Cash Flow & Liquidity", 7, re.compile(r"cash\s*flow|liquidity", re.IGNORECASE)),
    SectionDefinition("balance_sheet_health", "Balance Sheet Health", 8, re.compile(r"balance\s*sheet", re.IGNORECASE)),
    SectionDefinition("risk_controls", "Risk & Controls", 9, re.compile(r"risk|controls", re.IGNORECASE)),
]

FALLBACK_SECTION = SectionDefinition("full_report", "Financial Review", 1, re.compile(r"$^"))


def numbered_section_titles(keys: List[str]) -> List[str]:
    """Return "N. Title" strings for the given keys in canonical order."""
    titles = []
    for definition in SECTION_DEFINITIONS:
        if definition.key in keys:
            titles.append(f"{definition.sort_order}. {definition.display_name}")
    return titles

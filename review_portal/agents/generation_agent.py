"""
Generation Agent: builds the review prompt and makes the single generation call.
"""

import json
from dataclasses import dataclass, field
from typing import Dict, Any, Optional
from datetime import datetime
from review_portal.agents.base_agent import BaseAgent, AgentResult
from review_portal.config import CONFIG, ReportConfig
from review_portal.core.llm_interface import LLMInterface, llm
from review_portal.utils.report_taxonomy import SECTION_DEFINITIONS, numbered_section_titles

BASE_SYSTEM_PROMPT = """You are a senior FP&A analyst preparing a Month-End Financial Review for a small or mid-sized business owner.
Write in a concise Big 4 style: factual, numeric, non-alarmist. Never invent data.

Use only the workbook data supplied. When a metric cannot be computed from the data, write "N/A — Data not provided".

FORMAT RULES
- One top-level markdown heading per section, numbered, e.g. "## 1. Executive Snapshot".
- Subsections use "### 1.1 Title".
- Tables are pipe-delimited markdown tables with a header row.
- Negative amounts in parentheses: ($5.8K), (47.3%). Zero as "—".
- Prefix total lines with "Total" and keep them as the last row of a table.
- Section 1 includes "### Top Executive Insights" followed by a numbered list of 3-5 insights with numeric callouts.
- Close every section with "Key Takeaways (<section>)" as a bulleted list, then
  "Questions for Management (<section>)" as a bulleted list.
- Commentary paragraphs may start with "Interpretation:" or "Note:".

SECTIONS
""" + "\n".join(f"{definition.sort_order}. {definition.display_name}" for definition in SECTION_DEFINITIONS)


def build_system_prompt(report_config: Optional[ReportConfig] = None) -> str:
    """Base prompt plus the tenant's enabled sections and metrics."""
    config = report_config or CONFIG.report
    enabled = numbered_section_titles(config.enabled_sections)

    override = "\n\nIMPORTANT CLIENT CONFIGURATION:\nFor this specific client report, ONLY include the following sections:\n"
    override += "\n".join(enabled)
    override += (
        '\n\nMark all other sections as "N/A - Not included in client configuration" '
        'rather than "N/A - Data not provided".\n'
    )
    if config.enabled_metrics:
        override += f"\nSpecific enabled metrics for this client:\n{json.dumps(config.enabled_metrics, indent=2)}\n"

    return BASE_SYSTEM_PROMPT + override


def build_user_message(payload: str, company_name: str, period_end: str) -> str:
    return (
        f"Generate Month-End Financial Review for {company_name}, period ending {period_end}.\n\n"
        f"{payload}"
    )


@dataclass
class GenerationOutput:
    text: str
    usage: Dict[str, int] = field(default_factory=dict)


def generate_report(
    payload: str,
    company_name: str,
    period_end: str,
    report_config: Optional[ReportConfig] = None,
    interface: Optional[LLMInterface] = None,
) -> GenerationOutput:
    """Single outbound generation call for one report. Raises RuntimeError on failure."""
    backend = interface or llm
    text, usage = backend.generate_with_usage(
        build_user_message(payload, company_name, period_end),
        system_prompt=build_system_prompt(report_config),
    )
    return GenerationOutput(text=text, usage=dict(usage))


class GenerationAgent(BaseAgent):
    """Sends the extracted payload to the generation backend."""

    def __init__(self, interface: Optional[LLMInterface] = None):
        super().__init__("GenerationAgent")
        self.llm = interface or llm

    def execute(self, task: Dict[str, Any]) -> AgentResult:
        """Generate the review document for an extracted payload."""
        start = datetime.now()

        try:
            payload = task.get("payload", "")
            if not payload:
                raise ValueError("No payload provided for generation")

            company_name = task.get("company_name", "")
            period_end = str(task.get("period_end", ""))
            self.log_step(f"Generating review for {company_name} ({len(payload):,} characters of data)")
            output = generate_report(
                payload,
                company_name,
                period_end,
                report_config=task.get("report_config"),
                interface=task.get("interface") or self.llm,
            )

            return self.succeed({"document": output.text, "usage": output.usage}, start)

        except Exception as e:
            return self.fail(str(e))

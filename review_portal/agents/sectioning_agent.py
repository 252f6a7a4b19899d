"""
Sectioning Agent: generated document -> canonical sections with callout lists pulled out.
"""

from typing import Dict, Any
from datetime import datetime
from review_portal.agents.base_agent import BaseAgent, AgentResult
from review_portal.backend.section_parser import SectionContent, parse_sections
from review_portal.backend.special_blocks import extract_blocks


class SectioningAgent(BaseAgent):
    """Segments the review and extracts insights, takeaways and questions per section."""

    def __init__(self):
        super().__init__("SectioningAgent")

    def execute(self, task: Dict[str, Any]) -> AgentResult:
        start = datetime.now()

        try:
            document = task.get("document", "")
            sections = parse_sections(document)
            if not sections:
                raise ValueError("Generated document is empty")

            for section in sections:
                blocks = extract_blocks(section.content.raw_markdown, section.display_name)
                section.content = SectionContent(
                    raw_markdown=blocks.narrative,
                    insights=blocks.insights,
                    takeaways=blocks.takeaways,
                    questions=blocks.questions,
                )

            self.log_step(f"Parsed {len(sections)} sections")
            return self.succeed({"sections": sections}, start)

        except Exception as e:
            return self.fail(str(e))

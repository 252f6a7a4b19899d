"""
Coordinator Agent: runs one report end to end (extract -> generate -> section -> persist).
"""

import asyncio
from typing import Dict, Any, Optional
from datetime import date, datetime
from review_portal.agents.base_agent import BaseAgent, AgentResult
from review_portal.agents.extraction_agent import ExtractionAgent
from review_portal.agents.generation_agent import GenerationAgent
from review_portal.agents.sectioning_agent import SectioningAgent
from review_portal.config import CONFIG, ReportConfig
from review_portal.core.llm_interface import LLMInterface, llm
from review_portal.core.state import STORE, ReportStore

ERROR_GENERATION = "generation_failed"
ERROR_SECTIONING = "sectioning_failed"


class StageFailed(Exception):
    """A pipeline stage returned an unsuccessful result."""

    def __init__(self, result: AgentResult, error_kind: str):
        self.result = result
        self.error_kind = error_kind
        super().__init__(result.error or f"{result.agent_name} failed")


class CoordinatorAgent(BaseAgent):
    """Owns the report lifecycle: processing until every stage succeeds, else failed."""

    def __init__(self, store: Optional[ReportStore] = None, interface: Optional[LLMInterface] = None):
        super().__init__("CoordinatorAgent")
        self.store = store or STORE
        self.llm = interface or llm
        self.agents = {
            "extraction": ExtractionAgent(),
            "generation": GenerationAgent(self.llm),
            "sectioning": SectioningAgent(),
        }

    def execute(self, task: Dict[str, Any]) -> AgentResult:
        """Generate, segment and store one report.

        Task keys: ``company_id``, ``company_name``, ``period_end`` (date or ISO string),
        ``workbook_bytes`` or ``file_path``, and optionally ``report_config``,
        ``max_tokens`` and ``llm_settings``.
        """
        start = datetime.now()
        report_id = ""

        try:
            period_end = _coerce_period_end(task.get("period_end"))
            company_name = task.get("company_name") or task.get("company_id", "")
            report_config: ReportConfig = task.get("report_config") or CONFIG.report

            record = self.store.create_report(
                company_id=task.get("company_id") or company_name,
                company_name=company_name,
                period_end=period_end,
                source_file_name=task.get("source_file_name") or str(task.get("file_path") or ""),
            )
            report_id = record.id
            self.log_step(f"Report {report_id} processing for {company_name} ({record.period_label})")
            interface = self._interface_for(task)

            stage_task = dict(task)
            stage_task.update(
                {
                    "company_name": company_name,
                    "period_end": period_end.isoformat(),
                    "report_config": report_config,
                    "interface": interface,
                }
            )

            extraction = self._run_stage("extraction", stage_task, error_kind="")
            stage_task["payload"] = extraction.data["payload"]

            generation = self._run_stage("generation", stage_task, error_kind=ERROR_GENERATION)
            stage_task["document"] = generation.data["document"]

            sectioning = self._run_stage("sectioning", stage_task, error_kind=ERROR_SECTIONING)
            sections = sectioning.data["sections"]

            usage = generation.data.get("usage", {})
            run_id = f"tokens:{usage.get('input_tokens', 0)}/{usage.get('output_tokens', 0)}"
            record = self.store.complete_report(
                report_id,
                sections,
                generation_run_id=run_id,
                publish=report_config.auto_publish,
            )
            self.log_step(f"Report {report_id} complete with {len(sections)} sections")

            return self.succeed(
                {
                    "report_id": report_id,
                    "status": record.status,
                    "sections_generated": len(sections),
                    "sheets_extracted": extraction.data["sheets"],
                    "skipped_sheets": extraction.data["skipped_sheets"],
                    "usage": usage,
                },
                start,
            )

        except StageFailed as e:
            return self._fail(report_id, str(e), e.error_kind or e.result.error_kind, e.result.data)
        except Exception as e:
            return self._fail(report_id, str(e), "", {})

    async def execute_async(self, task: Dict[str, Any]) -> AgentResult:
        """Run :meth:`execute` off the event loop; each report is independent."""
        return await asyncio.to_thread(self.execute, task)

    def _run_stage(self, agent_key: str, task: Dict[str, Any], error_kind: str) -> AgentResult:
        result = self.agents[agent_key].execute(task)
        if not result.success:
            raise StageFailed(result, error_kind)
        return result

    def _fail(self, report_id: str, message: str, error_kind: str, details: Dict[str, Any]) -> AgentResult:
        status = ""
        if report_id:
            status = self.store.fail_report(report_id, message).status

        data = {"report_id": report_id, "status": status, "error_kind": error_kind}
        if "missing_required_sheets" in details:
            data["missing_required_sheets"] = details["missing_required_sheets"]
        return self.fail(message, data)

    def _interface_for(self, task: Dict[str, Any]) -> LLMInterface:
        """Generation interface for one report; runtime settings never touch the shared instance."""
        llm_settings = task.get("llm_settings", {})
        if not llm_settings:
            return self.llm

        self.log_step("Applied runtime LLM settings")
        return self.llm.with_settings(llm_settings)


def _coerce_period_end(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValueError("period_end is required")
    return date.fromisoformat(str(value).strip())

"""
Extraction Agent: workbook validation, core-sheet extraction, payload assembly.
"""

from typing import Dict, Any
from datetime import datetime
from pathlib import Path
from review_portal.agents.base_agent import BaseAgent, AgentResult
from review_portal.backend.sheet_extractor import (
    MissingSheetsError,
    SheetExtractor,
    WorkbookValidationError,
    format_for_generation,
)

ERROR_INVALID_WORKBOOK = "invalid_workbook"
ERROR_MISSING_SHEETS = "missing_sheets"


class ExtractionAgent(BaseAgent):
    """Turns uploaded workbook bytes into the generation payload."""

    def __init__(self):
        super().__init__("ExtractionAgent")
        self.extractor = SheetExtractor()

    def execute(self, task: Dict[str, Any]) -> AgentResult:
        """Extract core sheets; fail fast on unreadable files or missing statements."""
        start = datetime.now()

        try:
            workbook_bytes = task.get("workbook_bytes")
            if workbook_bytes is None and task.get("file_path"):
                file_path = Path(task["file_path"])
                if not file_path.exists():
                    raise WorkbookValidationError(f"File not found: {file_path}")
                workbook_bytes = file_path.read_bytes()

            self.log_step("Extracting core sheets")
            extraction = self.extractor.extract(workbook_bytes or b"", max_tokens=task.get("max_tokens"))

            for skipped in extraction.skipped_sheets:
                self.log_warning(f"Sheet '{skipped}' skipped: token budget exhausted")

            if extraction.missing_required_sheets:
                raise MissingSheetsError(extraction.missing_required_sheets)

            payload = format_for_generation(
                extraction,
                company_name=task.get("company_name", ""),
                period_end=str(task.get("period_end", "")),
            )

            result = {
                "payload": payload,
                "sheets": extraction.sheet_names,
                "canonical_sheets": [sheet.canonical_name for sheet in extraction.sheets],
                "total_tokens": extraction.total_tokens,
                "skipped_sheets": extraction.skipped_sheets,
                "all_sheet_names": extraction.all_sheet_names,
            }
            self.log_step(f"Admitted {len(extraction.sheets)} sheets ({extraction.total_tokens:,} tokens)")

            return self.succeed(result, start)

        except WorkbookValidationError as e:
            return self.fail(str(e), {"error_kind": ERROR_INVALID_WORKBOOK})
        except MissingSheetsError as e:
            return self.fail(str(e), {"error_kind": ERROR_MISSING_SHEETS, "missing_required_sheets": e.missing})
        except Exception as e:
            return self.fail(str(e))

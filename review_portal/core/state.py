"""
Report storage and lifecycle: processing -> complete | failed.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from uuid import uuid4
import threading

from review_portal.backend.section_parser import ReportSection

STATUS_PROCESSING = "processing"
STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"


@dataclass
class ReportRecord:
    """One month-end review for one company and period."""
    company_id: str
    company_name: str
    period_end: date
    period_label: str = ""
    id: str = field(default_factory=lambda: uuid4().hex)
    status: str = STATUS_PROCESSING
    published: bool = False
    error_message: str = ""
    sections: List[ReportSection] = field(default_factory=list)
    source_file_name: str = ""
    generation_run_id: str = ""
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self):
        data = asdict(self)
        data["period_end"] = self.period_end.isoformat()
        return data


@dataclass
class AccessLogEntry:
    user_id: str
    report_id: str
    action: str
    at: str = field(default_factory=lambda: datetime.now().isoformat())


class ReportStore:
    """Thread-safe in-process report repository."""

    def __init__(self):
        self._reports: Dict[str, ReportRecord] = {}
        self._lock = threading.RLock()
        self._access_log: List[AccessLogEntry] = []

    def create_report(
        self,
        company_id: str,
        company_name: str,
        period_end: date,
        source_file_name: str = "",
    ) -> ReportRecord:
        """Create a report in the processing state."""
        record = ReportRecord(
            company_id=company_id,
            company_name=company_name,
            period_end=period_end,
            period_label=format_period_label(period_end),
            source_file_name=source_file_name,
        )
        with self._lock:
            self._reports[record.id] = record
        return record

    def complete_report(
        self,
        report_id: str,
        sections: List[ReportSection],
        generation_run_id: str = "",
        publish: bool = True,
    ) -> ReportRecord:
        """Attach all sections at once and mark the report complete."""
        with self._lock:
            record = self._require(report_id)
            record.sections = sorted(sections, key=lambda section: section.sort_order)
            record.status = STATUS_COMPLETE
            record.published = publish
            record.error_message = ""
            record.generation_run_id = generation_run_id
            return record

    def fail_report(self, report_id: str, message: str) -> ReportRecord:
        """Mark the report failed; any sections are discarded."""
        with self._lock:
            record = self._require(report_id)
            record.status = STATUS_FAILED
            record.published = False
            record.sections = []
            record.error_message = message
            return record

    def publish_report(self, report_id: str, published: bool = True) -> ReportRecord:
        with self._lock:
            record = self._require(report_id)
            if published and record.status != STATUS_COMPLETE:
                raise ValueError(f"Only complete reports can be published (status: {record.status})")
            record.published = published
            return record

    def get_report(self, report_id: str) -> Optional[ReportRecord]:
        with self._lock:
            return self._reports.get(report_id)

    def get_report_for_company(self, report_id: str, company_id: str) -> Optional[ReportRecord]:
        """Tenant-scoped lookup: only published reports owned by ``company_id``."""
        with self._lock:
            record = self._reports.get(report_id)
            if record is None or record.company_id != company_id or not record.published:
                return None
            return record

    def list_reports(self, company_id: Optional[str] = None, published_only: bool = False) -> List[ReportRecord]:
        """Reports newest period first."""
        with self._lock:
            records = [
                record
                for record in self._reports.values()
                if (company_id is None or record.company_id == company_id)
                and (not published_only or record.published)
            ]
        return sorted(records, key=lambda record: (record.period_end, record.created_at), reverse=True)

    def delete_report(self, report_id: str) -> bool:
        """Delete a report together with its sections."""
        with self._lock:
            return self._reports.pop(report_id, None) is not None

    def log_access(self, user_id: str, report_id: str, action: str = "viewed"):
        with self._lock:
            self._access_log.append(AccessLogEntry(user_id=user_id, report_id=report_id, action=action))

    def get_access_log(self, report_id: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [asdict(entry) for entry in self._access_log if report_id is None or entry.report_id == report_id]

    def _require(self, report_id: str) -> ReportRecord:
        record = self._reports.get(report_id)
        if record is None:
            raise KeyError(f"Report not found: {report_id}")
        return record


def format_period_label(period_end: date) -> str:
    """Month-and-year label for a period end date, e.g. October 2025."""
    return period_end.strftime("%B %Y")


# Global report store instance
STORE = ReportStore()

"""
Base agent for the report pipeline stages.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
import logging


@dataclass
class AgentResult:
    """Outcome of one pipeline stage."""
    agent_name: str
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    duration_seconds: float = 0

    @property
    def error_kind(self) -> str:
        return self.data.get("error_kind", "")


class BaseAgent(ABC):
    """A pipeline stage: takes a task dict, never raises, reports through AgentResult."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    @abstractmethod
    def execute(self, task: Dict[str, Any]) -> AgentResult:
        pass

    def succeed(self, data: Dict[str, Any], started: datetime) -> AgentResult:
        return AgentResult(
            agent_name=self.name,
            success=True,
            data=data,
            duration_seconds=(datetime.now() - started).total_seconds()
        )

    def fail(self, error: str, data: Optional[Dict[str, Any]] = None) -> AgentResult:
        """Log and wrap a stage failure."""
        self.log_error(error)
        return AgentResult(
            agent_name=self.name,
            success=False,
            data=data or {},
            error=error
        )

    def log_step(self, message: str):
        """Log execution step."""
        self.logger.info(f"[{self.name}] {message}")

    def log_warning(self, message: str):
        self.logger.warning(f"[{self.name}] {message}")

    def log_error(self, message: str):
        self.logger.error(f"[{self.name}] {message}")

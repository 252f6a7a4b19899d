"""
System configuration: generation backends, extraction budget, report sections.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

from dotenv import load_dotenv

load_dotenv()


class LLMBackend(Enum):
    """Supported generation backends."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OLLAMA = "ollama"
    LM_STUDIO = "lm_studio"


@dataclass
class LLMConfig:
    """Generation call configuration."""
    backend: LLMBackend = LLMBackend.ANTHROPIC
    model_name: str = "claude-sonnet-4-20250514"
    api_key: str = ""
    base_url: str = ""
    temperature: float = 1.0
    max_tokens: int = 16000
    # Month-end reviews are long; the call routinely takes minutes.
    timeout: int = 300
    max_retries: int = 1

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        backend_str = os.getenv("LLM_BACKEND", "anthropic").lower()
        backend = LLMBackend[backend_str.upper()] if backend_str.upper() in LLMBackend.__members__ else LLMBackend.ANTHROPIC

        config_map = {
            LLMBackend.ANTHROPIC: {"model_name": "claude-sonnet-4-20250514", "base_url": ""},
            LLMBackend.OPENAI: {"model_name": "gpt-4o", "base_url": "https://api.openai.com/v1"},
            LLMBackend.OLLAMA: {"model_name": "mistral:latest", "base_url": "http://localhost:11434/v1"},
            LLMBackend.LM_STUDIO: {"model_name": "local-model", "base_url": "http://localhost:1234/v1"},
        }

        defaults = config_map.get(backend, {})
        return cls(
            backend=backend,
            model_name=os.getenv("LLM_MODEL", defaults.get("model_name")),
            api_key=os.getenv("LLM_API_KEY", os.getenv("ANTHROPIC_API_KEY", "")),
            base_url=os.getenv("LLM_BASE_URL", defaults.get("base_url")),
            temperature=float(os.getenv("LLM_TEMPERATURE", "1.0")),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "16000")),
            timeout=int(os.getenv("LLM_TIMEOUT", "300")),
            max_retries=int(os.getenv("LLM_MAX_RETRIES", "1")),
        )


@dataclass
class ExtractionConfig:
    """Workbook extraction configuration."""
    # Safe margin below the generation model's 200K input ceiling.
    max_tokens: int = 150000
    chars_per_token: int = 4
    max_file_size_mb: int = 50
    supported_formats: list = field(default_factory=lambda: ["xlsx", "xlsm"])

    @classmethod
    def from_env(cls):
        return cls(
            max_tokens=int(os.getenv("EXTRACTION_MAX_TOKENS", "150000")),
            max_file_size_mb=int(os.getenv("EXTRACTION_MAX_FILE_SIZE_MB", "50")),
        )


SECTION_PRESETS: Dict[str, list] = {
    "basic": [
        "executive_snapshot",
        "revenue_performance",
        "operating_expenses",
    ],
    "standard": [
        "executive_snapshot",
        "revenue_performance",
        "cogs_gross_margin",
        "operating_expenses",
    ],
    "advanced": [
        "executive_snapshot",
        "revenue_performance",
        "cogs_gross_margin",
        "operating_expenses",
        "profitability_bridges",
        "variance_performance",
        "cash_flow_liquidity",
        "balance_sheet_health",
        "risk_controls",
    ],
}


@dataclass
class ReportConfig:
    """Per-tenant report configuration: which sections the review includes."""
    preset: str = "standard"
    enabled_sections: list = field(default_factory=lambda: list(SECTION_PRESETS["standard"]))
    enabled_metrics: Dict[str, list] = field(default_factory=dict)
    auto_publish: bool = True

    @classmethod
    def from_preset(cls, preset: str):
        """Build a config from a named preset; unknown presets fall back to standard."""
        preset_key = (preset or "standard").strip().lower()
        if preset_key not in SECTION_PRESETS:
            preset_key = "standard"
        return cls(preset=preset_key, enabled_sections=list(SECTION_PRESETS[preset_key]))

    @classmethod
    def from_env(cls):
        return cls.from_preset(os.getenv("REPORT_PRESET", "standard"))

    def is_enabled(self, section_key: str) -> bool:
        return section_key in self.enabled_sections


@dataclass
class SystemConfig:
    """Master system configuration."""
    llm: LLMConfig = field(default_factory=LLMConfig.from_env)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig.from_env)
    report: ReportConfig = field(default_factory=ReportConfig.from_env)

    # Paths
    output_dir: str = "outputs"
    log_dir: str = "logs"

    # Runtime
    debug_mode: bool = bool(os.getenv("DEBUG", "False").lower() == "true")

    @classmethod
    def from_env(cls):
        """Load complete config from environment."""
        return cls(
            llm=LLMConfig.from_env(),
            extraction=ExtractionConfig.from_env(),
            report=ReportConfig.from_env(),
        )


# Global config instance
CONFIG = SystemConfig.from_env()

"""
Generation interface: one long-form completion per report, across configured backends.
"""

import copy
import logging
from typing import Any, Dict, Optional, Tuple

from review_portal.config import CONFIG, LLMBackend, LLMConfig

logger = logging.getLogger(__name__)


class LLMInterface:
    """Unified interface for the report generation backends."""

    DEFAULT_MODELS = {
        LLMBackend.ANTHROPIC: "claude-sonnet-4-20250514",
        LLMBackend.OPENAI: "gpt-4o",
        LLMBackend.OLLAMA: "mistral:latest",
        LLMBackend.LM_STUDIO: "local-model",
    }

    DEFAULT_BASE_URLS = {
        LLMBackend.ANTHROPIC: "",
        LLMBackend.OPENAI: "https://api.openai.com/v1",
        LLMBackend.OLLAMA: "http://localhost:11434/v1",
        LLMBackend.LM_STUDIO: "http://localhost:1234/v1",
    }

    def __init__(self, config: Optional[LLMConfig] = None):
        self.config = config or CONFIG.llm
        self.backend = self._normalize_backend(self.config.backend, fallback=LLMBackend.ANTHROPIC)
        self.model_name = self.config.model_name or self.DEFAULT_MODELS[self.backend]
        self.api_key = self.config.api_key or ""
        self.base_url = self.config.base_url or self.DEFAULT_BASE_URLS[self.backend]
        self.temperature = self.config.temperature
        self.max_tokens = self.config.max_tokens
        self.timeout = self.config.timeout
        self.max_retries = max(0, int(self.config.max_retries))
        self.last_error = ""

        self._client_cache: Dict[Tuple[str, str, str], Any] = {}

    def _normalize_backend(self, backend: Any, fallback: LLMBackend) -> LLMBackend:
        """Normalize backend values from enum/string."""
        if isinstance(backend, LLMBackend):
            return backend
        if backend is None:
            return fallback

        backend_value = str(backend).strip().lower()
        for candidate in LLMBackend:
            if candidate.value == backend_value:
                return candidate
        return fallback

    def apply_runtime_settings(self, settings: Optional[Dict[str, Any]]) -> None:
        """Override backend/model/limits for subsequent calls."""
        if not settings:
            return

        if "backend" in settings:
            self.backend = self._normalize_backend(settings["backend"], fallback=self.backend)
            self.base_url = settings.get("base_url") or self.DEFAULT_BASE_URLS[self.backend]
            self.model_name = settings.get("model_name") or self.DEFAULT_MODELS[self.backend]
        if settings.get("model_name"):
            self.model_name = settings["model_name"]
        if settings.get("api_key"):
            self.api_key = settings["api_key"]
        if settings.get("base_url"):
            self.base_url = settings["base_url"]
        if "temperature" in settings:
            self.temperature = float(settings["temperature"])
        if "max_tokens" in settings:
            self.max_tokens = int(settings["max_tokens"])
        if "timeout" in settings:
            self.timeout = int(settings["timeout"])
        if "max_retries" in settings:
            self.max_retries = max(0, int(settings["max_retries"]))

    def with_settings(self, settings: Optional[Dict[str, Any]]) -> "LLMInterface":
        """Copy of this interface with request-scoped overrides; the original is left untouched."""
        scoped = copy.copy(self)
        scoped._client_cache = {}
        scoped.apply_runtime_settings(settings)
        return scoped

    def _get_client(self) -> Any:
        """Create or fetch cached client for the current backend."""
        cache_key = (self.backend.value, self.base_url or "", self.api_key or "")
        if cache_key in self._client_cache:
            return self._client_cache[cache_key]

        if self.backend == LLMBackend.ANTHROPIC:
            try:
                from anthropic import Anthropic
            except ImportError as e:
                raise ImportError("anthropic package required") from e
            if not self.api_key:
                raise ValueError("Anthropic backend requires an API key")
            kwargs = {"api_key": self.api_key, "timeout": float(self.timeout), "max_retries": 0}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            client = Anthropic(**kwargs)
            self._client_cache[cache_key] = client
            return client

        if self.backend in (LLMBackend.OPENAI, LLMBackend.OLLAMA, LLMBackend.LM_STUDIO):
            try:
                from openai import OpenAI
            except ImportError as e:
                raise ImportError("openai package required") from e

            if self.backend == LLMBackend.OPENAI:
                resolved_api_key = self.api_key
                if not resolved_api_key:
                    raise ValueError("OpenAI backend requires an API key")
            elif self.backend == LLMBackend.OLLAMA:
                resolved_api_key = self.api_key or "ollama"
            else:
                resolved_api_key = self.api_key or "lm-studio"

            client = OpenAI(
                api_key=resolved_api_key,
                base_url=self.base_url or self.DEFAULT_BASE_URLS[self.backend],
                timeout=float(self.timeout),
                max_retries=0,
            )
            self._client_cache[cache_key] = client
            return client

        raise ValueError(f"Unsupported backend: {self.backend}")

    def _complete(self, prompt: str, system_prompt: str, temperature: float) -> Tuple[str, Dict[str, int]]:
        client = self._get_client()

        if self.backend == LLMBackend.ANTHROPIC:
            response = client.messages.create(
                model=self.model_name,
                max_tokens=self.max_tokens,
                system=system_prompt or "You are a helpful assistant.",
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
            )
            usage = getattr(response, "usage", None)
            usage_counts = {
                "input_tokens": getattr(usage, "input_tokens", 0) or 0,
                "output_tokens": getattr(usage, "output_tokens", 0) or 0,
            }
            text_blocks = [block.text for block in response.content if getattr(block, "type", "text") == "text"]
            return "\n".join(text_blocks).strip(), usage_counts

        response = client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": system_prompt or "You are a helpful assistant."},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            max_tokens=self.max_tokens,
        )
        usage = getattr(response, "usage", None)
        usage_counts = {
            "input_tokens": getattr(usage, "prompt_tokens", 0) or 0,
            "output_tokens": getattr(usage, "completion_tokens", 0) or 0,
        }
        return (response.choices[0].message.content or "").strip(), usage_counts

    def generate_with_usage(
        self, prompt: str, system_prompt: str = "", temperature: Optional[float] = None
    ) -> Tuple[str, Dict[str, int]]:
        """Generate text and its token usage, retrying up to ``max_retries`` times before failing."""
        temp = self.temperature if temperature is None else temperature
        attempts = self.max_retries + 1
        last_exception: Optional[Exception] = None

        try:
            self._get_client()
        except (ImportError, ValueError) as e:
            self.last_error = f"LLM backend unavailable ({self.backend.value}): {str(e)}"
            raise RuntimeError(self.last_error) from e

        for attempt in range(1, attempts + 1):
            try:
                text, usage = self._complete(prompt, system_prompt, temp)
                if text:
                    return text, usage
                last_exception = ValueError("Empty response from generation backend")
            except Exception as e:
                last_exception = e
            logger.warning("Generation attempt %d/%d failed: %s", attempt, attempts, str(last_exception))

        self.last_error = f"LLM generation failed ({self.backend.value}/{self.model_name}): {str(last_exception)}"
        raise RuntimeError(self.last_error) from last_exception

    def generate(self, prompt: str, system_prompt: str = "", temperature: Optional[float] = None) -> str:
        text, _ = self.generate_with_usage(prompt, system_prompt, temperature)
        return text

    def health_check(self) -> bool:
        """Check if the configured backend/model is reachable."""
        try:
            response = self.generate("Respond only with OK.", temperature=0.0)
            return "ok" in response.lower()
        except Exception:
            return False


# Global LLM instance
llm = LLMInterface()

"""
Generation backend adapters.

Every provider sits behind ``GenerationBackend``, which implements the four
script operations on top of a single provider call, ``_complete``:

    generate(request)          -> first draft
    improve(request)           -> (revised draft, improvements summary)
    score(content)             -> IterationMetrics
    compare(original, revised) -> Comparison

``generate`` and ``improve`` raise ``GenerationError`` on any provider failure
or empty output.  ``score`` and ``compare`` never raise: when the provider
call or its JSON fails they fall back to the deterministic heuristics in
``scriptwizard.services.scoring``.

``BackendRegistry`` maps a script's model identifier to one backend through an
explicit alias table.  Identifiers it does not know resolve to the configured
default backend; that fallback is logged, not raised.
"""
from __future__ import annotations

import abc
import enum
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from scriptwizard.config import settings
from scriptwizard.exceptions import GenerationError
from scriptwizard.models.records import IterationMetrics, ScriptLength
from scriptwizard.services.prompts import (
    COMPARE_SYSTEM_PROMPT,
    IMPROVEMENTS_MARKER,
    SCORE_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    GenerationRequest,
    build_compare_prompt,
    build_improvement_prompt,
    build_initial_prompt,
)
from scriptwizard.services.scoring import (
    Comparison,
    estimate_duration_seconds,
    heuristic_comparison,
    heuristic_metrics,
)
from scriptwizard.utils.helpers import parse_json_robust, truncate_text

logger = logging.getLogger(__name__)

NO_IMPROVEMENTS_LISTED = "No specific improvements listed."


class BackendKind(str, enum.Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"


def split_improvements(text: str) -> Tuple[str, str]:
    """
    Split a backend reply at the ``IMPROVEMENTS:`` marker.

    Returns ``(content, improvements)``; the improvements part keeps the
    marker.  Replies without the marker are all content.
    """
    index = text.find(IMPROVEMENTS_MARKER)
    if index == -1:
        return text.strip(), NO_IMPROVEMENTS_LISTED
    return text[:index].strip(), text[index:].strip()


# ---------------------------------------------------------------------------
# Base adapter
# ---------------------------------------------------------------------------

class GenerationBackend(abc.ABC):
    """Uniform capability interface over one text-generation provider."""

    kind: BackendKind
    MAX_TOKENS_BY_LENGTH: Dict[ScriptLength, int] = {
        ScriptLength.SHORT: 1500,
        ScriptLength.MEDIUM: 3000,
        ScriptLength.LONG: 4500,
    }
    ANALYSIS_MAX_TOKENS: int = 1024
    TEMPERATURE: float = 0.7
    ANALYSIS_TEMPERATURE: float = 0.2

    def __init__(
        self,
        model: str,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        words_per_minute: Optional[int] = None,
    ) -> None:
        self.model = model
        self.timeout = httpx.Timeout(float(timeout or settings.LLM_TIMEOUT), connect=10.0)
        self.words_per_minute = words_per_minute or settings.WORDS_PER_MINUTE
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        """Whether the backend has the credentials it needs."""
        return True

    def max_tokens_for(self, length: ScriptLength) -> int:
        return self.MAX_TOKENS_BY_LENGTH.get(length, self.MAX_TOKENS_BY_LENGTH[ScriptLength.MEDIUM])

    # ------------------------------------------------------------------
    # Script operations
    # ------------------------------------------------------------------

    async def generate(self, request: GenerationRequest) -> str:
        """Produce a complete first draft."""
        prompt = build_initial_prompt(request)
        text = await self._complete(
            SYSTEM_PROMPT, prompt, max_tokens=self.max_tokens_for(request.length)
        )
        content = text.strip()
        if not content:
            raise GenerationError(f"{self.kind.value}: empty draft returned")
        return content

    async def improve(self, request: GenerationRequest) -> Tuple[str, str]:
        """Produce a revised draft plus a summary of the changes made."""
        if not request.previous_content:
            raise GenerationError("Previous content is required for script improvement")

        prompt = build_improvement_prompt(request)
        text = await self._complete(
            SYSTEM_PROMPT, prompt, max_tokens=self.max_tokens_for(request.length)
        )
        content, improvements = split_improvements(text)
        if not content:
            raise GenerationError(f"{self.kind.value}: empty revision returned")
        return content, improvements

    async def score(self, content: str) -> IterationMetrics:
        """Word count, spoken duration and readability for one draft."""
        fallback = heuristic_metrics(content, self.words_per_minute)
        try:
            raw = await self._complete(
                SCORE_SYSTEM_PROMPT,
                content,
                max_tokens=self.ANALYSIS_MAX_TOKENS,
                json_output=True,
            )
        except GenerationError as exc:
            logger.warning("score: %s scoring failed, using heuristic — %s", self.kind.value, exc)
            return fallback

        ok, parsed = parse_json_robust(raw)
        if not ok or not isinstance(parsed, dict):
            logger.warning("score: %s returned unparseable metrics, using heuristic", self.kind.value)
            return fallback

        word_count = _positive_int(parsed.get("wordCount")) or fallback.word_count
        duration = _positive_int(parsed.get("estimatedDuration"))
        if duration is None:
            duration = estimate_duration_seconds(word_count, self.words_per_minute)

        return IterationMetrics(
            word_count=word_count,
            estimated_duration=duration,
            readability_score=_clamped_float(parsed.get("readabilityScore"), 1.0, 10.0),
        )

    async def compare(self, original: str, revised: str) -> Comparison:
        """Redundancy reduction (percent) and improvement areas between drafts."""
        try:
            raw = await self._complete(
                COMPARE_SYSTEM_PROMPT,
                build_compare_prompt(original, revised),
                max_tokens=self.ANALYSIS_MAX_TOKENS,
                json_output=True,
            )
        except GenerationError as exc:
            logger.warning("compare: %s comparison failed, using heuristic — %s", self.kind.value, exc)
            return heuristic_comparison(original, revised)

        ok, parsed = parse_json_robust(raw)
        reduction = (
            _clamped_float(parsed.get("redundancyReduction"), 0.0, 100.0)
            if ok and isinstance(parsed, dict)
            else None
        )
        if reduction is None:
            logger.warning("compare: %s returned unparseable comparison, using heuristic", self.kind.value)
            return heuristic_comparison(original, revised)

        areas = parsed.get("improvementAreas") or []
        if not isinstance(areas, list):
            areas = [areas]
        return Comparison(
            redundancy_reduction=reduction,
            improvement_areas=[str(a).strip() for a in areas if str(a).strip()],
        )

    # ------------------------------------------------------------------
    # Provider call
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def _complete(
        self,
        system: str,
        prompt: str,
        *,
        max_tokens: int,
        json_output: bool = False,
    ) -> str:
        """Send one completion request; return the text or raise GenerationError."""

    async def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST *payload* and return the decoded JSON body, mapping failures to GenerationError."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise GenerationError(
                f"{self.kind.value}: request timed out after {self.timeout.read:.0f} s"
            ) from exc
        except httpx.HTTPError as exc:
            raise GenerationError(f"{self.kind.value}: connection error — {exc}") from exc

        if resp.status_code != 200:
            logger.error(
                "_post: %s returned HTTP %d: %s",
                self.kind.value,
                resp.status_code,
                truncate_text(resp.text, 300),
            )
            raise GenerationError(f"{self.kind.value}: HTTP {resp.status_code}")

        try:
            return resp.json()
        except ValueError as exc:
            raise GenerationError(f"{self.kind.value}: response body is not JSON") from exc


# ---------------------------------------------------------------------------
# Concrete providers
# ---------------------------------------------------------------------------

class OpenAIBackend(GenerationBackend):
    """OpenAI chat-completions API."""

    kind = BackendKind.OPENAI

    def __init__(self, api_key: str = "", base_url: str = "", model: str = "", **kwargs: Any) -> None:
        super().__init__(model or settings.OPENAI_MODEL, **kwargs)
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _complete(self, system, prompt, *, max_tokens, json_output=False):
        if not self.api_key:
            raise GenerationError("openai: OPENAI_API_KEY is not configured")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.ANALYSIS_TEMPERATURE if json_output else self.TEMPERATURE,
            "max_tokens": max_tokens,
        }
        if json_output:
            payload["response_format"] = {"type": "json_object"}

        data = await self._post(
            f"{self.base_url}/chat/completions",
            {"Authorization": f"Bearer {self.api_key}"},
            payload,
        )
        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("openai: unexpected response shape") from exc
        if not text.strip():
            raise GenerationError("openai: empty completion")
        return text


class AnthropicBackend(GenerationBackend):
    """Anthropic messages API."""

    kind = BackendKind.ANTHROPIC
    MAX_TOKENS_BY_LENGTH = {
        ScriptLength.SHORT: 3000,
        ScriptLength.MEDIUM: 6000,
        ScriptLength.LONG: 9000,
    }

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "",
        model: str = "",
        api_version: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__(model or settings.ANTHROPIC_MODEL, **kwargs)
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.base_url = (base_url or settings.ANTHROPIC_BASE_URL).rstrip("/")
        self.api_version = api_version or settings.ANTHROPIC_VERSION

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _complete(self, system, prompt, *, max_tokens, json_output=False):
        if not self.api_key:
            raise GenerationError("anthropic: ANTHROPIC_API_KEY is not configured")

        data = await self._post(
            f"{self.base_url}/v1/messages",
            {
                "x-api-key": self.api_key,
                "anthropic-version": self.api_version,
            },
            {
                "model": self.model,
                "system": system,
                "max_tokens": max_tokens,
                "temperature": self.ANALYSIS_TEMPERATURE if json_output else self.TEMPERATURE,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        blocks = data.get("content") if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            raise GenerationError("anthropic: unexpected response shape")
        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        if not text.strip():
            raise GenerationError("anthropic: empty completion")
        return text


class OllamaBackend(GenerationBackend):
    """Local Ollama /api/generate."""

    kind = BackendKind.OLLAMA
    MAX_TOKENS_BY_LENGTH = {
        ScriptLength.SHORT: 2000,
        ScriptLength.MEDIUM: 4000,
        ScriptLength.LONG: 6000,
    }

    def __init__(self, base_url: str = "", model: str = "", **kwargs: Any) -> None:
        super().__init__(model or settings.OLLAMA_LLM_MODEL, **kwargs)
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")

    async def _complete(self, system, prompt, *, max_tokens, json_output=False):
        payload: Dict[str, Any] = {
            "model": self.model,
            "system": system,
            "prompt": prompt,
            "stream": False,
            "options": {
                "num_predict": max_tokens,
                "temperature": self.ANALYSIS_TEMPERATURE if json_output else self.TEMPERATURE,
            },
        }
        if json_output:
            payload["format"] = "json"

        data = await self._post(f"{self.base_url}/api/generate", {}, payload)
        text = data.get("response", "") if isinstance(data, dict) else ""
        if not text or not text.strip():
            raise GenerationError("ollama: empty completion")
        return text


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

# Model identifiers offered by the frontend, mapped to the backend serving them.
MODEL_ALIASES: Dict[str, BackendKind] = {
    "openai": BackendKind.OPENAI,
    "gpt-4o": BackendKind.OPENAI,
    "gpt-4": BackendKind.OPENAI,
    "gpt-3.5": BackendKind.OPENAI,
    "anthropic": BackendKind.ANTHROPIC,
    "claude": BackendKind.ANTHROPIC,
    "claude-3-7-sonnet-20250219": BackendKind.ANTHROPIC,
    "ollama": BackendKind.OLLAMA,
    "llama3": BackendKind.OLLAMA,
    "qwen2.5:3b": BackendKind.OLLAMA,
}

MODEL_PREFIXES: Tuple[Tuple[str, BackendKind], ...] = (
    ("gpt-", BackendKind.OPENAI),
    ("claude", BackendKind.ANTHROPIC),
)


class BackendRegistry:
    """Closed mapping from model identifiers to backend instances."""

    def __init__(
        self,
        backends: Mapping[BackendKind, GenerationBackend],
        default: BackendKind,
    ) -> None:
        if default not in backends:
            raise ValueError(f"Default backend {default.value!r} is not registered")
        self._backends: Dict[BackendKind, GenerationBackend] = dict(backends)
        self.default = default

    @classmethod
    def from_settings(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "BackendRegistry":
        """Build the registry with every provider configured from ``settings``."""
        backends: Dict[BackendKind, GenerationBackend] = {
            BackendKind.OPENAI: OpenAIBackend(transport=transport),
            BackendKind.ANTHROPIC: AnthropicBackend(transport=transport),
            BackendKind.OLLAMA: OllamaBackend(transport=transport),
        }
        try:
            default = BackendKind(settings.DEFAULT_BACKEND.lower())
        except ValueError:
            logger.warning(
                "Unknown DEFAULT_BACKEND %r — using openai", settings.DEFAULT_BACKEND
            )
            default = BackendKind.OPENAI
        return cls(backends, default)

    def resolve_kind(self, model: str) -> BackendKind:
        """
        Map *model* to a registered BackendKind.

        Order: alias table, a backend's own configured model name, known
        prefixes, then the default backend.
        """
        key = (model or "").strip().lower()

        kind = MODEL_ALIASES.get(key)
        if kind is None:
            kind = next(
                (k for k, b in self._backends.items() if b.model.lower() == key),
                None,
            )
        if kind is None:
            kind = next((k for prefix, k in MODEL_PREFIXES if key.startswith(prefix)), None)

        if kind is None or kind not in self._backends:
            logger.warning(
                "Model %r is not supported — falling back to %s backend",
                model,
                self.default.value,
            )
            return self.default
        return kind

    def select(self, model: str) -> GenerationBackend:
        return self._backends[self.resolve_kind(model)]

    def describe(self) -> Dict[str, str]:
        """``{kind: "configured" | "missing_credentials"}`` for health reporting."""
        return {
            kind.value: "configured" if backend.is_configured else "missing_credentials"
            for kind, backend in self._backends.items()
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _clamped_float(value: Any, lo: float, hi: float) -> Optional[float]:
    """Parse *value* as float clamped to [lo, hi]; None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return max(lo, min(hi, float(value)))
    except (TypeError, ValueError):
        return None


__all__ = [
    "AnthropicBackend",
    "BackendKind",
    "BackendRegistry",
    "GenerationBackend",
    "OllamaBackend",
    "OpenAIBackend",
    "split_improvements",
]

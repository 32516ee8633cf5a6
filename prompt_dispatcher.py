"""
Model-fallback prompt dispatcher.

A dispatch renders a structured prompt, then tries the candidate Gemini
models in cyclic order, continuing from wherever the previous dispatch
stopped. Rate limits, quota exhaustion and server errors move on to the
next model; any other failure is surfaced immediately.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

from utils import extract_json_from_response, redact_long_text, render_template

logger = logging.getLogger(__name__)


class PromptDispatchError(Exception):
    """Base class for dispatcher failures."""


class ModelsExhaustedError(PromptDispatchError):
    """Raised when every candidate model failed with a retryable error."""

    def __init__(self, prompt_name: str, attempts: Sequence["ModelAttempt"]) -> None:
        self.prompt_name = prompt_name
        self.attempts = list(attempts)
        super().__init__(
            f"All AI models are currently unavailable for '{prompt_name}' "
            f"({len(self.attempts)} attempted). Please try again later."
        )


class ModelOutputError(PromptDispatchError):
    """Raised when a model response is not valid JSON for the output schema."""

    def __init__(self, prompt_name: str, model: str, reason: str) -> None:
        self.prompt_name = prompt_name
        self.model = model
        super().__init__(f"Model {model} returned invalid output for '{prompt_name}': {reason}")


@dataclass(frozen=True)
class PromptSpec:
    name: str
    input_model: Type[BaseModel]
    output_model: Type[BaseModel]
    template: str


@dataclass(frozen=True)
class PromptRequest:
    """A prompt spec bound to one validated input value."""
    spec: PromptSpec
    input: BaseModel
    extra: Mapping[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        values: Dict[str, Any] = self.input.model_dump(by_alias=True)
        values.update(self.extra)
        return render_template(self.spec.template, values)


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class ModelAttempt:
    model: str
    attempt: int
    outcome: AttemptOutcome


@dataclass
class DispatchResult:
    output: BaseModel
    model: str
    attempts: List[ModelAttempt]


class ModelRotation:
    """Cyclic model counter shared by the dispatches of one dispatcher.

    Advances once per model attempt, so a dispatch that fell over to the
    next model leaves the following dispatch one model further on.
    """

    def __init__(self, start: int = 0) -> None:
        self._index = start

    @property
    def position(self) -> int:
        return self._index

    def advance(self, n: int) -> int:
        if n <= 0:
            return 0
        index = self._index % n
        self._index += 1
        return index


def _status_of(exc: BaseException) -> Optional[int]:
    # google.api_core.exceptions.GoogleAPICallError exposes the HTTP status as .code
    code = getattr(exc, "code", None)
    if isinstance(code, int) and not isinstance(code, bool):
        return code
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def classify_error(exc: BaseException) -> bool:
    """Return True when a backend failure is transient and worth another model."""
    status = _status_of(exc)
    if status is not None:
        return status == 429 or status >= 500
    message = str(exc).lower()
    return "429" in message or "quota" in message


class ModelBackend(ABC):
    @abstractmethod
    async def generate(self, model: str, prompt: str, output_model: Type[BaseModel]) -> str:
        """Return the raw response text of ``model`` for ``prompt``."""


class GeminiBackend(ModelBackend):
    """Gemini text generation through ``google-generativeai``."""

    def __init__(self, api_key: Optional[str]) -> None:
        import google.generativeai as genai

        if not api_key:
            logger.warning("[Dispatcher] GEMINI_API_KEY or GEMINI_API_KEY_FALLBACK not set. AI features may not work.")
        genai.configure(api_key=api_key)
        self._genai = genai

    async def generate(self, model: str, prompt: str, output_model: Type[BaseModel]) -> str:
        client = self._genai.GenerativeModel(
            model_name=model.removeprefix("googleai/"),
            generation_config=self._genai.GenerationConfig(response_mime_type="application/json"),
        )
        response = await client.generate_content_async(prompt)
        return response.text


class PromptDispatcher:
    def __init__(
        self,
        backend: ModelBackend,
        models: Sequence[str],
        rotation: Optional[ModelRotation] = None,
    ) -> None:
        self.backend = backend
        self.models = list(models)
        self.rotation = rotation or ModelRotation()

    def _parse_output(self, spec: PromptSpec, model: str, raw: str) -> BaseModel:
        try:
            data = extract_json_from_response(raw)
            return spec.output_model.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.error(
                "[Dispatcher] %s: invalid output from %s: %s\n%s",
                spec.name, model, e, redact_long_text(raw or ""),
            )
            raise ModelOutputError(spec.name, model, str(e)) from e

    async def dispatch(
        self,
        spec: PromptSpec,
        input_value: Any,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> DispatchResult:
        """Run ``spec`` against the candidate models until one succeeds.

        Raises:
            ValidationError: ``input_value`` does not match ``spec.input_model``.
            ModelsExhaustedError: every candidate failed with a retryable error.
            ModelOutputError: a model answered with output that fails the schema.
            Exception: any non-retryable backend error, unchanged.
        """
        if isinstance(input_value, spec.input_model):
            validated = input_value
        else:
            validated = spec.input_model.model_validate(input_value)
        request = PromptRequest(spec=spec, input=validated, extra=dict(extra or {}))
        prompt_text = request.render()

        total = len(self.models)
        attempts: List[ModelAttempt] = []
        if total == 0:
            logger.error("[Dispatcher] %s: no candidate models configured", spec.name)
            raise ModelsExhaustedError(spec.name, attempts)

        for attempt_no in range(1, total + 1):
            model = self.models[self.rotation.advance(total)]
            logger.info("[Dispatcher] %s: attempt %d/%d with model %s", spec.name, attempt_no, total, model)
            try:
                raw = await self.backend.generate(model, prompt_text, spec.output_model)
            except Exception as exc:
                if classify_error(exc):
                    attempts.append(ModelAttempt(model, attempt_no, AttemptOutcome.RETRYABLE))
                    logger.warning("[Dispatcher] %s: model %s unavailable, trying next: %s", spec.name, model, exc)
                    continue
                attempts.append(ModelAttempt(model, attempt_no, AttemptOutcome.FATAL))
                logger.error("[Dispatcher] %s: model %s failed: %s", spec.name, model, exc)
                raise

            try:
                output = self._parse_output(spec, model, raw)
            except ModelOutputError:
                attempts.append(ModelAttempt(model, attempt_no, AttemptOutcome.FATAL))
                raise
            attempts.append(ModelAttempt(model, attempt_no, AttemptOutcome.SUCCESS))
            return DispatchResult(output=output, model=model, attempts=attempts)

        logger.error("[Dispatcher] %s: all %d models exhausted", spec.name, total)
        raise ModelsExhaustedError(spec.name, attempts)

    async def run(self, spec: PromptSpec, input_value: Any, extra: Optional[Mapping[str, Any]] = None) -> BaseModel:
        result = await self.dispatch(spec, input_value, extra)
        return result.output


def build_dispatcher(settings) -> PromptDispatcher:
    return PromptDispatcher(GeminiBackend(settings.gemini_api_key), settings.gemini_models)
